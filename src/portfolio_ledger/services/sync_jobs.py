"""Background queue for exchange account syncs.

Jobs move QUEUED -> RUNNING -> SUCCESS | FAILED. A worker claims a job with
a conditional update so two workers polling the same table never run the
same job; a lost race simply moves on to the next candidate. Jobs stuck in
RUNNING past the configured timeout are failed on the next claim.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from portfolio_ledger.config import Settings, get_settings
from portfolio_ledger.domain.sync_jobs import SyncJob, SyncResult
from portfolio_ledger.domain.value_objects import (
    SyncJobStatus,
    SyncMode,
    SyncRequestedBy,
)
from portfolio_ledger.exceptions import SyncFailedError, SyncJobNotFoundError
from portfolio_ledger.logging_config import get_logger, log_context
from portfolio_ledger.repositories.interfaces import SyncJobRepository

logger = get_logger(__name__)

STALE_RUNNING_MESSAGE = "Job timed out while RUNNING."


class AccountSyncer(ABC):
    """Pulls trades and/or balances for one exchange account into the ledger."""

    @abstractmethod
    def sync_account(
        self, account_id: int, mode: SyncMode, since: datetime | None = None
    ) -> SyncResult:
        """Run one sync.

        Raise SyncFailedError for expected exchange failures. Any other
        exception is logged with its traceback and retried the same way.
        """


@dataclass(frozen=True)
class EnqueueResult:
    job_id: int
    status: SyncJobStatus
    deduped: bool


@dataclass(frozen=True)
class ProcessResult:
    processed: bool
    job_id: int | None = None
    status: SyncJobStatus | None = None
    error: str | None = None


def coerce_sync_mode(mode: SyncMode | str | None) -> SyncMode:
    """Normalise a requested mode; anything unrecognised syncs trades."""
    if isinstance(mode, SyncMode):
        return mode
    raw = (mode or SyncMode.TRADES.value).strip().lower()
    try:
        return SyncMode(raw)
    except ValueError:
        return SyncMode.TRADES


class SyncJobQueue:
    def __init__(
        self,
        job_repo: SyncJobRepository,
        syncer: AccountSyncer | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._job_repo = job_repo
        self._syncer = syncer
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

    def enqueue(
        self,
        account_id: int,
        exchange_id: str,
        mode: SyncMode | str = SyncMode.TRADES,
        requested_by: SyncRequestedBy | str = SyncRequestedBy.MANUAL,
        since: datetime | None = None,
    ) -> EnqueueResult:
        """Queue a sync unless one is already queued or running for the account."""
        existing = self._job_repo.find_active(account_id, exchange_id)
        if existing is not None:
            logger.info(
                "sync_job_deduped",
                job_id=existing.id,
                account_id=account_id,
                exchange_id=exchange_id,
                status=existing.status.value,
            )
            return EnqueueResult(existing.id, existing.status, deduped=True)

        if not isinstance(requested_by, SyncRequestedBy):
            requested_by = SyncRequestedBy(requested_by.strip().upper())
        now = self._clock()
        job = self._job_repo.add(
            SyncJob(
                account_id=account_id,
                exchange_id=exchange_id,
                mode=coerce_sync_mode(mode),
                requested_by=requested_by,
                since=since,
                created_at=now,
                available_at=now,
            )
        )
        logger.info(
            "sync_job_enqueued",
            job_id=job.id,
            account_id=account_id,
            exchange_id=exchange_id,
            mode=job.mode.value,
        )
        return EnqueueResult(job.id, job.status, deduped=False)

    def mark_stale_running_as_failed(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        cutoff = now - timedelta(
            minutes=self._settings.sync_job_running_timeout_minutes
        )
        count = self._job_repo.fail_stale_running(cutoff, now, STALE_RUNNING_MESSAGE)
        if count:
            logger.warning(
                "sync_jobs_timed_out", count=count, cutoff=cutoff.isoformat()
            )
        return count

    def claim_next(self) -> SyncJob | None:
        self.mark_stale_running_as_failed()

        for _ in range(self._settings.sync_job_claim_attempts):
            now = self._clock()
            candidate = self._job_repo.next_queued(now)
            if candidate is None:
                return None

            token = str(uuid.uuid4())
            if self._job_repo.try_claim(candidate.id, token, now):
                claimed = self._job_repo.get(candidate.id)
                logger.info(
                    "sync_job_claimed",
                    job_id=candidate.id,
                    attempts=claimed.attempts if claimed else None,
                )
                return claimed
            logger.debug("sync_job_claim_lost", job_id=candidate.id)

        return None

    def run_claimed(self, job: SyncJob) -> ProcessResult:
        mode = coerce_sync_mode(job.mode)
        if self._syncer is None:
            return self._record_failure(job, "No account syncer configured.")
        try:
            result = self._syncer.sync_account(job.account_id, mode, job.since)
        except SyncFailedError as e:
            return self._record_failure(
                job, e.message or "Unknown sync error.", retryable=e.retryable
            )
        except Exception as e:
            logger.exception("sync_job_unexpected_error", job_id=job.id)
            return self._record_failure(job, str(e) or "Unknown sync error.")

        job.status = SyncJobStatus.SUCCESS
        job.finished_at = self._clock()
        job.error_message = None
        job.result = result.to_dict()
        job.claim_token = None
        self._job_repo.update(job)
        logger.info(
            "sync_job_succeeded",
            job_id=job.id,
            created=result.created,
            updated=result.updated,
            reconciled=result.reconciled,
        )
        return ProcessResult(processed=True, job_id=job.id, status=job.status)

    def process_next(self) -> ProcessResult:
        job = self.claim_next()
        if job is None:
            return ProcessResult(processed=False)
        with log_context(
            sync_job_id=job.id,
            account_id=job.account_id,
            exchange_id=job.exchange_id,
            sync_mode=coerce_sync_mode(job.mode).value,
        ):
            return self.run_claimed(job)

    def get_job(self, job_id: int) -> SyncJob:
        job = self._job_repo.get(job_id)
        if job is None:
            raise SyncJobNotFoundError(job_id)
        return job

    def _record_failure(
        self, job: SyncJob, message: str, retryable: bool = True
    ) -> ProcessResult:
        now = self._clock()
        job.error_message = message
        job.claim_token = None
        if retryable and job.attempts < self._settings.sync_job_max_attempts:
            delay = self._settings.sync_job_retry_backoff_seconds * 2 ** max(
                job.attempts - 1, 0
            )
            job.status = SyncJobStatus.QUEUED
            job.available_at = now + timedelta(seconds=delay)
            job.finished_at = None
            logger.warning(
                "sync_job_retry_scheduled",
                job_id=job.id,
                attempts=job.attempts,
                retry_in_seconds=delay,
                error=message,
            )
        else:
            job.status = SyncJobStatus.FAILED
            job.finished_at = now
            logger.error(
                "sync_job_failed", job_id=job.id, attempts=job.attempts, error=message
            )
        self._job_repo.update(job)
        return ProcessResult(
            processed=True, job_id=job.id, status=job.status, error=message
        )


__all__ = [
    "AccountSyncer",
    "EnqueueResult",
    "ProcessResult",
    "STALE_RUNNING_MESSAGE",
    "SyncJobQueue",
    "coerce_sync_mode",
]
