"""Command-line interface for Portfolio Ledger."""

import argparse
import importlib
import sys
from collections import Counter
from decimal import Decimal
from pathlib import Path

from portfolio_ledger.config import get_settings
from portfolio_ledger.domain.entities import Account, Asset
from portfolio_ledger.domain.numbers import (
    derive_missing_valuation,
    valuation_consistent,
)
from portfolio_ledger.domain.parsing import parse_ledger_datetime, parse_ledger_decimal
from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import (
    AssetType,
    RecalcMode,
    ResolutionAction,
    SyncMode,
    SyncRequestedBy,
    TxType,
    VolatilityBucket,
)
from portfolio_ledger.exceptions import (
    AccountNotFoundError,
    AssetNotFoundError,
    PortfolioLedgerError,
    ValidationError,
    ValuationMismatchError,
)
from portfolio_ledger.logging_config import configure_logging
from portfolio_ledger.repositories.sqlite import (
    SQLiteAccountRepository,
    SQLiteAssetRepository,
    SQLiteDatabase,
    SQLiteLedgerTransactionRepository,
    SQLiteSyncJobRepository,
)
from portfolio_ledger.services.balance_reconciliation import (
    BalanceReconciliationService,
    ReconcileTarget,
)
from portfolio_ledger.services.cost_basis import CostBasisEngine
from portfolio_ledger.services.cost_basis_snapshots import CostBasisSnapshotService
from portfolio_ledger.services.sync_jobs import AccountSyncer, SyncJobQueue
from portfolio_ledger.services.transfer_review import TransferReviewService


def get_default_db_path() -> Path:
    """Get the default database path.

    ``PFL_SQLITE_PATH`` wins when set; otherwise the database lives in the
    user's home directory.
    """
    settings = get_settings()
    if "sqlite_path" in settings.model_fields_set:
        return settings.sqlite_path
    return Path.home() / ".portfolio_ledger" / "ledger.db"


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.database) if args.database else get_default_db_path()


def _open_database(args: argparse.Namespace) -> SQLiteDatabase | None:
    db_path = _db_path(args)
    if not db_path.exists():
        print(f"Error: Database not found at {db_path}")
        print("Run 'pfl init' to create a new database")
        return None
    return SQLiteDatabase(str(db_path))


def _parse_id_list(raw: str | None) -> list[int]:
    if not raw:
        return []
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise ValidationError(
            f"Invalid id list '{raw}' (expected comma-separated integers)",
            context={"raw": raw},
        ) from e


def create_app(
    db_path: Path | None = None,
) -> tuple[SQLiteDatabase, CostBasisSnapshotService]:
    """Create and initialize the application with database and services."""
    if db_path is None:
        db_path = get_default_db_path()

    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = SQLiteDatabase(str(db_path))
    db.initialize()

    snapshot_service = CostBasisSnapshotService(
        transaction_repo=SQLiteLedgerTransactionRepository(db),
        asset_repo=SQLiteAssetRepository(db),
    )
    return db, snapshot_service


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new database."""
    db_path = _db_path(args)

    if db_path.exists() and not args.force:
        print(f"Database already exists at {db_path}")
        print("Use --force to reinitialize (WARNING: will delete existing data)")
        return 1

    if db_path.exists() and args.force:
        db_path.unlink()

    db, _ = create_app(db_path)
    db.close()

    print(f"Initialized database at {db_path}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show database status."""
    db = _open_database(args)
    if db is None:
        return 1

    accounts = list(SQLiteAccountRepository(db).list_all())
    assets = list(SQLiteAssetRepository(db).list_all())
    transactions = SQLiteLedgerTransactionRepository(db).list_transactions()
    jobs = SQLiteSyncJobRepository(db).list_recent(limit=1000)

    print(f"Database: {_db_path(args)}")
    print(f"Accounts: {len(accounts)}")
    print(f"Assets: {len(assets)}")
    print(f"Transactions: {len(transactions)}")
    for tx_type, count in sorted(Counter(tx.tx_type for tx in transactions).items()):
        print(f"  - {tx_type}: {count}")
    if jobs:
        statuses = Counter(job.status.value for job in jobs)
        summary = ", ".join(f"{k}={v}" for k, v in sorted(statuses.items()))
        print(f"Sync jobs: {summary}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    settings = get_settings()
    print(f"{settings.app_name} v{settings.app_version}")
    return 0


def cmd_account_add(args: argparse.Namespace) -> int:
    """Add an account."""
    db = _open_database(args)
    if db is None:
        return 1

    account = SQLiteAccountRepository(db).add(
        Account(name=args.name, exchange_id=args.exchange_id)
    )
    print(f"Account created: {account.id} ({account.name})")
    return 0


def cmd_asset_add(args: argparse.Namespace) -> int:
    """Add an asset."""
    db = _open_database(args)
    if db is None:
        return 1

    asset = SQLiteAssetRepository(db).add(
        Asset(
            symbol=args.symbol.upper(),
            name=args.name or args.symbol.upper(),
            type=args.type,
            volatility_bucket=args.bucket,
        )
    )
    print(f"Asset created: {asset.id} ({asset.symbol})")
    return 0


def cmd_ledger_add(args: argparse.Namespace) -> int:
    """Record a ledger transaction."""
    db = _open_database(args)
    if db is None:
        return 1

    try:
        if SQLiteAccountRepository(db).get(args.account_id) is None:
            raise AccountNotFoundError(args.account_id)
        if SQLiteAssetRepository(db).get(args.asset_id) is None:
            raise AssetNotFoundError(args.asset_id)

        date_time = parse_ledger_datetime(args.date)
        quantity = parse_ledger_decimal(args.quantity)
        if quantity is None:
            print("Error: Quantity is required")
            return 1
        unit_price = parse_ledger_decimal(args.unit_price)
        total_value = parse_ledger_decimal(args.total_value)

        settings = get_settings()
        if not valuation_consistent(
            quantity,
            unit_price,
            total_value,
            settings.valuation_abs_tolerance,
            settings.valuation_rel_tolerance,
        ):
            raise ValuationMismatchError(
                str(quantity), str(unit_price), str(total_value)
            )
        unit_price, total_value = derive_missing_valuation(
            quantity, unit_price, total_value
        )

        tx = SQLiteLedgerTransactionRepository(db).add(
            LedgerTransaction(
                id=None,
                date_time=date_time,
                account_id=args.account_id,
                asset_id=args.asset_id,
                quantity=quantity,
                tx_type=args.type,
                external_reference=args.reference,
                unit_price_in_base=unit_price,
                total_value_in_base=total_value,
                notes=args.notes,
            )
        )
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    print(f"Transaction created: {tx.id}")
    return 0


def cmd_ledger_list(args: argparse.Namespace) -> int:
    """List ledger transactions."""
    db = _open_database(args)
    if db is None:
        return 1

    try:
        as_of = parse_ledger_datetime(args.as_of) if args.as_of else None
        asset_ids = _parse_id_list(args.asset_ids)
        account_ids = _parse_id_list(args.account_ids)
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    transactions = SQLiteLedgerTransactionRepository(db).list_transactions(
        as_of=as_of, asset_ids=asset_ids, account_ids=account_ids
    )
    if args.limit:
        transactions = transactions[-args.limit :]

    print(
        f"{'ID':<6} {'Date':<26} {'Type':<18} {'Account':<8} {'Asset':<8} "
        f"{'Quantity':>16} {'Total':>14} Reference"
    )
    print("-" * 110)
    for tx in transactions:
        total = "" if tx.total_value_in_base is None else str(tx.total_value_in_base)
        print(
            f"{tx.id:<6} {tx.date_time.isoformat():<26} {tx.tx_type:<18} "
            f"{tx.account_id:<8} {tx.asset_id:<8} {str(tx.quantity):>16} "
            f"{total:>14} {tx.reference}"
        )
    print(f"Total: {len(transactions)} transactions")
    return 0


def cmd_recalc(args: argparse.Namespace) -> int:
    """Recalculate cost basis and write RECALC reset snapshots."""
    db = _open_database(args)
    if db is None:
        return 1

    transaction_repo = SQLiteLedgerTransactionRepository(db)
    try:
        as_of = parse_ledger_datetime(args.as_of) if args.as_of else None
        if args.dry_run:
            result = CostBasisEngine().recalculate(
                transaction_repo.list_transactions(as_of=as_of), args.mode
            )
            print(f"{'Asset':<8} {'Account':<8} {'Quantity':>18} {'Cost basis':>18}")
            print("-" * 56)
            for position in result.positions.values():
                basis = (
                    str(position.cost_basis) if position.cost_basis_known else "unknown"
                )
                print(
                    f"{position.asset_id:<8} {position.account_id:<8} "
                    f"{str(position.quantity):>18} {basis:>18}"
                )
            diagnostics = result.diagnostics
        else:
            service = CostBasisSnapshotService(
                transaction_repo, SQLiteAssetRepository(db)
            )
            summary = service.recalculate(
                as_of=as_of,
                mode=args.mode,
                external_reference=args.reference,
                notes=args.notes,
            )
            print(f"Created {summary.created} cost basis resets")
            print(f"  Reference: {summary.external_reference}")
            print(f"  Skipped (unknown basis): {summary.skipped_unknown}")
            print(f"  Skipped (zero quantity): {summary.skipped_zero_quantity}")
            diagnostics = summary.diagnostics
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    if diagnostics:
        print(f"Transfer issues: {len(diagnostics)}")
        for diagnostic in diagnostics:
            print(f"  - {diagnostic.issue.value} {diagnostic.key} legs={list(diagnostic.leg_ids)}")
    return 0


def cmd_reset_bulk(args: argparse.Namespace) -> int:
    """Reset the cost basis of an asset across all holding accounts."""
    db = _open_database(args)
    if db is None:
        return 1

    service = CostBasisSnapshotService(
        SQLiteLedgerTransactionRepository(db), SQLiteAssetRepository(db)
    )
    try:
        created = service.create_bulk_reset(
            asset_id=args.asset_id,
            date_time=parse_ledger_datetime(args.date),
            unit_price=args.unit_price,
            total_value=args.total_value,
            external_reference=args.reference,
            notes=args.notes,
        )
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    print(f"Created {len(created)} cost basis resets")
    for tx in created:
        print(f"  - account {tx.account_id}: {tx.total_value_in_base}")
    return 0


def _transfer_review_service(db: SQLiteDatabase) -> TransferReviewService:
    return TransferReviewService(
        SQLiteLedgerTransactionRepository(db),
        SQLiteAccountRepository(db),
        SQLiteAssetRepository(db),
    )


def cmd_transfer_issues(args: argparse.Namespace) -> int:
    """List transfer groups the cost-basis engine could not pair."""
    db = _open_database(args)
    if db is None:
        return 1

    try:
        issues = _transfer_review_service(db).list_issues(
            asset_ids=_parse_id_list(args.asset_ids),
            account_ids=_parse_id_list(args.account_ids),
        )
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1
    if not issues:
        print("No transfer issues found")
        return 0

    for issue in issues:
        print(f"{issue.issue.value:<14} {issue.key}")
        for leg in issue.legs:
            print(
                f"  #{leg.id:<6} {leg.date_time.isoformat():<26} "
                f"{leg.account_name or leg.account_id!s:<20} {leg.quantity:>16} "
                f"{leg.asset_symbol}"
            )
    print(f"Total: {len(issues)} transfer issues")
    return 0


def cmd_transfer_resolve(args: argparse.Namespace) -> int:
    """Match or separate transfer legs by hand."""
    db = _open_database(args)
    if db is None:
        return 1

    try:
        result = _transfer_review_service(db).resolve(
            _parse_id_list(args.leg_ids), args.action
        )
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    print(result.message)
    if result.external_reference:
        print(f"  Reference: {result.external_reference}")
    return 0


def _parse_target(raw: str) -> ReconcileTarget:
    parts = raw.split(":", 2)
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(
            f"Invalid target '{raw}' (expected ACCOUNT_ID:ASSET_ID:QUANTITY)"
        )
    try:
        return ReconcileTarget(int(parts[0]), int(parts[1]), parts[2])
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid target '{raw}': {e}") from e


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Preview or commit a balance reconciliation batch."""
    db = _open_database(args)
    if db is None:
        return 1

    service = BalanceReconciliationService(
        SQLiteLedgerTransactionRepository(db),
        SQLiteAccountRepository(db),
        SQLiteAssetRepository(db),
    )
    try:
        as_of = parse_ledger_datetime(args.as_of)
        epsilon = parse_ledger_decimal(args.epsilon) or Decimal("1e-9")
        options = {
            "epsilon": epsilon,
            "external_reference": args.reference,
            "replace_existing": not args.no_replace,
        }
        if args.commit:
            plan = service.commit(as_of, args.target, notes=args.notes, **options)
        else:
            plan = service.preview(as_of, args.target, **options)
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    print(
        f"{'Account':<8} {'Asset':<8} {'Current':>18} {'Target':>18} "
        f"{'Delta':>18} Action"
    )
    print("-" * 84)
    for row in plan.rows:
        action = "create" if row.will_create else "-"
        print(
            f"{row.account_id:<8} {row.asset_id:<8} {str(row.current_quantity):>18} "
            f"{str(row.target_quantity):>18} {str(row.delta_quantity):>18} {action}"
        )
    if plan.committed:
        print(f"Created {plan.created} reconciliation rows")
    else:
        print(f"Preview only: {len(plan.pending)} rows would be created")
    return 0


def _load_syncer(path: str) -> AccountSyncer:
    """Instantiate an AccountSyncer from a ``module:ClassName`` path."""
    module_name, _, class_name = path.partition(":")
    if not module_name or not class_name:
        raise ValueError(f"Invalid syncer path '{path}' (expected module:ClassName)")
    syncer_class = getattr(importlib.import_module(module_name), class_name)
    syncer = syncer_class()
    if not isinstance(syncer, AccountSyncer):
        raise TypeError(f"{path} is not an AccountSyncer")
    return syncer


def cmd_sync_enqueue(args: argparse.Namespace) -> int:
    """Queue an exchange sync for an account."""
    db = _open_database(args)
    if db is None:
        return 1

    if SQLiteAccountRepository(db).get(args.account_id) is None:
        print(f"Error: Account not found: {args.account_id}")
        return 1

    try:
        since = parse_ledger_datetime(args.since) if args.since else None
    except PortfolioLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    queue = SyncJobQueue(SQLiteSyncJobRepository(db))
    result = queue.enqueue(
        account_id=args.account_id,
        exchange_id=args.exchange_id,
        mode=args.mode,
        requested_by=SyncRequestedBy.CRON if args.cron else SyncRequestedBy.MANUAL,
        since=since,
    )
    if result.deduped:
        print(f"Sync job {result.job_id} already {result.status.value}")
    else:
        print(f"Sync job {result.job_id} queued")
    return 0


def cmd_sync_work(args: argparse.Namespace) -> int:
    """Process queued sync jobs."""
    db = _open_database(args)
    if db is None:
        return 1

    try:
        syncer = _load_syncer(args.syncer)
    except (ImportError, AttributeError, TypeError, ValueError) as e:
        print(f"Error: Could not load syncer: {e}")
        return 1

    queue = SyncJobQueue(SQLiteSyncJobRepository(db), syncer)
    processed = 0
    failures = 0
    while processed < args.max_jobs:
        outcome = queue.process_next()
        if not outcome.processed:
            break
        processed += 1
        line = f"Job {outcome.job_id}: {outcome.status.value}"
        if outcome.error:
            failures += 1
            line += f" ({outcome.error})"
        print(line)

    if processed == 0:
        print("No queued sync jobs")
    return 1 if failures else 0


def cmd_sync_list(args: argparse.Namespace) -> int:
    """List recent sync jobs."""
    db = _open_database(args)
    if db is None:
        return 1

    jobs = SQLiteSyncJobRepository(db).list_recent(limit=args.limit)
    print(
        f"{'ID':<6} {'Account':<8} {'Exchange':<10} {'Mode':<9} {'Status':<8} "
        f"{'Tries':<6} Error"
    )
    print("-" * 80)
    for job in jobs:
        print(
            f"{job.id:<6} {job.account_id:<8} {job.exchange_id:<10} "
            f"{job.mode.value:<9} {job.status.value:<8} {job.attempts:<6} "
            f"{job.error_message or ''}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pfl",
        description="Portfolio Ledger - Cost basis and transfer reconciliation",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.set_defaults(func=cmd_init)

    # status command
    status_parser = subparsers.add_parser("status", help="Show database status")
    status_parser.set_defaults(func=cmd_status)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # account command group
    account_parser = subparsers.add_parser("account", help="Account commands")
    account_subparsers = account_parser.add_subparsers(
        dest="account_command", help="Account subcommands"
    )
    account_add_parser = account_subparsers.add_parser("add", help="Add an account")
    account_add_parser.add_argument("name", help="Account name")
    account_add_parser.add_argument("--exchange-id", help="Exchange identifier")
    account_add_parser.set_defaults(func=cmd_account_add)

    # asset command group
    asset_parser = subparsers.add_parser("asset", help="Asset commands")
    asset_subparsers = asset_parser.add_subparsers(
        dest="asset_command", help="Asset subcommands"
    )
    asset_add_parser = asset_subparsers.add_parser("add", help="Add an asset")
    asset_add_parser.add_argument("symbol", help="Ticker symbol")
    asset_add_parser.add_argument("--name", help="Display name")
    asset_add_parser.add_argument(
        "--type",
        choices=[t.value for t in AssetType],
        default=AssetType.CRYPTO.value,
        help="Asset type",
    )
    asset_add_parser.add_argument(
        "--bucket",
        choices=[b.value for b in VolatilityBucket],
        default=VolatilityBucket.VOLATILE.value,
        help="Volatility bucket",
    )
    asset_add_parser.set_defaults(func=cmd_asset_add)

    # ledger command group
    ledger_parser = subparsers.add_parser("ledger", help="Ledger commands")
    ledger_subparsers = ledger_parser.add_subparsers(
        dest="ledger_command", help="Ledger subcommands"
    )

    # ledger add
    ledger_add_parser = ledger_subparsers.add_parser(
        "add", help="Record a ledger transaction"
    )
    ledger_add_parser.add_argument("--account-id", type=int, required=True)
    ledger_add_parser.add_argument("--asset-id", type=int, required=True)
    ledger_add_parser.add_argument(
        "--quantity", required=True, help="Signed quantity (positive = inflow)"
    )
    ledger_add_parser.add_argument(
        "--type",
        choices=[t.value for t in TxType],
        required=True,
        help="Transaction type",
    )
    ledger_add_parser.add_argument(
        "--date", required=True, help="Timestamp (ISO 8601, UTC if no offset)"
    )
    ledger_add_parser.add_argument("--unit-price", help="Unit price in base currency")
    ledger_add_parser.add_argument(
        "--total-value", help="Signed total value in base currency"
    )
    ledger_add_parser.add_argument("--reference", help="External reference")
    ledger_add_parser.add_argument("--notes", help="Free-form notes")
    ledger_add_parser.set_defaults(func=cmd_ledger_add)

    # ledger list
    ledger_list_parser = ledger_subparsers.add_parser(
        "list", help="List ledger transactions"
    )
    ledger_list_parser.add_argument("--asset-ids", help="Comma-separated asset IDs")
    ledger_list_parser.add_argument("--account-ids", help="Comma-separated account IDs")
    ledger_list_parser.add_argument("--as-of", help="Only rows at or before this time")
    ledger_list_parser.add_argument(
        "--limit", type=int, default=0, help="Show only the most recent N rows"
    )
    ledger_list_parser.set_defaults(func=cmd_ledger_list)

    # recalc command
    recalc_parser = subparsers.add_parser(
        "recalc", help="Recalculate cost basis and write reset snapshots"
    )
    recalc_parser.add_argument("--as-of", help="Snapshot time (default: now)")
    recalc_parser.add_argument(
        "--mode",
        choices=[m.value for m in RecalcMode],
        default=RecalcMode.PURE.value,
        help="Recalculation mode (default: PURE)",
    )
    recalc_parser.add_argument("--reference", help="Snapshot reference")
    recalc_parser.add_argument("--notes", help="Notes for the reset rows")
    recalc_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print positions without writing reset rows",
    )
    recalc_parser.set_defaults(func=cmd_recalc)

    # reset command group
    reset_parser = subparsers.add_parser("reset", help="Cost basis reset commands")
    reset_subparsers = reset_parser.add_subparsers(
        dest="reset_command", help="Reset subcommands"
    )
    reset_bulk_parser = reset_subparsers.add_parser(
        "bulk", help="Reset an asset's cost basis in every holding account"
    )
    reset_bulk_parser.add_argument("--asset-id", type=int, required=True)
    reset_bulk_parser.add_argument("--date", required=True, help="Reset timestamp")
    price_group = reset_bulk_parser.add_mutually_exclusive_group(required=True)
    price_group.add_argument("--unit-price", help="Cost per unit")
    price_group.add_argument("--total-value", help="Total cost split by quantity")
    reset_bulk_parser.add_argument("--reference", help="External reference")
    reset_bulk_parser.add_argument("--notes", help="Notes for the reset rows")
    reset_bulk_parser.set_defaults(func=cmd_reset_bulk)

    # transfer command group
    transfer_parser = subparsers.add_parser("transfer", help="Transfer review commands")
    transfer_subparsers = transfer_parser.add_subparsers(
        dest="transfer_command", help="Transfer subcommands"
    )

    transfer_issues_parser = transfer_subparsers.add_parser(
        "issues", help="List unmatched or problematic transfers"
    )
    transfer_issues_parser.add_argument("--asset-ids", help="Comma-separated asset IDs")
    transfer_issues_parser.add_argument(
        "--account-ids", help="Comma-separated account IDs"
    )
    transfer_issues_parser.set_defaults(func=cmd_transfer_issues)

    transfer_resolve_parser = transfer_subparsers.add_parser(
        "resolve", help="Match or separate transfer legs"
    )
    transfer_resolve_parser.add_argument(
        "--leg-ids", required=True, help="Comma-separated transaction IDs"
    )
    transfer_resolve_parser.add_argument(
        "--action",
        choices=[a.value for a in ResolutionAction],
        required=True,
        help="MATCH pairs the legs; SEPARATE turns them into deposits/withdrawals",
    )
    transfer_resolve_parser.set_defaults(func=cmd_transfer_resolve)

    # reconcile command
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Reconcile ledger quantities to observed balances"
    )
    reconcile_parser.add_argument("--as-of", required=True, help="Balance timestamp")
    reconcile_parser.add_argument(
        "--target",
        action="append",
        type=_parse_target,
        required=True,
        help="ACCOUNT_ID:ASSET_ID:QUANTITY (repeatable)",
    )
    reconcile_parser.add_argument("--epsilon", help="Ignore deltas up to this size")
    reconcile_parser.add_argument("--reference", help="Batch reference")
    reconcile_parser.add_argument("--notes", help="Notes for created rows")
    reconcile_parser.add_argument(
        "--no-replace",
        action="store_true",
        help="Keep earlier rows of the same batch",
    )
    reconcile_parser.add_argument(
        "--commit", action="store_true", help="Write rows instead of previewing"
    )
    reconcile_parser.set_defaults(func=cmd_reconcile)

    # sync command group
    sync_parser = subparsers.add_parser("sync", help="Exchange sync queue commands")
    sync_subparsers = sync_parser.add_subparsers(
        dest="sync_command", help="Sync subcommands"
    )

    sync_enqueue_parser = sync_subparsers.add_parser(
        "enqueue", help="Queue a sync for an account"
    )
    sync_enqueue_parser.add_argument("--account-id", type=int, required=True)
    sync_enqueue_parser.add_argument("--exchange-id", required=True)
    sync_enqueue_parser.add_argument(
        "--mode",
        choices=[m.value for m in SyncMode],
        default=SyncMode.TRADES.value,
    )
    sync_enqueue_parser.add_argument("--since", help="Only fetch activity after this")
    sync_enqueue_parser.add_argument(
        "--cron", action="store_true", help="Mark the job as scheduled"
    )
    sync_enqueue_parser.set_defaults(func=cmd_sync_enqueue)

    sync_work_parser = sync_subparsers.add_parser(
        "work", help="Process queued sync jobs"
    )
    sync_work_parser.add_argument(
        "--syncer", required=True, help="AccountSyncer class as module:ClassName"
    )
    sync_work_parser.add_argument(
        "--max-jobs", type=int, default=1, help="Stop after N jobs (default: 1)"
    )
    sync_work_parser.set_defaults(func=cmd_sync_work)

    sync_list_parser = sync_subparsers.add_parser("list", help="List recent sync jobs")
    sync_list_parser.add_argument("--limit", type=int, default=20)
    sync_list_parser.set_defaults(func=cmd_sync_list)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if not hasattr(args, "func"):
        # Command group given without a subcommand
        subparsers.choices[args.command].print_help()
        return 1

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
