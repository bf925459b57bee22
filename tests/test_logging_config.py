"""Tests for structured logging setup."""

import logging
from decimal import Decimal

import pytest
import structlog

from portfolio_ledger.config import Settings
from portfolio_ledger.logging_config import (
    build_processors,
    configure_logging,
    get_logger,
    log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


class TestBuildProcessors:
    def test_json_format_ends_with_json_renderer(self):
        processors = build_processors(Settings(environment="testing", log_format="json"))

        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_format_ends_with_console_renderer(self):
        processors = build_processors(
            Settings(environment="testing", log_format="console")
        )

        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_lines_carry_app_fields_and_plain_decimals(self):
        settings = Settings(environment="testing", log_format="json")
        event = {"event": "cost_basis_recalculated", "cost_basis": Decimal("12.50")}

        for processor in build_processors(settings)[:-1]:
            event = processor(logging.getLogger(__name__), "info", event)

        assert event["cost_basis"] == "12.50"
        assert event["app"] == settings.app_name
        assert event["environment"] == "testing"


class TestConfigureLogging:
    def test_json_and_console_formats(self):
        for log_format in ("json", "console"):
            configure_logging(Settings(environment="testing", log_format=log_format))

            assert get_logger(__name__) is not None

    def test_log_file_attached_once(self, tmp_path):
        log_file = tmp_path / "logs" / "pfl.log"
        settings = Settings(environment="testing", log_file=log_file)

        configure_logging(settings)
        configure_logging(settings)

        root = logging.getLogger()
        handlers = [
            h for h in root.handlers
            if isinstance(h, logging.FileHandler) and h.baseFilename == str(log_file)
        ]
        try:
            assert log_file.parent.exists()
            assert len(handlers) == 1
        finally:
            for handler in handlers:
                root.removeHandler(handler)
                handler.close()


class TestLogContext:
    def test_binds_and_unbinds(self):
        with log_context(sync_job_id=5, exchange_id="binance"):
            assert structlog.contextvars.get_contextvars() == {
                "sync_job_id": 5,
                "exchange_id": "binance",
            }

        assert structlog.contextvars.get_contextvars() == {}

    def test_none_fields_are_skipped(self):
        with log_context(recalc_mode="PURE", account_id=None):
            assert structlog.contextvars.get_contextvars() == {"recalc_mode": "PURE"}

    def test_outer_fields_survive_nested_block(self):
        with log_context(recalc_mode="PURE"):
            with log_context(sync_job_id=1):
                pass

            assert structlog.contextvars.get_contextvars() == {"recalc_mode": "PURE"}
