"""Parsing of hand-entered ledger values (amounts and timestamps)."""

import re
from datetime import datetime
from decimal import Decimal

from dateutil import parser as date_parser

from portfolio_ledger.domain.numbers import to_decimal
from portfolio_ledger.domain.transactions import NumericInput, ensure_utc
from portfolio_ledger.exceptions import InvalidDateTimeError, InvalidDecimalError

_WHITESPACE_RE = re.compile(r"[\s\u00a0\u1680\u2000-\u200a\u202f\u205f]")
_NON_NUMERIC_RE = re.compile(r"[^\d.,]")


def _normalize_decimal_string(value: str) -> str | None:
    """Strip grouping, currency symbols and sign notation down to ``-123.45``."""
    cleaned = value.strip()
    if not cleaned:
        return None

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1].strip()

    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]

    cleaned = _WHITESPACE_RE.sub("", cleaned)
    cleaned = _NON_NUMERIC_RE.sub("", cleaned)
    if not cleaned:
        return None

    dot_count = cleaned.count(".")
    comma_count = cleaned.count(",")
    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")

    separator: str | None = None
    if dot_count and comma_count:
        separator = "." if last_dot > last_comma else ","
    elif dot_count == 1 and not comma_count:
        separator = "."
    elif comma_count == 1 and not dot_count:
        digits_after = len(cleaned) - last_comma - 1
        # "1,5" and "1,50" are decimals, "1,500" is a thousands group
        if 0 < digits_after <= 2:
            separator = ","

    if separator:
        index = last_dot if separator == "." else last_comma
        integer_part = re.sub(r"[.,]", "", cleaned[:index])
        fraction_part = re.sub(r"[.,]", "", cleaned[index + 1 :])
        normalized = f"{integer_part}.{fraction_part}"
    else:
        normalized = re.sub(r"[.,]", "", cleaned)

    if not normalized or normalized == ".":
        return None
    return f"-{normalized}" if negative else normalized


def parse_ledger_decimal(raw: NumericInput) -> Decimal | None:
    """Parse a user-entered amount such as ``"(1.234,56 €)"``.

    Returns None for empty input and raises InvalidDecimalError for
    anything else that is not a finite number.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        parsed = to_decimal(raw)
        if parsed is None:
            raise InvalidDecimalError(str(raw), "not a finite number")
        return parsed

    text = str(raw).strip()
    if not text:
        return None

    normalized = _normalize_decimal_string(text)
    parsed = to_decimal(normalized) if normalized is not None else None
    if parsed is None:
        raise InvalidDecimalError(text)
    return parsed


def parse_ledger_datetime(raw: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    text = (raw or "").strip()
    if not text:
        raise InvalidDateTimeError(raw or "")
    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError) as e:
        raise InvalidDateTimeError(text) from e
    return ensure_utc(parsed)


__all__ = ["parse_ledger_decimal", "parse_ledger_datetime"]
