"""Display helpers (Vietnamese number and date conventions)."""

from __future__ import annotations

from datetime import datetime

from .grammars.common import BANK_TZ

_PLACEHOLDER = "--:--"


def format_currency(amount: int | None) -> str:
    """``4000000`` → ``"4.000.000"`` (``.`` groups thousands in vi-VN)."""

    if amount is None or isinstance(amount, bool):
        return "0"
    return f"{int(amount):,}".replace(",", ".")


def _to_local(timestamp_millis: int | None) -> datetime | None:
    if timestamp_millis is None:
        return None
    try:
        return datetime.fromtimestamp(timestamp_millis / 1000, tz=BANK_TZ)
    except (OverflowError, OSError, ValueError):
        return None


def format_datetime(timestamp_millis: int | None) -> str:
    dt = _to_local(timestamp_millis)
    return dt.strftime("%d/%m/%Y %H:%M") if dt else _PLACEHOLDER


def format_time(timestamp_millis: int | None) -> str:
    dt = _to_local(timestamp_millis)
    return dt.strftime("%d/%m %H:%M") if dt else _PLACEHOLDER


def mask_secret(value: str | None) -> str | None:
    """Keep only the last four characters of a credential for display."""

    if not value:
        return None
    return "***" + value[-4:]


__all__ = ["format_currency", "format_datetime", "format_time", "mask_secret"]
