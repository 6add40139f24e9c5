"""Shared pieces of the per-bank SMS grammars.

A :class:`BankGrammar` is a plain record: literal detection markers, compiled
patterns, a sign table and a balance extractor. The parser dispatches on the
detected :class:`~sms_notifier.models.Bank` through a table of these records;
there is no grammar class hierarchy.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..models import Bank, TransactionType

# Vietnamese banks print local time; Vietnam has observed UTC+07:00 without DST
# since 1975, so a fixed offset is exact.
BANK_TZ = timezone(timedelta(hours=7), "ICT")

_THOUSANDS_RE = re.compile(r",")


@dataclass(frozen=True, slots=True)
class BankGrammar:
    """Detection markers and extraction rules for one bank's SMS format.

    Attributes
    ----------
    bank:
        The bank this grammar recognizes.
    sender:
        Display label attached to parsed transactions.
    markers:
        Literal substrings that must *all* be present for detection.
    time_pattern:
        Pattern with groups ``day, month, year, hour, minute`` and optionally
        ``second``.
    account_pattern:
        Pattern whose first group is the account digits.
    amount_pattern:
        Pattern with groups ``(sign, digits)``; ``sign`` may be empty.
    description_pattern:
        Pattern whose first group is the free-text narrative.
    sign_types:
        Sign token → transaction type. Tokens absent from the table map to
        ``TransactionType.UNKNOWN``.
    extract_balance:
        Callable mapping the full SMS text to the post-transaction balance.
    """

    bank: Bank
    sender: str
    markers: tuple[str, ...]
    time_pattern: re.Pattern[str]
    account_pattern: re.Pattern[str]
    amount_pattern: re.Pattern[str]
    description_pattern: re.Pattern[str]
    sign_types: Mapping[str, TransactionType]
    extract_balance: Callable[[str], int]

    def matches(self, text: str) -> bool:
        return all(marker in text for marker in self.markers)


def parse_number(raw: str | None) -> int:
    """Convert ``"1,400,000"`` to ``1400000``; absent or malformed → ``0``."""

    if not raw:
        return 0
    try:
        return int(_THOUSANDS_RE.sub("", raw.strip()))
    except ValueError:
        return 0


def first_group(pattern: re.Pattern[str], text: str) -> str | None:
    m = pattern.search(text)
    return m.group(1) if m else None


def parse_local_time(pattern: re.Pattern[str], text: str) -> int | None:
    """Return epoch milliseconds for the first time match, or ``None``.

    Out-of-range dates (e.g. ``31/02/2025``) yield ``None`` rather than
    rolling over into the next month.
    """

    m = pattern.search(text)
    if not m:
        return None
    parts = m.groupdict()
    try:
        dt = datetime(
            int(parts["year"]),
            int(parts["month"]),
            int(parts["day"]),
            int(parts["hour"]),
            int(parts["minute"]),
            int(parts.get("second") or 0),
            tzinfo=BANK_TZ,
        )
    except ValueError:
        return None
    return int(dt.timestamp() * 1000)


__all__ = [
    "BANK_TZ",
    "BankGrammar",
    "parse_number",
    "first_group",
    "parse_local_time",
]
