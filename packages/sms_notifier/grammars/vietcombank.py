"""Vietcombank SMS grammar.

Layout::

    SD TK 0811000010904 +1,400,000VND luc 11-08-2025 11:26:18. SD 29,796,653VND. Ref <free text>

- account: ``TK <digits>``
- amount: ``[+|-]<digits with commas>VND`` (sign required)
- time: ``luc DD-MM-YYYY HH:MM:SS``
- balance: ``SD <digits>VND``. Messages for fee-bearing transactions carry two
  balance figures; the second one is the balance after the fee and wins.
- description: ``Ref`` up to the end of the message
"""

from __future__ import annotations

import re

from ..models import Bank, TransactionType
from .common import BankGrammar, first_group, parse_number

_BALANCE_RE = re.compile(r"SD ([\d,]+)VND")
# With a single balance figure, require the ". SD " anchor so the figure is
# the sentence-level balance and not part of the leading "SD TK" header.
_BALANCE_SINGLE_RE = re.compile(r"\. SD ([\d,]+)VND")


def _extract_balance(text: str) -> int:
    figures = _BALANCE_RE.findall(text)
    if len(figures) >= 2:
        return parse_number(figures[1])
    if len(figures) == 1:
        return parse_number(first_group(_BALANCE_SINGLE_RE, text))
    return 0


GRAMMAR = BankGrammar(
    bank=Bank.VIETCOMBANK,
    sender="Vietcombank",
    markers=("SD TK", "luc", "Ref"),
    time_pattern=re.compile(
        r"luc (?P<day>\d{2})-(?P<month>\d{2})-(?P<year>\d{4}) "
        r"(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"
    ),
    account_pattern=re.compile(r"TK (\d+)"),
    amount_pattern=re.compile(r"([+-])([\d,]+)VND"),
    description_pattern=re.compile(r"Ref (.+)$", re.DOTALL),
    sign_types={
        "+": TransactionType.CREDIT,
        "-": TransactionType.DEBIT,
    },
    extract_balance=_extract_balance,
)

SAMPLE_SMS = (
    "SD TK 0811000010904 +1,400,000VND luc 11-08-2025 11:26:18. SD 29,796,653VND. "
    "Ref TKP#NP82501242920449VCB#5223IBT1jQNIAZK3.MCF8BG45FPZ5PNP 490235910-110825-11..."
)

__all__ = ["GRAMMAR", "SAMPLE_SMS"]
