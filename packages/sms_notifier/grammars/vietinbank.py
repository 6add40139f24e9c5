"""VietinBank SMS grammar.

Layout (pipe separated, single line)::

    11/08/2025 10:33|TK:103811795555|GD:-4,000,000VND|SDC:63,908,063VND|ND:<free text>

- time: ``DD/MM/YYYY HH:MM``
- account: ``TK:<digits>``
- amount: ``GD:[+|-]<digits with commas>VND``; the sign is optional and a
  missing sign is a credit
- balance after the transaction: ``SDC:<digits>VND``
- description: ``ND:`` up to the end of the message
"""

from __future__ import annotations

import re

from ..models import Bank, TransactionType
from .common import BankGrammar, first_group, parse_number

_BALANCE_RE = re.compile(r"SDC:([\d,]+)VND")


def _extract_balance(text: str) -> int:
    return parse_number(first_group(_BALANCE_RE, text))


GRAMMAR = BankGrammar(
    bank=Bank.VIETINBANK,
    sender="VietinBank",
    markers=("TK:", "GD:", "SDC:"),
    time_pattern=re.compile(
        r"(?P<day>\d{2})/(?P<month>\d{2})/(?P<year>\d{4})\s+(?P<hour>\d{2}):(?P<minute>\d{2})"
    ),
    account_pattern=re.compile(r"TK:(\d+)"),
    amount_pattern=re.compile(r"GD:([+-]?)([\d,]+)VND"),
    description_pattern=re.compile(r"ND:(.+)$", re.DOTALL),
    # Only "-" marks money leaving the account; "+" and an absent sign are
    # both credits for this bank.
    sign_types={
        "-": TransactionType.DEBIT,
        "+": TransactionType.CREDIT,
        "": TransactionType.CREDIT,
    },
    extract_balance=_extract_balance,
)

SAMPLE_SMS = (
    "11/08/2025 10:33|TK:103811795555|GD:-4,000,000VND|SDC:63,908,063VND|"
    "ND:CT DI:610K2580GPLHU0GZ TRINH MINH THOM chuyen tien; tai iPay"
)

__all__ = ["GRAMMAR", "SAMPLE_SMS"]
