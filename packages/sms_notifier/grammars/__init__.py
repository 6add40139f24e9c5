"""Per-bank SMS grammars and the dispatch table keyed by bank.

Detection order follows the table's insertion order; the first grammar whose
markers are all present wins.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from ..models import Bank
from . import vietcombank, vietinbank
from .common import BANK_TZ, BankGrammar, parse_number

GRAMMARS: Mapping[Bank, BankGrammar] = MappingProxyType(
    {
        Bank.VIETINBANK: vietinbank.GRAMMAR,
        Bank.VIETCOMBANK: vietcombank.GRAMMAR,
    }
)

SAMPLE_SMS: Mapping[Bank, str] = MappingProxyType(
    {
        Bank.VIETINBANK: vietinbank.SAMPLE_SMS,
        Bank.VIETCOMBANK: vietcombank.SAMPLE_SMS,
    }
)

__all__ = ["BANK_TZ", "BankGrammar", "GRAMMARS", "SAMPLE_SMS", "parse_number"]
