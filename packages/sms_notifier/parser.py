"""Bank SMS parser.

Public functions
----------------
- :func:`detect_bank`: marker-based bank detection.
- :func:`parse`: full extraction into a :class:`~sms_notifier.models.Transaction`.
  Never raises: every failure is reported through ``is_valid=False`` and
  ``error``.
- :func:`validate`: cheap pre-flight accept/reject (length + markers), no
  numeric extraction.
- :func:`require_valid`: raise :class:`~sms_notifier.errors.FormatError` for
  callers that prefer exceptions.
- :func:`sample_messages` / :func:`sample_transactions`: fixed fixtures for
  demos and manual testing.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import replace

from .errors import FormatError
from .grammars import GRAMMARS, SAMPLE_SMS, BankGrammar
from .grammars.common import first_group, parse_local_time, parse_number
from .logging_setup import get_logger
from .models import Bank, Transaction, TransactionType, ValidationResult

MIN_SMS_LENGTH = 10

_logger = get_logger("sms_notifier.parser")


def _now_millis() -> int:
    return int(time.time() * 1000)


def detect_bank(text: str) -> Bank:
    """Return the first bank whose markers all occur in ``text``."""

    for bank, grammar in GRAMMARS.items():
        if grammar.matches(text):
            return bank
    return Bank.UNKNOWN


def _invalid(text: str, sender: str, reason: str) -> Transaction:
    return Transaction(
        bank=Bank.UNKNOWN,
        sender=sender or "Unknown Bank",
        raw_content=text,
        timestamp_millis=None,
        account_number=None,
        transaction_amount_minor=0,
        transaction_type=TransactionType.UNKNOWN,
        balance_minor=0,
        description=text,
        is_valid=False,
        parsed_at_millis=_now_millis(),
        error=reason,
    )


def _passes_gate(
    timestamp_millis: int | None, account_number: str | None, amount: int, balance: int
) -> bool:
    return (
        timestamp_millis is not None
        and account_number is not None
        and amount > 0
        and balance >= 0
    )


def _extract(grammar: BankGrammar, text: str) -> Transaction:
    timestamp = parse_local_time(grammar.time_pattern, text)
    account = first_group(grammar.account_pattern, text)

    amount = 0
    tx_type = TransactionType.UNKNOWN
    m = grammar.amount_pattern.search(text)
    if m:
        sign, digits = m.group(1), m.group(2)
        amount = parse_number(digits)
        tx_type = grammar.sign_types.get(sign, TransactionType.UNKNOWN)

    balance = grammar.extract_balance(text)
    description = (first_group(grammar.description_pattern, text) or "").strip()

    is_valid = _passes_gate(timestamp, account, amount, balance)
    return Transaction(
        bank=grammar.bank,
        sender=grammar.sender,
        raw_content=text,
        timestamp_millis=timestamp,
        account_number=account,
        transaction_amount_minor=amount,
        transaction_type=tx_type,
        balance_minor=balance,
        description=description,
        is_valid=is_valid,
        parsed_at_millis=_now_millis(),
        error=None if is_valid else "Incomplete transaction fields",
    )


def parse(text: str, sender_hint: str = "") -> Transaction:
    """Parse a bank SMS into a :class:`Transaction`.

    Parameters
    ----------
    text:
        Raw SMS body.
    sender_hint:
        Sender label from the relay; used only when the bank is not
        recognized (recognized banks carry their own display label).
    """

    if not isinstance(text, str) or not text.strip():
        return _invalid(text if isinstance(text, str) else "", sender_hint, "Invalid input")

    bank = detect_bank(text)
    grammar = GRAMMARS.get(bank)
    if grammar is None:
        return _invalid(text, sender_hint, "Unknown bank format")

    try:
        return _extract(grammar, text)
    except Exception as e:  # noqa: BLE001 - parse failures are data, not exceptions
        _logger.warning("extraction failed for %s SMS: %s", bank.value, e)
        failed = _invalid(text, grammar.sender, f"Extraction failed: {e}")
        # Keep the detected bank so the failure is attributable.
        return replace(failed, bank=bank)


def validate(text: str) -> ValidationResult:
    """Cheap pre-flight check: minimum length and a full marker set."""

    if not isinstance(text, str) or not text:
        return ValidationResult(is_valid=False, error="SMS text is required")
    if len(text.strip()) < MIN_SMS_LENGTH:
        return ValidationResult(is_valid=False, error="SMS text is too short")
    bank = detect_bank(text)
    if bank is Bank.UNKNOWN:
        return ValidationResult(is_valid=False, error="Unknown bank format")
    return ValidationResult(is_valid=True, bank=bank)


def require_valid(tx: Transaction) -> Transaction:
    """Return ``tx`` unchanged or raise :class:`FormatError` when invalid."""

    if not tx.is_valid:
        raise FormatError(tx.error or "Invalid transaction", raw_content=tx.raw_content)
    return tx


def sample_messages() -> Mapping[Bank, str]:
    """The documented SMS fixtures, one per supported bank."""

    return SAMPLE_SMS


def sample_transactions(now_millis: int | None = None) -> tuple[Transaction, ...]:
    """Illustrative transactions for demos.

    The first two are the parsed :func:`sample_messages`; the remaining three
    are synthetic records with long descriptions to exercise surface layout,
    stamped one second apart starting at ``now_millis``.
    """

    base = _now_millis() if now_millis is None else now_millis
    parsed = tuple(parse(text, bank.value) for bank, text in SAMPLE_SMS.items())

    def _demo(
        i: int, bank: Bank, account: str, tx_type: TransactionType, amount: int, balance: int,
        description: str,
    ) -> Transaction:
        return Transaction(
            bank=bank,
            sender=GRAMMARS[bank].sender,
            raw_content=description,
            timestamp_millis=base + i * 1000,
            account_number=account,
            transaction_amount_minor=amount,
            transaction_type=tx_type,
            balance_minor=balance,
            description=description,
            is_valid=True,
            parsed_at_millis=base,
        )

    demos = (
        _demo(
            0, Bank.VIETINBANK, "103811795555", TransactionType.CREDIT, 1_500_000, 65_408_063,
            "Nhan tien tu NGUYEN VAN A Luong thang 8/2025",
        ),
        _demo(
            1, Bank.VIETCOMBANK, "0811000010904", TransactionType.DEBIT, 800_000, 28_996_653,
            "ATM WITHDRAW ATM001 " + "Luong thang 8/2025 " * 4,
        ),
        _demo(
            2, Bank.VIETINBANK, "103811795555", TransactionType.CREDIT, 2_200_000, 67_608_063,
            "Luongthang8/2025" * 12,
        ),
    )
    return parsed + demos


__all__ = [
    "MIN_SMS_LENGTH",
    "detect_bank",
    "parse",
    "validate",
    "require_valid",
    "sample_messages",
    "sample_transactions",
]
