"""Data models for ``sms_notifier``.

Two kinds of models live here:

- Frozen dataclasses for in-process records (:class:`Transaction`,
  :class:`MessageRecord`, :class:`ValidationResult`). They are immutable once
  produced; enrichment goes through :func:`dataclasses.replace`.
- Pydantic DTOs for the relay's JSON stream (:class:`RelayEvent` and friends).
  Extras are allowed because the relay adds fields over time and we only rely
  on a small subset.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Bank(StrEnum):
    VIETINBANK = "vietinbank"
    VIETCOMBANK = "vietcombank"
    UNKNOWN = "unknown"


class TransactionType(StrEnum):
    CREDIT = "credit"
    DEBIT = "debit"
    UNKNOWN = "unknown"


SUPPORTED_BANKS: frozenset[Bank] = frozenset({Bank.VIETINBANK, Bank.VIETCOMBANK})

# ---------------------------------------------------------------------------
# Core records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A parsed bank SMS.

    ``is_valid`` is True only when ``timestamp_millis`` and ``account_number``
    are present, ``transaction_amount_minor > 0`` and ``balance_minor >= 0``.
    Amounts are integer VND (the currency has no minor unit in practice).

    The last three fields are metadata attached by the stream client after
    parsing; they are ``None`` for manually parsed text.
    """

    bank: Bank
    sender: str
    raw_content: str
    timestamp_millis: int | None
    account_number: str | None
    transaction_amount_minor: int
    transaction_type: TransactionType
    balance_minor: int
    description: str
    is_valid: bool
    parsed_at_millis: int
    error: str | None = None
    original_sender: str | None = None
    phone_number: str | None = None
    received_at_millis: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Field-for-field mapping with enum members rendered as strings."""

        data = asdict(self)
        data["bank"] = self.bank.value
        data["transaction_type"] = self.transaction_type.value
        return data


@dataclass(frozen=True, slots=True)
class MessageRecord:
    """Provisional record the stream client builds from a relay push."""

    sender: str
    body: str
    timestamp_millis: int
    phone_number: str = ""


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of the cheap pre-flight check in :func:`sms_notifier.parser.validate`."""

    is_valid: bool
    bank: Bank = Bank.UNKNOWN
    error: str | None = None


# ---------------------------------------------------------------------------
# Relay stream DTOs
# ---------------------------------------------------------------------------


class SmsNotification(BaseModel):
    """One SMS inside an ``sms_changed`` push."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    body: str | None = None
    timestamp: float | None = None
    thread_id: str | None = None


class RelayPush(BaseModel):
    """A push object, either inline in a stream event or from the history API."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    title: str | None = None
    body: str | None = None
    application_name: str | None = None
    created: float | None = None
    sender_name: str | None = None
    sender_number: str | None = None
    notifications: list[SmsNotification] = Field(default_factory=list)


class RelayEvent(BaseModel):
    """Top-level frame on the relay stream, discriminated by ``type``.

    Observed kinds: ``push`` (inline ``push`` object), ``tickle`` (mailbox
    changed; ``subtype`` names what), ``nop`` (keep-alive).
    """

    model_config = ConfigDict(extra="allow")

    type: str
    subtype: str | None = None
    push: RelayPush | None = None


def push_from_mapping(raw: Mapping[str, Any]) -> RelayPush:
    """Validate a history-API push mapping into a :class:`RelayPush`."""

    return RelayPush.model_validate(dict(raw))


__all__ = [
    "Bank",
    "TransactionType",
    "SUPPORTED_BANKS",
    "Transaction",
    "MessageRecord",
    "ValidationResult",
    "SmsNotification",
    "RelayPush",
    "RelayEvent",
    "push_from_mapping",
]
