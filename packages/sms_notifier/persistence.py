# ruff: noqa: I001
"""Persistence integration for sms_notifier.

:class:`TransactionStore` writes parsed transactions to the shared database
owned by ``libs/db`` (table ``banking_transactions``) and answers the history
queries the CLI exposes. It relies on the ORM model in
``db.models.banking`` and sessions from ``db.client``.

Scope:
- Idempotent insert keyed by a SHA-256 content fingerprint, so a relay
  redelivery of the same SMS never creates a second row.
- Map the parser's credit/debit vocabulary onto stored money direction
  (``incoming``/``outgoing``), with a keyword heuristic for unknown types.
- Read paths: recent, filtered history, per bank, text search, stats.

Every method is blocking; the app calls them through ``asyncio.to_thread``.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import distinct, func, inspect, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db.client import get_engine, session_scope
from db.models.banking import BankTransaction
from .errors import ConfigurationError
from .logging_setup import get_logger
from .models import Transaction, TransactionType

_logger = get_logger("sms_notifier.persistence")

INCOMING = "incoming"
OUTGOING = "outgoing"
DIRECTIONS = (INCOMING, OUTGOING)

_INCOMING_KEYWORDS = (
    "nhan", "nhan tien", "chuyen den", "gui den", "nap tien",
    "chuyen khoan den", "nop tien", "ck den", "luong", "thuong",
    "hoan tien", "tra lai", "bonus", "lai suat", "dividend",
)
_OUTGOING_KEYWORDS = (
    "chuyen di", "thanh toan", "rut tien", "mua", "tra", "chi tieu",
    "atm", "withdraw", "payment", "ck di", "chuyen khoan di",
    "phi", "cuoc", "hoa don", "bill", "purchase",
)
_PLUS_AMOUNT = re.compile(r"\+[\d,]+")
_MINUS_AMOUNT = re.compile(r"-[\d,]+")


@dataclass(frozen=True, slots=True)
class SaveResult:
    success: bool
    error: str | None = None
    record_id: int | None = None
    duplicate: bool = False


@dataclass(frozen=True, slots=True)
class StoreCheck:
    success: bool
    error: str | None = None
    needs_migration: bool = False


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def determine_direction(tx: Transaction) -> str:
    """Return ``"incoming"`` or ``"outgoing"`` for ``tx``.

    Parsed credit/debit wins. Otherwise the text is scanned for Vietnamese
    banking keywords (incoming first), then for ``gd:+``/``gd:-`` markers, then
    for a signed amount. Unclear messages count as incoming.
    """

    if tx.transaction_type is TransactionType.CREDIT:
        return INCOMING
    if tx.transaction_type is TransactionType.DEBIT:
        return OUTGOING

    text = f"{tx.description} {tx.raw_content}".lower()
    if any(k in text for k in _INCOMING_KEYWORDS):
        return INCOMING
    if any(k in text for k in _OUTGOING_KEYWORDS):
        return OUTGOING
    if "gd:+" in text or "giao dich:+" in text:
        return INCOMING
    if "gd:-" in text or "giao dich:-" in text:
        return OUTGOING
    if _PLUS_AMOUNT.search(text):
        return INCOMING
    if _MINUS_AMOUNT.search(text):
        return OUTGOING
    return INCOMING


def _millis_to_utc(ms: int | None) -> datetime | None:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def _as_utc(dt: datetime | None) -> datetime | None:
    """Normalize to aware UTC.

    Values are always written in UTC; SQLite stores the wall-clock part only
    and hands back naive datetimes.
    """

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def compute_fingerprint(tx: Transaction) -> str:
    """Stable SHA-256 over the fields that identify one bank event.

    Fields used: bank, account number, amount, direction, SMS timestamp and
    the whitespace-collapsed raw text.
    """

    payload = {
        "bank": tx.bank.value,
        "account": tx.account_number,
        "amount": tx.transaction_amount_minor,
        "direction": determine_direction(tx),
        "timestamp": tx.timestamp_millis,
        "raw": " ".join(tx.raw_content.split()),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _parsed_data(tx: Transaction) -> dict[str, Any]:
    return {k: v for k, v in tx.to_dict().items() if v is not None}


def record_to_dict(row: BankTransaction) -> dict[str, Any]:
    """Plain mapping for display/serialization; datetimes as ISO-8601 UTC."""

    def _iso(dt: datetime | None) -> str | None:
        aware = _as_utc(dt)
        return aware.isoformat() if aware is not None else None

    return {
        "id": row.id,
        "bank": row.bank,
        "sender": row.sender,
        "transaction_type": row.transaction_type,
        "amount": row.amount,
        "balance": row.balance,
        "account_number": row.account_number,
        "description": row.description,
        "content": row.content,
        "raw_sms": row.raw_sms,
        "transaction_time": _iso(row.transaction_time),
        "received_at": _iso(row.received_at),
        "parsed_data": row.parsed_data,
    }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TransactionStore:
    """Blocking repository over ``banking_transactions``.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL. Required; the store never falls back to a default.
    """

    def __init__(self, database_url: str) -> None:
        if not database_url or not database_url.strip():
            raise ConfigurationError("database URL is required for storage")
        self._url = database_url.strip()

    @property
    def database_url(self) -> str:
        return self._url

    def test_connection(self) -> StoreCheck:
        """Check the database is reachable and migrated."""

        try:
            engine = get_engine(database_url=self._url)
            if not inspect(engine).has_table(BankTransaction.__tablename__):
                return StoreCheck(
                    success=False,
                    error=(
                        f"table '{BankTransaction.__tablename__}' does not exist; "
                        "run the Alembic migrations"
                    ),
                    needs_migration=True,
                )
            with session_scope(database_url=self._url) as session:
                session.execute(select(func.count()).select_from(BankTransaction))
        except SQLAlchemyError as e:
            _logger.warning("storage connection test failed: %s", e)
            return StoreCheck(success=False, error=str(e))
        return StoreCheck(success=True)

    def save(self, tx: Transaction, *, received_at: datetime | None = None) -> SaveResult:
        """Insert ``tx`` unless a row with the same fingerprint exists.

        Never raises for database errors; they are reported on the result.
        """

        if not tx.is_valid:
            return SaveResult(success=False, error=tx.error or "invalid transaction")

        fingerprint = compute_fingerprint(tx)
        received = (
            received_at
            or _millis_to_utc(tx.received_at_millis)
            or datetime.now(UTC)
        )
        try:
            with session_scope(database_url=self._url) as session:
                existing = session.scalar(
                    select(BankTransaction.id).where(
                        BankTransaction.fingerprint_sha256 == fingerprint
                    )
                )
                if existing is not None:
                    _logger.debug("transaction already stored as id=%s", existing)
                    return SaveResult(success=True, record_id=existing, duplicate=True)

                row = BankTransaction(
                    bank=tx.bank.value,
                    sender=tx.sender or tx.original_sender or "unknown",
                    transaction_type=determine_direction(tx),
                    amount=tx.transaction_amount_minor,
                    balance=tx.balance_minor,
                    account_number=tx.account_number,
                    description=tx.description or tx.raw_content or "No description",
                    content=tx.raw_content or tx.description,
                    raw_sms=tx.raw_content,
                    transaction_time=_as_utc(_millis_to_utc(tx.timestamp_millis)),
                    received_at=_as_utc(received),
                    parsed_data=_parsed_data(tx),
                    fingerprint_sha256=fingerprint,
                )
                session.add(row)
                session.flush()
                record_id = row.id
        except IntegrityError:
            # A concurrent writer inserted the same fingerprint first.
            _logger.debug("fingerprint %s inserted concurrently", fingerprint[:12])
            return SaveResult(success=True, duplicate=True)
        except SQLAlchemyError as e:
            _logger.error("failed to save transaction: %s", e)
            return SaveResult(success=False, error=str(e))

        _logger.info("saved %s transaction id=%s", tx.bank.value, record_id)
        return SaveResult(success=True, record_id=record_id)

    # ---- Reads -------------------------------------------------------------

    def _fetch(self, stmt) -> list[dict[str, Any]]:
        with session_scope(database_url=self._url) as session:
            return [record_to_dict(r) for r in session.scalars(stmt)]

    def _newest_first(self):
        return select(BankTransaction).order_by(
            BankTransaction.received_at.desc(), BankTransaction.id.desc()
        )

    def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        return self._fetch(self._newest_first().limit(limit))

    def history(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        bank: str | None = None,
        direction: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Filtered page of transactions, newest first.

        ``date_from``/``date_to`` bound the SMS timestamp (inclusive).
        """

        if direction is not None and direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
        stmt = self._newest_first()
        if bank:
            stmt = stmt.where(BankTransaction.bank == bank)
        if direction:
            stmt = stmt.where(BankTransaction.transaction_type == direction)
        if date_from is not None:
            stmt = stmt.where(BankTransaction.transaction_time >= _as_utc(date_from))
        if date_to is not None:
            stmt = stmt.where(BankTransaction.transaction_time <= _as_utc(date_to))
        return self._fetch(stmt.offset(offset).limit(limit))

    def by_bank(self, bank: str, limit: int = 50) -> list[dict[str, Any]]:
        return self.history(bank=bank, limit=limit)

    def search(self, term: str, limit: int = 50) -> list[dict[str, Any]]:
        """Case-insensitive substring match over description, content and raw SMS."""

        term = (term or "").strip()
        if not term:
            return []
        pattern = f"%{_escape_like(term)}%"
        stmt = self._newest_first().where(
            or_(
                BankTransaction.description.ilike(pattern, escape="\\"),
                BankTransaction.content.ilike(pattern, escape="\\"),
                BankTransaction.raw_sms.ilike(pattern, escape="\\"),
            )
        )
        return self._fetch(stmt.limit(limit))

    def stats(self, days: int = 30, *, now: datetime | None = None) -> dict[str, Any]:
        """Counts and totals per direction over the last ``days`` days."""

        end = _as_utc(now) or datetime.now(UTC)
        start = end - timedelta(days=days)
        window = BankTransaction.received_at >= _as_utc(start)

        with session_scope(database_url=self._url) as session:
            grouped = session.execute(
                select(
                    BankTransaction.transaction_type,
                    func.count(BankTransaction.id),
                    func.coalesce(func.sum(BankTransaction.amount), 0),
                )
                .where(window)
                .group_by(BankTransaction.transaction_type)
            ).all()
            banks = session.scalars(
                select(distinct(BankTransaction.bank)).where(window).order_by(BankTransaction.bank)
            ).all()

        counts = {d: 0 for d in DIRECTIONS}
        totals = {d: 0 for d in DIRECTIONS}
        for direction, count, total in grouped:
            counts[direction] = int(count)
            totals[direction] = int(total)

        return {
            "total_transactions": sum(counts.values()),
            "incoming_count": counts[INCOMING],
            "outgoing_count": counts[OUTGOING],
            "total_incoming": totals[INCOMING],
            "total_outgoing": totals[OUTGOING],
            "net_amount": totals[INCOMING] - totals[OUTGOING],
            "banks": list(banks),
            "period_days": days,
            "from_date": start.isoformat(),
            "to_date": end.isoformat(),
        }


__all__ = [
    "INCOMING",
    "OUTGOING",
    "SaveResult",
    "StoreCheck",
    "TransactionStore",
    "compute_fingerprint",
    "determine_direction",
    "record_to_dict",
]
