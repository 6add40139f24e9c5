from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_ID_TYPE = BigInteger().with_variant(Integer(), "sqlite")

# ---------------------------
# Core: banking_transactions
# ---------------------------


class BankTransaction(Base):
    __tablename__ = "banking_transactions"

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    bank: Mapped[str] = mapped_column(String, nullable=False)
    sender: Mapped[str] = mapped_column(String, nullable=False)
    # Direction of money relative to the account holder, not the parser's
    # credit/debit vocabulary.
    transaction_type: Mapped[str] = mapped_column(String, nullable=False)
    # Whole VND; the currency has no minor unit in practice.
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    raw_sms: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    parsed_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    # sha256 over bank, account, amount, direction, transaction time and raw
    # text; lets relay redeliveries collapse into a single row.
    fingerprint_sha256: Mapped[str] = mapped_column(CHAR(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "transaction_type in ('incoming','outgoing')",
            name="ck_banking_tx_type",
        ),
        CheckConstraint("amount >= 0", name="ck_banking_tx_amount"),
        Index("ix_banking_tx_received_at", "received_at"),
        Index("ix_banking_tx_bank_received_at", "bank", "received_at"),
    )


__all__ = [
    "Base",
    "BankTransaction",
]
