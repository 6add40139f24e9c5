# ruff: noqa: I001
"""Banking transactions table.

Revision ID: 0001_banking_transactions
Revises: None
Create Date: 2025-08-11
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_banking_transactions"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "banking_transactions",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column("bank", sa.String(), nullable=False),
        sa.Column("sender", sa.String(), nullable=False),
        sa.Column("transaction_type", sa.String(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=True),
        sa.Column("account_number", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("raw_sms", sa.Text(), nullable=False),
        sa.Column("transaction_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("parsed_data", sa.JSON(), nullable=False),
        sa.Column("fingerprint_sha256", sa.CHAR(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("fingerprint_sha256", name="uq_banking_tx_fingerprint"),
        sa.CheckConstraint(
            "transaction_type in ('incoming','outgoing')",
            name="ck_banking_tx_type",
        ),
        sa.CheckConstraint("amount >= 0", name="ck_banking_tx_amount"),
    )

    op.create_index("ix_banking_tx_received_at", "banking_transactions", ["received_at"])
    op.create_index(
        "ix_banking_tx_bank_received_at",
        "banking_transactions",
        ["bank", "received_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_banking_tx_bank_received_at", table_name="banking_transactions")
    op.drop_index("ix_banking_tx_received_at", table_name="banking_transactions")
    op.drop_table("banking_transactions")
