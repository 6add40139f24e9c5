from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from db.client import get_engine
from sms_notifier.grammars import SAMPLE_SMS
from sms_notifier.models import Bank
from sms_notifier.parser import parse
from sms_notifier.persistence import TransactionStore

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "libs" / "db" / "alembic"


def _config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.attributes["database_url"] = url
    return cfg


def test_upgrade_creates_table_matching_the_model(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.sqlite3'}"
    command.upgrade(_config(url), "head")

    store = TransactionStore(url)
    assert store.test_connection().success

    inspector = inspect(get_engine(database_url=url))
    columns = {c["name"] for c in inspector.get_columns("banking_transactions")}
    assert {"fingerprint_sha256", "received_at", "parsed_data", "raw_sms"} <= columns
    indexes = {i["name"] for i in inspector.get_indexes("banking_transactions")}
    assert {"ix_banking_tx_received_at", "ix_banking_tx_bank_received_at"} <= indexes

    first = store.save(parse(SAMPLE_SMS[Bank.VIETCOMBANK]))
    again = store.save(parse(SAMPLE_SMS[Bank.VIETCOMBANK]))
    assert first.success and again.duplicate


def test_downgrade_drops_table(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.sqlite3'}"
    cfg = _config(url)
    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")

    check = TransactionStore(url).test_connection()
    assert check.needs_migration
