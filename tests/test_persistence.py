from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from sms_notifier.errors import ConfigurationError
from sms_notifier.grammars import SAMPLE_SMS
from sms_notifier.models import Bank, TransactionType
from sms_notifier.parser import parse
from sms_notifier.persistence import (
    INCOMING,
    OUTGOING,
    TransactionStore,
    compute_fingerprint,
    determine_direction,
)
from tests.helpers.db import bootstrap_sqlite_db, transaction

VIETIN = SAMPLE_SMS[Bank.VIETINBANK]
VCB = SAMPLE_SMS[Bank.VIETCOMBANK]
NOW = datetime(2025, 8, 12, tzinfo=UTC)


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


@pytest.fixture
def store(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "db" / "test.sqlite3")
    return TransactionStore(url)


# ---- Pure helpers ---------------------------------------------------------------


def test_direction_follows_parsed_type():
    assert determine_direction(parse(VCB)) == INCOMING
    assert determine_direction(parse(VIETIN)) == OUTGOING


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Luong thang 8", INCOMING),
        ("Thanh toan hoa don dien", OUTGOING),
        ("GD:-50,000 ref 1", OUTGOING),
        ("GD:+50,000 ref 1", INCOMING),
        ("so du -50,000", OUTGOING),
        ("xyz ref 42", INCOMING),
    ],
)
def test_direction_heuristic_for_unknown_type(text, expected):
    tx = replace(
        parse(VIETIN), transaction_type=TransactionType.UNKNOWN, description="", raw_content=text
    )
    assert determine_direction(tx) == expected


def test_fingerprint_ignores_whitespace_and_metadata():
    tx = parse(VIETIN)
    spaced = replace(tx, raw_content="  " + VIETIN.replace("|", " | ") + "\n")
    enriched = replace(tx, original_sender="VietinBank", received_at_millis=123)

    assert len(compute_fingerprint(tx)) == 64
    assert compute_fingerprint(enriched) == compute_fingerprint(tx)
    assert compute_fingerprint(spaced) != compute_fingerprint(tx)  # pipes gain spaces
    assert compute_fingerprint(replace(tx, raw_content=VIETIN + "   ")) == compute_fingerprint(tx)
    assert compute_fingerprint(replace(tx, transaction_amount_minor=1)) != compute_fingerprint(tx)


# ---- Store ----------------------------------------------------------------------


def test_blank_url_is_rejected():
    with pytest.raises(ConfigurationError):
        TransactionStore("  ")


def test_connection_reports_missing_table(tmp_path):
    check = TransactionStore(f"sqlite+pysqlite:///{tmp_path / 'empty.sqlite3'}").test_connection()
    assert not check.success
    assert check.needs_migration
    assert "banking_transactions" in check.error


def test_connection_ok(store):
    check = store.test_connection()
    assert check.success and check.error is None and not check.needs_migration


def test_save_then_duplicate(store):
    tx = transaction(VIETIN, received_at_millis=_ms(NOW))

    first = store.save(tx)
    assert first.success and not first.duplicate and first.record_id is not None

    again = store.save(replace(tx, received_at_millis=_ms(NOW) + 5000))
    assert again.success and again.duplicate
    assert again.record_id == first.record_id
    assert len(store.recent()) == 1


def test_save_rejects_invalid(store):
    result = store.save(parse("not a bank message at all"))
    assert not result.success
    assert result.error == "Unknown bank format"
    assert store.recent() == []


def test_saved_row_round_trips_to_dict(store):
    store.save(transaction(VIETIN, received_at_millis=_ms(NOW), original_sender="VietinBank"))
    (row,) = store.recent()

    assert row["bank"] == "vietinbank"
    assert row["sender"] == "VietinBank"
    assert row["transaction_type"] == OUTGOING
    assert row["amount"] == 4_000_000
    assert row["balance"] == 63_908_063
    assert row["account_number"] == "103811795555"
    assert row["raw_sms"] == VIETIN
    assert row["transaction_time"] == "2025-08-11T03:33:00+00:00"
    assert row["received_at"] == "2025-08-12T00:00:00+00:00"
    assert row["parsed_data"]["transaction_type"] == "debit"
    assert "error" not in row["parsed_data"]


def test_recent_is_newest_first(store):
    store.save(transaction(VIETIN, received_at_millis=_ms(NOW)))
    store.save(transaction(VCB, received_at_millis=_ms(NOW + timedelta(minutes=1))))

    assert [r["bank"] for r in store.recent()] == ["vietcombank", "vietinbank"]
    assert len(store.recent(limit=1)) == 1


def test_history_filters(store):
    store.save(transaction(VIETIN, received_at_millis=_ms(NOW)))
    store.save(transaction(VCB, received_at_millis=_ms(NOW)))

    assert [r["bank"] for r in store.history(bank="vietcombank")] == ["vietcombank"]
    assert [r["transaction_type"] for r in store.history(direction=OUTGOING)] == [OUTGOING]
    # VietinBank at 03:33 UTC, Vietcombank at 04:26:18 UTC
    cutoff = datetime(2025, 8, 11, 4, 0, tzinfo=UTC)
    assert [r["bank"] for r in store.history(date_from=cutoff)] == ["vietcombank"]
    assert [r["bank"] for r in store.history(date_to=cutoff)] == ["vietinbank"]
    assert len(store.history(limit=1, offset=1)) == 1
    assert store.by_bank("vietinbank")[0]["bank"] == "vietinbank"

    with pytest.raises(ValueError):
        store.history(direction="sideways")


def test_search_is_case_insensitive_and_literal(store):
    store.save(transaction(VIETIN, received_at_millis=_ms(NOW)))
    store.save(transaction(VCB, received_at_millis=_ms(NOW)))

    assert [r["bank"] for r in store.search("IPAY")] == ["vietinbank"]
    assert [r["bank"] for r in store.search("tkp#np")] == ["vietcombank"]
    assert store.search("%") == []
    assert store.search("   ") == []


def test_stats_window_and_totals(store):
    store.save(transaction(VIETIN, received_at_millis=_ms(NOW - timedelta(days=1))))
    store.save(transaction(VCB, received_at_millis=_ms(NOW - timedelta(days=2))))
    old = VIETIN.replace("GD:-4,000,000VND", "GD:-5,000VND")
    store.save(transaction(old, received_at_millis=_ms(NOW - timedelta(days=60))))

    stats = store.stats(30, now=NOW)
    assert stats["total_transactions"] == 2
    assert stats["incoming_count"] == 1 and stats["outgoing_count"] == 1
    assert stats["total_incoming"] == 1_400_000
    assert stats["total_outgoing"] == 4_000_000
    assert stats["net_amount"] == -2_600_000
    assert stats["banks"] == ["vietcombank", "vietinbank"]
    assert stats["period_days"] == 30
    assert stats["to_date"] == NOW.isoformat()

    assert store.stats(90, now=NOW)["total_transactions"] == 3


def test_stats_on_empty_store(store):
    stats = store.stats(now=NOW)
    assert stats["total_transactions"] == 0
    assert stats["net_amount"] == 0
    assert stats["banks"] == []
