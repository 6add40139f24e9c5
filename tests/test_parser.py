from dataclasses import replace
from datetime import UTC, datetime

import pytest

from sms_notifier import parser as parser_module
from sms_notifier.errors import FormatError
from sms_notifier.grammars import GRAMMARS, SAMPLE_SMS, parse_number
from sms_notifier.models import Bank, TransactionType
from sms_notifier.parser import (
    detect_bank,
    parse,
    require_valid,
    sample_messages,
    sample_transactions,
    validate,
)

VIETIN = SAMPLE_SMS[Bank.VIETINBANK]
VCB = SAMPLE_SMS[Bank.VIETCOMBANK]


def _millis(*args: int) -> int:
    return int(datetime(*args, tzinfo=UTC).timestamp() * 1000)


def test_vietinbank_sample_extracts_every_field():
    tx = parse(VIETIN)

    assert tx.is_valid and tx.error is None
    assert tx.bank is Bank.VIETINBANK
    assert tx.sender == "VietinBank"
    assert tx.account_number == "103811795555"
    assert tx.transaction_amount_minor == 4_000_000
    assert tx.transaction_type is TransactionType.DEBIT
    assert tx.balance_minor == 63_908_063
    assert tx.description == "CT DI:610K2580GPLHU0GZ TRINH MINH THOM chuyen tien; tai iPay"
    # 10:33 in Vietnam is 03:33 UTC
    assert tx.timestamp_millis == _millis(2025, 8, 11, 3, 33)
    assert tx.raw_content == VIETIN


def test_vietcombank_sample_extracts_every_field():
    tx = parse(VCB)

    assert tx.is_valid
    assert tx.bank is Bank.VIETCOMBANK
    assert tx.sender == "Vietcombank"
    assert tx.account_number == "0811000010904"
    assert tx.transaction_amount_minor == 1_400_000
    assert tx.transaction_type is TransactionType.CREDIT
    assert tx.balance_minor == 29_796_653
    assert tx.description.startswith("TKP#NP82501242920449VCB")
    assert tx.timestamp_millis == _millis(2025, 8, 11, 4, 26, 18)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        ("GD:-4,000,000VND", TransactionType.DEBIT),
        ("GD:+4,000,000VND", TransactionType.CREDIT),
        ("GD:4,000,000VND", TransactionType.CREDIT),
    ],
)
def test_vietinbank_sign_table(amount, expected):
    text = VIETIN.replace("GD:-4,000,000VND", amount)
    tx = parse(text)
    assert tx.is_valid
    assert tx.transaction_type is expected
    assert tx.transaction_amount_minor == 4_000_000


def test_vietcombank_debit_sign():
    tx = parse(VCB.replace("+1,400,000VND", "-1,400,000VND"))
    assert tx.transaction_type is TransactionType.DEBIT


def test_vietcombank_second_balance_wins_when_two_are_printed():
    text = (
        "SD TK 0811000010904 -55,000VND luc 12-08-2025 09:00:00. "
        "SD 29,741,653VND. SD 29,730,653VND. Ref phi dich vu"
    )
    tx = parse(text)
    assert tx.is_valid
    assert tx.balance_minor == 29_730_653
    assert tx.description == "phi dich vu"


def test_unknown_format_is_invalid_and_keeps_text():
    text = "Your OTP is 123456, do not share it with anyone."
    tx = parse(text, "FakeBank")

    assert not tx.is_valid
    assert tx.bank is Bank.UNKNOWN
    assert tx.error == "Unknown bank format"
    assert tx.sender == "FakeBank"
    assert tx.raw_content == text
    assert tx.description == text


def test_unknown_format_without_hint_uses_placeholder_sender():
    assert parse("nothing to see here at all").sender == "Unknown Bank"


@pytest.mark.parametrize("text", ["", "   ", None, 42])
def test_blank_or_non_string_input(text):
    tx = parse(text)
    assert not tx.is_valid
    assert tx.error == "Invalid input"


def test_impossible_date_fails_the_gate():
    tx = parse(VIETIN.replace("11/08/2025", "31/02/2025"))
    assert tx.timestamp_millis is None
    assert not tx.is_valid
    assert tx.bank is Bank.VIETINBANK


def test_zero_amount_fails_the_gate():
    tx = parse(VIETIN.replace("GD:-4,000,000VND", "GD:-0VND"))
    assert not tx.is_valid
    assert tx.error == "Incomplete transaction fields"


def test_markers_present_but_fields_missing():
    text = "TK: GD: SDC: nothing useful here"
    tx = parse(text)
    assert tx.bank is Bank.VIETINBANK
    assert not tx.is_valid
    assert tx.account_number is None
    assert tx.transaction_amount_minor == 0


def test_extraction_failure_is_reported_not_raised(monkeypatch):
    def boom(text):
        raise RuntimeError("balance exploded")

    broken = dict(GRAMMARS)
    broken[Bank.VIETINBANK] = replace(GRAMMARS[Bank.VIETINBANK], extract_balance=boom)
    monkeypatch.setattr(parser_module, "GRAMMARS", broken)

    tx = parse(VIETIN)
    assert not tx.is_valid
    assert tx.bank is Bank.VIETINBANK
    assert "balance exploded" in tx.error
    assert tx.raw_content == VIETIN
    assert tx.description == VIETIN


def test_detect_bank_requires_all_markers():
    assert detect_bank(VIETIN) is Bank.VIETINBANK
    assert detect_bank(VCB) is Bank.VIETCOMBANK
    assert detect_bank("TK:123 GD:+1VND") is Bank.UNKNOWN


def test_parse_number():
    assert parse_number("1,400,000") == 1_400_000
    assert parse_number("") == 0
    assert parse_number(None) == 0
    assert parse_number("12a") == 0


def test_validate_errors():
    assert validate("").error == "SMS text is required"
    assert validate("short").error == "SMS text is too short"
    assert validate("long enough but no markers").error == "Unknown bank format"

    ok = validate(VCB)
    assert ok.is_valid and ok.bank is Bank.VIETCOMBANK and ok.error is None


def test_require_valid():
    tx = parse(VIETIN)
    assert require_valid(tx) is tx

    with pytest.raises(FormatError) as exc:
        require_valid(parse("not a bank message at all"))
    assert exc.value.raw_content == "not a bank message at all"


def test_to_dict_renders_enums_as_strings():
    data = parse(VIETIN).to_dict()
    assert data["bank"] == "vietinbank"
    assert data["transaction_type"] == "debit"
    assert data["original_sender"] is None


def test_samples():
    assert set(sample_messages()) == {Bank.VIETINBANK, Bank.VIETCOMBANK}

    txs = sample_transactions(now_millis=1_000_000)
    assert len(txs) == 5
    assert all(t.is_valid for t in txs)
    assert [t.timestamp_millis for t in txs[2:]] == [1_000_000, 1_001_000, 1_002_000]
    assert txs[3].transaction_type is TransactionType.DEBIT


@pytest.mark.parametrize(
    ("text", "marker"),
    [(VIETIN, m) for m in ("TK:", "GD:", "SDC:")] + [(VCB, m) for m in ("SD TK", "luc", "Ref")],
)
def test_missing_any_marker_is_unknown(text, marker):
    stripped = text.replace(marker, "")
    assert detect_bank(stripped) is Bank.UNKNOWN
    assert not parse(stripped).is_valid
