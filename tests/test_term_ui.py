import contextlib

import pytest
from prompt_toolkit import PromptSession
from prompt_toolkit.document import Document
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput
from prompt_toolkit.validation import ValidationError

from sms_notifier.grammars import SAMPLE_SMS
from sms_notifier.models import Bank
from sms_notifier.term_ui import SmsTextValidator, prompt_for_message, select_sample_bank

VIETIN = SAMPLE_SMS[Bank.VIETINBANK]
VCB = SAMPLE_SMS[Bank.VIETCOMBANK]


@contextlib.contextmanager
def pipe_session():
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


def test_validator_accepts_bank_sms_and_rejects_noise():
    SmsTextValidator().validate(Document(VCB))
    with pytest.raises(ValidationError) as exc:
        SmsTextValidator().validate(Document("short"))
    assert exc.value.message == "SMS text is too short"


def test_prompt_returns_pasted_sms():
    with pipe_session() as (pipe, sess):
        pipe.send_text(VCB + "\r")
        assert prompt_for_message(session=sess) == VCB


def test_prompt_enter_accepts_initial_text():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert prompt_for_message(initial=VIETIN, session=sess) == VIETIN


def test_prompt_rejects_invalid_text_until_fixed():
    with pipe_session() as (pipe, sess):
        # Enter on noise is refused; Ctrl-A, Ctrl-K clears, then paste a real SMS.
        pipe.send_text("hello there friend\r\x01\x0b" + VIETIN + "\r")
        assert prompt_for_message(session=sess) == VIETIN


def test_prompt_ctrl_c_cancels():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x03")
        assert prompt_for_message(session=sess) is None


def test_select_sample_bank_by_name():
    with pipe_session() as (pipe, sess):
        pipe.send_text("VietcomBank\r")
        assert select_sample_bank(session=sess) is Bank.VIETCOMBANK


def test_select_sample_bank_rejects_unknown_names():
    with pipe_session() as (pipe, sess):
        pipe.send_text("acme\r\x01\x0bvietinbank\r")
        assert select_sample_bank(session=sess) is Bank.VIETINBANK


def test_select_sample_bank_ctrl_c_cancels():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x03")
        assert select_sample_bank(session=sess) is None
