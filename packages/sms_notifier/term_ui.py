"""Tiny terminal UI helpers (prompt_toolkit-based).

Interactive prompts used by the CLI's ``prompt`` command, kept apart from the
parser and the popup stack so they are easy to test with a pipe input.
"""

from __future__ import annotations

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator

from .models import SUPPORTED_BANKS, Bank
from .parser import validate


class SmsTextValidator(Validator):
    """Rejects text that would not pass the parser's pre-flight check."""

    def validate(self, document) -> None:
        result = validate(document.text)
        if not result.is_valid:
            raise ValidationError(
                message=result.error or "Invalid SMS text",
                cursor_position=len(document.text),
            )


def _cancel_bindings() -> KeyBindings:
    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    return kb


def _session(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def prompt_for_message(
    *,
    initial: str = "",
    session: PromptSession | None = None,
    message: str = "Paste bank SMS (Enter to parse • Esc or Ctrl+C to cancel): ",
) -> str | None:
    """Collect one SMS body, validated before it is accepted.

    Returns the text, or ``None`` when canceled.
    """

    kb = _cancel_bindings()
    sess = _session(session, kb)
    return sess.prompt(
        message,
        default=initial,
        validator=SmsTextValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )


def select_sample_bank(
    *,
    session: PromptSession | None = None,
    message: str = "Sample for which bank? ",
) -> Bank | None:
    """Pick a supported bank by name (Tab completes). ``None`` when canceled."""

    names = sorted(b.value for b in SUPPORTED_BANKS)
    kb = _cancel_bindings()
    sess = _session(session, kb)

    class _V(Validator):
        def validate(self, document) -> None:
            if document.text.strip().lower() not in names:
                raise ValidationError(message=f"Choose one of: {', '.join(names)}")

    result = sess.prompt(
        message,
        completer=WordCompleter(names, ignore_case=True),
        complete_while_typing=True,
        validator=_V(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    if result is None:
        return None
    return Bank(result.strip().lower())


__all__ = ["SmsTextValidator", "prompt_for_message", "select_sample_bank"]
