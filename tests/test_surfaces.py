import io

import pytest
from rich.console import Console

from sms_notifier.errors import PresentationError
from sms_notifier.formatting import format_currency, format_datetime, format_time, mask_secret
from sms_notifier.grammars import SAMPLE_SMS
from sms_notifier.models import Bank
from sms_notifier.notifications import NotificationStackManager
from sms_notifier.parser import parse
from sms_notifier.surfaces import Geometry, SurfacePayload, TerminalSurfaceBackend
from tests.helpers.manual_scheduler import ManualScheduler

VIETIN = SAMPLE_SMS[Bank.VIETINBANK]


def _console() -> tuple[Console, io.StringIO]:
    buf = io.StringIO()
    return Console(file=buf, width=120, color_system=None), buf


def test_format_currency():
    assert format_currency(4_000_000) == "4.000.000"
    assert format_currency(0) == "0"
    assert format_currency(None) == "0"


def test_format_dates_in_vietnam_time():
    tx = parse(VIETIN)
    assert format_datetime(tx.timestamp_millis) == "11/08/2025 10:33"
    assert format_time(tx.timestamp_millis) == "11/08 10:33"
    assert format_datetime(None) == "--:--"


def test_mask_secret():
    assert mask_secret("o.abcdef1234") == "***1234"
    assert mask_secret("") is None


def test_terminal_backend_prints_and_closes_once():
    console, buf = _console()
    backend = TerminalSurfaceBackend(console)
    payload = SurfacePayload(transaction=parse(VIETIN), ordinal=0, is_newest=True)

    handle = backend.create_surface(Geometry(0, 0, 550, 210), payload)
    out = buf.getvalue()
    assert "-4.000.000 VND" in out
    assert "[NEW]" in out
    assert "TRINH MINH THOM" in out

    backend.update_geometry(handle, Geometry(0, 220, 550, 210))
    backend.destroy(handle)
    backend.destroy(handle)
    assert buf.getvalue().count("closed:") == 1
    assert backend.is_destroyed(handle)
    assert backend.is_destroyed(999)


def test_hide_details_omits_description():
    console, buf = _console()
    backend = TerminalSurfaceBackend(console)
    payload = SurfacePayload(
        transaction=parse(VIETIN), ordinal=1, is_newest=False, hide_details=True
    )
    backend.create_surface(Geometry(0, 0, 550, 130), payload)
    assert "TRINH MINH THOM" not in buf.getvalue()
    assert "[NEW]" not in buf.getvalue()


def test_manager_drives_terminal_backend():
    console, buf = _console()
    backend = TerminalSurfaceBackend(console)
    manager = NotificationStackManager(backend, ManualScheduler())

    for _ in range(5):
        manager.admit(parse(VIETIN))
    handles = [slot.surface_handle for slot in manager.slots]
    assert len(handles) == 4
    assert not any(backend.is_destroyed(h) for h in handles)
    assert buf.getvalue().count("closed:") == 1

    manager.close_all()
    assert all(backend.is_destroyed(h) for h in handles)
    assert buf.getvalue().count("closed:") == 5


def test_destroyed_surfaces_are_not_retained():
    console, _ = _console()
    backend = TerminalSurfaceBackend(console)
    payload = SurfacePayload(transaction=parse(VIETIN), ordinal=0, is_newest=True)

    for i in range(200):
        handle = backend.create_surface(Geometry(0, 0, 550, 210), payload)
        backend.update_geometry(handle, Geometry(0, 220 * (i % 4), 550, 210))
        backend.destroy(handle)

    assert backend._surfaces == {}


class _DeadTerminal(io.StringIO):
    def write(self, s):
        raise OSError(5, "Input/output error")


def test_terminal_write_failure_is_presentation_error():
    backend = TerminalSurfaceBackend(Console(file=_DeadTerminal(), color_system=None))
    payload = SurfacePayload(transaction=parse(VIETIN), ordinal=0, is_newest=True)

    with pytest.raises(PresentationError, match="terminal write failed"):
        backend.create_surface(Geometry(0, 0, 550, 210), payload)
    assert backend._surfaces == {}


def test_manager_survives_a_broken_terminal():
    backend = TerminalSurfaceBackend(Console(file=_DeadTerminal(), color_system=None))
    manager = NotificationStackManager(backend, ManualScheduler())

    assert manager.admit(parse(VIETIN)) is None
    assert len(manager) == 0
