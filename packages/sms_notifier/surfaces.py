"""Windowing collaborator interface and a terminal implementation.

The notification manager only talks to a :class:`SurfaceBackend`. A desktop
shell would implement it with real popup windows; :class:`TerminalSurfaceBackend`
renders each surface as a ``rich`` panel, which is what the CLI uses.

Contract
--------
Every call must tolerate a handle that is already destroyed. Other failures
are raised as :class:`~sms_notifier.errors.PresentationError`; the manager
catches and logs them.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Protocol

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .errors import PresentationError
from .formatting import format_currency, format_datetime
from .logging_setup import get_logger
from .models import Transaction, TransactionType

_logger = get_logger("sms_notifier.surfaces")


@dataclass(frozen=True, slots=True)
class WorkArea:
    """Usable screen area (excludes task bars/docks)."""

    width: int
    height: int


@dataclass(frozen=True, slots=True)
class Geometry:
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class SurfacePayload:
    """What a surface shows. ``is_newest`` drives the "NEW" tag."""

    transaction: Transaction
    ordinal: int
    is_newest: bool
    hide_details: bool = False


DEFAULT_WORK_AREA = WorkArea(1920, 1040)

type SurfaceHandle = Any


class SurfaceBackend(Protocol):
    def create_surface(self, geometry: Geometry, payload: SurfacePayload) -> SurfaceHandle: ...

    def update_geometry(self, handle: SurfaceHandle, geometry: Geometry) -> None: ...

    def send_payload(self, handle: SurfaceHandle, payload: SurfacePayload) -> None: ...

    def destroy(self, handle: SurfaceHandle) -> None: ...

    def is_destroyed(self, handle: SurfaceHandle) -> bool: ...

    def work_area(self) -> WorkArea: ...


# ---------------------------------------------------------------------------
# Terminal rendering
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _TerminalSurface:
    geometry: Geometry
    payload: SurfacePayload


def render_payload(payload: SurfacePayload) -> Panel:
    """Build the ``rich`` panel for one surface."""

    tx = payload.transaction
    credit = tx.transaction_type is TransactionType.CREDIT
    sign = "+" if credit else "-"
    style = "bold green" if credit else "bold red"

    lines: list[Text] = [
        Text(f"{sign}{format_currency(tx.transaction_amount_minor)} VND", style=style),
        Text(f"Số dư: {format_currency(tx.balance_minor)} VND"),
        Text(format_datetime(tx.timestamp_millis), style="dim"),
    ]
    if tx.account_number:
        lines.append(Text(f"TK: {tx.account_number}", style="dim"))
    if not payload.hide_details and tx.description:
        lines.append(Text(tx.description, overflow="fold"))

    # Text, not a str: "[NEW]" would otherwise be read as console markup.
    title = Text(tx.sender + ("  [NEW]" if payload.is_newest else ""))
    return Panel(Group(*lines), title=title, title_align="left", border_style=style)


class TerminalSurfaceBackend:
    """Prints a panel when a surface is created and a note when it closes.

    Geometry changes are logged at DEBUG but not redrawn; a terminal has no
    absolute positioning to honour them. Destroyed surfaces are forgotten.
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        work_area: WorkArea = DEFAULT_WORK_AREA,
    ) -> None:
        self._console = console or Console()
        self._work_area = work_area
        self._ids = itertools.count(1)
        self._surfaces: dict[int, _TerminalSurface] = {}

    def work_area(self) -> WorkArea:
        return self._work_area

    def create_surface(self, geometry: Geometry, payload: SurfacePayload) -> int:
        self._print(render_payload(payload))
        handle = next(self._ids)
        self._surfaces[handle] = _TerminalSurface(geometry=geometry, payload=payload)
        return handle

    def update_geometry(self, handle: int, geometry: Geometry) -> None:
        surface = self._surfaces.get(handle)
        if surface is None:
            return
        surface.geometry = geometry
        _logger.debug("surface %s moved to (%s, %s)", handle, geometry.x, geometry.y)

    def send_payload(self, handle: int, payload: SurfacePayload) -> None:
        surface = self._surfaces.get(handle)
        if surface is not None:
            surface.payload = payload

    def destroy(self, handle: int) -> None:
        surface = self._surfaces.pop(handle, None)
        if surface is None:
            return
        tx = surface.payload.transaction
        self._print(
            Text(
                f"closed: {tx.sender} {format_currency(tx.transaction_amount_minor)} VND",
                style="dim",
            )
        )

    def is_destroyed(self, handle: int) -> bool:
        return handle not in self._surfaces

    def _print(self, renderable: Any) -> None:
        try:
            self._console.print(renderable)
        except OSError as e:
            raise PresentationError(f"terminal write failed: {e}") from e


__all__ = [
    "WorkArea",
    "Geometry",
    "SurfacePayload",
    "SurfaceHandle",
    "SurfaceBackend",
    "TerminalSurfaceBackend",
    "render_payload",
]
