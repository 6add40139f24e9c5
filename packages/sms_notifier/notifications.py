"""Bounded, ordered stack of transaction popups.

:class:`NotificationStackManager` owns the live slots (newest first), the
capacity rule, per-slot geometry and all deferred work (auto-expiry timers and
the debounced reflow). It drives a :class:`~sms_notifier.surfaces.SurfaceBackend`
with fire-and-forget commands.

Invariants
----------
- ``len(slots) <= config.max_slots`` after every :meth:`admit`.
- Ordinals are always ``0..k-1`` in list order; ordinal 0 is the only slot
  tagged newest.
- A slot is destroyed exactly once: eviction, expiry, dismissal and
  :meth:`close_all` all go through identity-based removal that tolerates
  already-absent slots.
- Backend failures are logged and swallowed; they never abort an operation.

All methods must be called from the owning event loop.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .errors import PresentationError
from .logging_setup import get_logger
from .models import Transaction
from .scheduling import Deferred, DeferredGroup, Scheduler
from .surfaces import Geometry, SurfaceBackend, SurfaceHandle, SurfacePayload, WorkArea

_logger = get_logger("sms_notifier.notifications")

type SlotId = int


class Anchor(StrEnum):
    TOP_RIGHT = "top-right"
    TOP_LEFT = "top-left"
    BOTTOM_RIGHT = "bottom-right"
    BOTTOM_LEFT = "bottom-left"


class StackConfig(BaseModel):
    """Popup stack options.

    ``auto_expire_ms=0`` disables auto-expiry. With ``hide_details`` the
    compact height/spacing pair is used so more popups fit on screen.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_slots: int = Field(default=4, ge=1)
    auto_expire_ms: int = Field(default=300_000, ge=0)
    slot_width: int = Field(default=550, gt=0)
    slot_height: int = Field(default=210, gt=0)
    compact_height: int = Field(default=130, gt=0)
    margin: int = Field(default=10, ge=0)
    spacing: int = Field(default=220, ge=0)
    compact_spacing: int = Field(default=160, ge=0)
    anchor: Anchor = Anchor.TOP_RIGHT
    hide_details: bool = False
    reflow_debounce_ms: int = Field(default=100, ge=0)

    @property
    def effective_height(self) -> int:
        return self.compact_height if self.hide_details else self.slot_height

    @property
    def effective_spacing(self) -> int:
        return self.compact_spacing if self.hide_details else self.spacing


def compute_geometry(
    ordinal: int,
    *,
    anchor: Anchor,
    width: int,
    height: int,
    margin: int,
    spacing: int,
    work_area: WorkArea,
) -> Geometry:
    """Place the slot at ``ordinal`` relative to the anchor corner.

    Top anchors stack downward from the top edge, bottom anchors upward from
    the bottom edge; ``spacing`` is the pitch between consecutive slots.
    """

    offset = ordinal * spacing
    if anchor in (Anchor.TOP_RIGHT, Anchor.BOTTOM_RIGHT):
        x = work_area.width - width - margin
    else:
        x = margin
    if anchor in (Anchor.TOP_RIGHT, Anchor.TOP_LEFT):
        y = margin + offset
    else:
        y = work_area.height - height - margin - offset
    return Geometry(x=x, y=y, width=width, height=height)


@dataclass(slots=True)
class NotificationSlot:
    slot_id: SlotId
    surface_handle: SurfaceHandle
    created_at_millis: int
    transaction: Transaction
    ordinal: int
    expiry: Deferred | None = None


def _now_millis() -> int:
    return int(time.time() * 1000)


class NotificationStackManager:
    """Admit, position, expire and dismiss transaction popups.

    Parameters
    ----------
    backend:
        Windowing collaborator.
    scheduler:
        Source of deferred calls (expiry timers, reflow debounce).
    config:
        Stack options; defaults to :class:`StackConfig` defaults.
    work_area:
        Screen area to lay out against; defaults to ``backend.work_area()``.
    """

    def __init__(
        self,
        backend: SurfaceBackend,
        scheduler: Scheduler,
        config: StackConfig | None = None,
        *,
        work_area: WorkArea | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or StackConfig()
        self._work_area = work_area
        self._timers = DeferredGroup(scheduler)
        self._reflow: Deferred | None = None
        self._slots: list[NotificationSlot] = []
        self._ids = itertools.count(1)
        self._shutting_down = False

    # ---- Introspection -----------------------------------------------------

    @property
    def config(self) -> StackConfig:
        return self._config

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def slots(self) -> tuple[NotificationSlot, ...]:
        """Snapshot of live slots, newest first."""

        return tuple(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, slot_id: object) -> bool:
        return any(s.slot_id == slot_id for s in self._slots)

    def geometry_for(self, ordinal: int) -> Geometry:
        cfg = self._config
        return compute_geometry(
            ordinal,
            anchor=cfg.anchor,
            width=cfg.slot_width,
            height=cfg.effective_height,
            margin=cfg.margin,
            spacing=cfg.effective_spacing,
            work_area=self._resolve_work_area(),
        )

    # ---- Operations --------------------------------------------------------

    def admit(self, transaction: Transaction) -> SlotId | None:
        """Show ``transaction`` as the newest popup; returns its slot id.

        Returns ``None`` during shutdown or when the backend fails to create
        the surface.
        """

        if self._shutting_down:
            _logger.debug("skipping popup: shutting down")
            return None

        # A failed create must leave the stack untouched.
        payload = self._payload(transaction, 0)
        handle = self._call_backend(
            "create_surface", self._backend.create_surface, self.geometry_for(0), payload
        )
        if handle is None:
            return None

        while len(self._slots) >= self._config.max_slots:
            oldest = self._slots.pop()
            _logger.debug("evicting slot %s (capacity %s)", oldest.slot_id, self._config.max_slots)
            self._dispose(oldest)

        slot_id = next(self._ids)

        # Admission re-places every slot below; a pending reflow is redundant.
        self._cancel_reflow()
        for slot in self._slots:
            slot.ordinal += 1
            self._apply(slot)

        slot = NotificationSlot(
            slot_id=slot_id,
            surface_handle=handle,
            created_at_millis=_now_millis(),
            transaction=transaction,
            ordinal=0,
        )
        self._slots.insert(0, slot)

        if self._config.auto_expire_ms > 0:
            slot.expiry = self._timers.schedule(
                self._config.auto_expire_ms / 1000, lambda: self._expire(slot_id)
            )
        return slot_id

    def remove(self, slot_id: SlotId) -> bool:
        """Remove a slot by identity; ``False`` when it is already gone."""

        for index, slot in enumerate(self._slots):
            if slot.slot_id == slot_id:
                break
        else:
            return False

        del self._slots[index]
        self._dispose(slot)
        for ordinal, remaining in enumerate(self._slots):
            remaining.ordinal = ordinal
        self._schedule_reflow()
        return True

    def remove_by_user_dismiss(self, slot_id: SlotId) -> bool:
        return self.remove(slot_id)

    def close_all(self) -> int:
        """Destroy every live popup; returns how many were closed."""

        captured, self._slots = self._slots, []
        self._cancel_reflow()
        for slot in captured:
            self._dispose(slot)
        if captured:
            _logger.info("closed %s popup(s)", len(captured))
        return len(captured)

    def shutdown(self) -> None:
        """Refuse further admissions, close everything, cancel all timers."""

        self._shutting_down = True
        self.close_all()
        self._timers.cancel_all()

    # ---- Internals ---------------------------------------------------------

    def _resolve_work_area(self) -> WorkArea:
        if self._work_area is None:
            self._work_area = self._backend.work_area()
        return self._work_area

    def _payload(self, transaction: Transaction, ordinal: int) -> SurfacePayload:
        return SurfacePayload(
            transaction=transaction,
            ordinal=ordinal,
            is_newest=ordinal == 0,
            hide_details=self._config.hide_details,
        )

    def _expire(self, slot_id: SlotId) -> None:
        if self.remove(slot_id):
            _logger.debug("slot %s expired", slot_id)

    def _dispose(self, slot: NotificationSlot) -> None:
        if slot.expiry is not None:
            slot.expiry.cancel()
            slot.expiry = None
        self._call_backend("destroy", self._backend.destroy, slot.surface_handle)

    def _apply(self, slot: NotificationSlot) -> None:
        handle = slot.surface_handle
        if self._call_backend("is_destroyed", self._backend.is_destroyed, handle):
            return
        self._call_backend(
            "update_geometry", self._backend.update_geometry, handle, self.geometry_for(slot.ordinal)
        )
        self._call_backend(
            "send_payload",
            self._backend.send_payload,
            handle,
            self._payload(slot.transaction, slot.ordinal),
        )

    def _schedule_reflow(self) -> None:
        self._cancel_reflow()
        self._reflow = self._timers.schedule(
            self._config.reflow_debounce_ms / 1000, self._run_reflow
        )

    def _cancel_reflow(self) -> None:
        if self._reflow is not None:
            self._reflow.cancel()
            self._reflow = None

    def _run_reflow(self) -> None:
        self._reflow = None
        for slot in self._slots:
            self._apply(slot)

    def _call_backend(self, op: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except PresentationError as e:
            _logger.warning("surface %s failed: %s", op, e)
        except Exception:  # noqa: BLE001 - presentation layer is best-effort
            _logger.exception("surface %s raised unexpectedly", op)
        return None


__all__ = [
    "Anchor",
    "StackConfig",
    "compute_geometry",
    "NotificationSlot",
    "NotificationStackManager",
    "SlotId",
]
