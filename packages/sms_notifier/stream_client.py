"""Long-lived relay subscription that turns pushed SMS into transactions.

State machine
-------------
``DISCONNECTED -> CONNECTING -> OPEN -> DISCONNECTED``; ``CLOSING`` is only
seen while :meth:`StreamClient.disconnect` tears a session down.

- Opening resets the reconnect counter and cancels any pending reconnect.
- An unexpected close (or failure to open) schedules attempt ``N`` after
  ``base_delay * 2**(N-1)`` seconds. After ``max_reconnect_attempts`` the
  client stops, sets ``exhausted`` and emits one terminal ``error``.
- ``disconnect`` is a manual close: it suppresses reconnection and cancels
  every timer and task the client owns.

Only valid transactions from supported banks reach the ``received`` handler;
everything else is dropped with a DEBUG log line.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from .errors import ConfigurationError, NotifierError
from .formatting import mask_secret
from .logging_setup import get_logger
from .models import (
    SUPPORTED_BANKS,
    MessageRecord,
    RelayEvent,
    RelayPush,
    Transaction,
    push_from_mapping,
)
from .parser import parse
from .relay import PushbulletRelay, Relay
from .scheduling import Deferred, DeferredGroup, LoopScheduler, Scheduler

_logger = get_logger("sms_notifier.stream_client")

DEFAULT_SMS_APP_NAMES: tuple[str, ...] = ("Messages", "Messaging", "SMS", "Android Messages")
MAX_ATTEMPTS_MESSAGE = "max reconnect attempts reached"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


@dataclass(slots=True)
class EventHandlers:
    """Owner callbacks. Any of them may be left as ``None``."""

    connected: Callable[[], None] | None = None
    disconnected: Callable[[], None] | None = None
    error: Callable[[str], None] | None = None
    received: Callable[[Transaction], None] | None = None


@dataclass(frozen=True, slots=True)
class ConnectionTestResult:
    success: bool
    user: str | None = None
    error: str | None = None


class StreamClient:
    """Owns one relay subscription.

    Parameters
    ----------
    api_key:
        Relay credential; blank values raise :class:`ConfigurationError`.
    relay:
        Relay collaborator. Defaults to :class:`PushbulletRelay` for ``api_key``.
    scheduler:
        Timer source for reconnects. Defaults to the running loop.
    handlers:
        Owner callbacks; see :class:`EventHandlers`.
    max_reconnect_attempts, base_delay:
        Backoff policy (5 attempts; 5, 10, 20, 40, 80 seconds).
    sms_app_names:
        Application names whose mirrored notifications are treated as SMS.
    recent_limit, recent_window:
        Bound for the history fetch that follows a ``tickle`` frame: at most
        ``recent_limit`` pushes modified in the last ``recent_window`` seconds.
    clock:
        Wall clock in epoch seconds.
    """

    def __init__(
        self,
        api_key: str,
        *,
        relay: Relay | None = None,
        scheduler: Scheduler | None = None,
        handlers: EventHandlers | None = None,
        max_reconnect_attempts: int = 5,
        base_delay: float = 5.0,
        sms_app_names: tuple[str, ...] = DEFAULT_SMS_APP_NAMES,
        recent_limit: int = 5,
        recent_window: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError("relay API key is required")
        if max_reconnect_attempts < 0:
            raise ConfigurationError("max_reconnect_attempts must be >= 0")
        self._api_key = api_key.strip()
        self._relay: Relay = relay if relay is not None else PushbulletRelay(self._api_key)
        self._timers = DeferredGroup(scheduler or LoopScheduler())
        self.handlers = handlers or EventHandlers()
        self._max_attempts = max_reconnect_attempts
        self._base_delay = base_delay
        self._sms_app_names = sms_app_names
        self._recent_limit = recent_limit
        self._recent_window = recent_window
        self._clock = clock

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._exhausted = False
        self._manual_close = False
        self._reconnect: Deferred | None = None
        self._session: asyncio.Task[None] | None = None
        self._fetches: set[asyncio.Task[None]] = set()

    # ---- Introspection -----------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect is not None and self._reconnect.pending

    def status(self) -> dict[str, Any]:
        return {
            "connected": self.is_connected,
            "state": self._state.value,
            "reconnect_attempts": self._attempts,
            "exhausted": self._exhausted,
            "api_key": mask_secret(self._api_key),
        }

    # ---- Lifecycle ---------------------------------------------------------

    def connect(self) -> None:
        """Start a session. Must be called from the owning event loop."""

        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            _logger.warning("connect() ignored: already %s", self._state.value)
            return
        self._manual_close = False
        self._cancel_reconnect()
        self._attempts = 0
        self._exhausted = False
        self._start_session()

    def disconnect(self) -> None:
        """Close the session and cancel all pending work. Idempotent."""

        self._manual_close = True
        was_open = self._state is ConnectionState.OPEN
        if self._state is not ConnectionState.DISCONNECTED:
            self._state = ConnectionState.CLOSING

        self._cancel_reconnect()
        self._timers.cancel_all()
        for task in list(self._fetches):
            task.cancel()
        if self._session is not None and not self._session.done():
            self._session.cancel()
        self._session = None

        self._state = ConnectionState.DISCONNECTED
        if was_open:
            _logger.info("relay stream disconnected")
            self._emit("disconnected")

    async def aclose(self) -> None:
        """:meth:`disconnect`, then wait for cancelled tasks to unwind."""

        pending = [t for t in (self._session, *self._fetches) if t is not None]
        self.disconnect()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def test_connection(self) -> ConnectionTestResult:
        """Check the credential without touching the subscription."""

        try:
            profile = await self._relay.identify()
        except NotifierError as e:
            _logger.info("relay connection test failed: %s", e)
            return ConnectionTestResult(success=False, error=str(e))
        user = profile.get("name") or profile.get("email")
        return ConnectionTestResult(success=True, user=str(user) if user else None)

    # ---- Session -----------------------------------------------------------

    def _start_session(self) -> None:
        self._state = ConnectionState.CONNECTING
        loop = asyncio.get_running_loop()
        self._session = loop.create_task(self._run_session(), name="relay-stream")

    async def _run_session(self) -> None:
        try:
            async with self._relay.stream() as frames:
                self._on_open()
                async for frame in frames:
                    self._on_frame(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - every failure feeds the reconnect policy
            _logger.warning("relay stream failed: %s", e)
            self._emit("error", str(e))
        self._on_close()

    def _on_open(self) -> None:
        self._state = ConnectionState.OPEN
        self._attempts = 0
        self._cancel_reconnect()
        _logger.info("relay stream connected")
        self._emit("connected")

    def _on_close(self) -> None:
        was_open = self._state is ConnectionState.OPEN
        self._state = ConnectionState.DISCONNECTED
        self._session = None
        if was_open:
            _logger.info("relay stream closed")
            self._emit("disconnected")
        if not self._manual_close:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._attempts >= self._max_attempts:
            self._exhausted = True
            _logger.error("giving up after %s reconnect attempts", self._attempts)
            self._emit("error", MAX_ATTEMPTS_MESSAGE)
            return
        self._attempts += 1
        delay = self._base_delay * 2 ** (self._attempts - 1)
        _logger.info("reconnect attempt %s in %.0fs", self._attempts, delay)
        self._cancel_reconnect()
        self._reconnect = self._timers.schedule(delay, self._reconnect_now)

    def _reconnect_now(self) -> None:
        self._reconnect = None
        if self._manual_close or self._state is not ConnectionState.DISCONNECTED:
            return
        self._start_session()

    def _cancel_reconnect(self) -> None:
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None

    # ---- Event classification ----------------------------------------------

    def _on_frame(self, frame: str) -> None:
        try:
            event = RelayEvent.model_validate_json(frame)
        except ValidationError as e:
            _logger.debug("ignoring undecodable frame: %s", e.errors()[:1])
            return

        if event.type == "push":
            if event.push is not None:
                self._handle_push(event.push)
        elif event.type == "tickle":
            if event.subtype == "push":
                self._spawn_fetch()
        else:
            _logger.debug("ignoring %s frame", event.type)

    def _spawn_fetch(self) -> None:
        task = asyncio.get_running_loop().create_task(self._fetch_recent())
        self._fetches.add(task)
        task.add_done_callback(self._fetches.discard)

    async def _fetch_recent(self) -> None:
        modified_after = self._clock() - self._recent_window
        try:
            pushes = await self._relay.fetch_recent(
                limit=self._recent_limit, modified_after=modified_after
            )
        except NotifierError as e:
            _logger.warning("recent push fetch failed: %s", e)
            return
        for raw in pushes:
            try:
                push = push_from_mapping(raw)
            except ValidationError:
                _logger.debug("skipping malformed push from history")
                continue
            self._handle_push(push)

    def _handle_push(self, push: RelayPush) -> None:
        for record in self._records(push):
            self._process(record)

    def _records(self, push: RelayPush) -> Iterator[MessageRecord]:
        now = self._clock()
        phone = push.sender_number or ""
        if push.type == "sms_changed":
            if push.notifications:
                for n in push.notifications:
                    if n.title and n.body:
                        yield MessageRecord(
                            sender=n.title,
                            body=n.body,
                            timestamp_millis=int((n.timestamp or now) * 1000),
                            phone_number=n.thread_id or "",
                        )
            elif push.body:
                yield MessageRecord(
                    sender=push.title or push.sender_name or "Unknown",
                    body=push.body,
                    timestamp_millis=int((push.created or now) * 1000),
                    phone_number=phone,
                )
        elif push.type == "mirror":
            app_name = push.application_name or ""
            if push.body and any(name in app_name for name in self._sms_app_names):
                yield MessageRecord(
                    sender=push.title or push.sender_name or "Unknown",
                    body=push.body,
                    timestamp_millis=int((push.created or now) * 1000),
                    phone_number=phone,
                )

    def _process(self, record: MessageRecord) -> None:
        tx = parse(record.body, record.sender)
        if not tx.is_valid or tx.bank not in SUPPORTED_BANKS:
            _logger.debug("dropping message from %s: %s", record.sender, tx.error)
            return
        enriched = replace(
            tx,
            original_sender=record.sender,
            phone_number=record.phone_number or None,
            received_at_millis=record.timestamp_millis,
        )
        self._emit("received", enriched)

    # ---- Owner events ------------------------------------------------------

    def _emit(self, event: str, *args: Any) -> None:
        handler = getattr(self.handlers, event)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:  # noqa: BLE001 - owner bugs must not kill the stream
            _logger.exception("%s handler raised", event)


__all__ = [
    "ConnectionState",
    "ConnectionTestResult",
    "EventHandlers",
    "StreamClient",
    "DEFAULT_SMS_APP_NAMES",
    "MAX_ATTEMPTS_MESSAGE",
]
