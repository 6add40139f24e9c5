"""Orchestrator: wires the stream client, the popup stack and storage.

``NotifierApp`` is what a host (the CLI's ``listen``/``demo`` commands or a
desktop shell) owns. It is single-loop: construct it and call every method on
the same asyncio event loop.

Flow for a pushed SMS::

    StreamClient.received(tx)
        -> BalanceBook.record(tx)
        -> NotificationStackManager.admit(tx)
        -> TransactionStore.save(tx)   (worker thread, best-effort)

Popups never wait on storage; a failed save is logged and dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from .config import Settings
from .errors import ConfigurationError
from .logging_setup import get_logger
from .models import SUPPORTED_BANKS, Bank, Transaction, ValidationResult
from .notifications import NotificationStackManager, SlotId
from .parser import parse as parse_sms
from .parser import sample_transactions
from .parser import validate as validate_sms
from .persistence import SaveResult, TransactionStore
from .relay import Relay
from .scheduling import DeferredGroup, LoopScheduler, Scheduler
from .stream_client import EventHandlers, StreamClient
from .surfaces import SurfaceBackend

_logger = get_logger("sms_notifier.app")

type StatusListener = Callable[[str, str | None], None]


@dataclass(slots=True)
class BalanceBook:
    """Latest known balance per supported bank."""

    balances: dict[Bank, int] = field(default_factory=dict)

    def update(self, bank: Bank, balance: int) -> None:
        if bank not in SUPPORTED_BANKS:
            raise ValueError(f"unsupported bank: {bank!r}")
        if balance < 0:
            raise ValueError("balance must be >= 0")
        self.balances[bank] = balance

    def record(self, tx: Transaction) -> bool:
        """Take the balance carried by a valid transaction; ``False`` if ignored."""

        if not tx.is_valid or tx.bank not in SUPPORTED_BANKS:
            return False
        self.balances[tx.bank] = tx.balance_minor
        return True

    def get(self, bank: Bank) -> int | None:
        return self.balances.get(bank)

    @property
    def total(self) -> int:
        return sum(self.balances.values())

    def snapshot(self) -> dict[str, int]:
        data = {b.value: self.balances.get(b, 0) for b in sorted(SUPPORTED_BANKS)}
        data["total"] = self.total
        return data


class NotifierApp:
    """Owns one stream client, one popup stack and an optional store.

    Parameters
    ----------
    settings:
        Loaded :class:`~sms_notifier.config.Settings`.
    backend:
        Windowing collaborator for the popup stack.
    relay:
        Relay collaborator handed to the stream client (default: Pushbullet).
    store:
        Storage collaborator. When omitted, one is created from
        ``settings.storage`` if storage is enabled and a URL is configured.
    scheduler:
        Timer source shared by all components (default: the running loop).
    status_listener:
        Called as ``listener(event, detail)`` for ``connected``,
        ``disconnected`` and ``error`` stream events.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: SurfaceBackend,
        relay: Relay | None = None,
        store: TransactionStore | None = None,
        scheduler: Scheduler | None = None,
        status_listener: StatusListener | None = None,
    ) -> None:
        self.settings = settings
        self._scheduler = scheduler or LoopScheduler()
        self.notifications = NotificationStackManager(
            backend, self._scheduler, settings.to_stack_config()
        )
        self.balances = BalanceBook()
        self.stream: StreamClient | None = None
        self._relay = relay
        self._store = store
        self._storage_ready = store is not None
        self._status_listener = status_listener
        self._burst = DeferredGroup(self._scheduler)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._shutting_down = False
        self._closed = False

    # ---- Services ----------------------------------------------------------

    @property
    def store(self) -> TransactionStore | None:
        return self._store

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    async def start_services(self) -> bool:
        """Open storage (if enabled), check the relay credential, then connect.

        Returns ``False`` when the key is missing or the check fails; the app
        stays usable for manual popups in that case.
        """

        if self._shutting_down:
            return False
        relay_cfg = self.settings.relay
        if not relay_cfg.api_key:
            _logger.warning("relay API key missing; stream not started")
            return False

        await self._open_storage()

        if self.stream is None:
            self.stream = StreamClient(
                relay_cfg.api_key,
                relay=self._relay,
                scheduler=self._scheduler,
                handlers=EventHandlers(
                    connected=lambda: self._notify_status("connected", None),
                    disconnected=lambda: self._notify_status("disconnected", None),
                    error=lambda detail: self._notify_status("error", detail),
                    received=self.handle_received,
                ),
            )

        probe = await self.stream.test_connection()
        if not probe.success:
            _logger.error("relay connection test failed: %s", probe.error)
            self._notify_status("error", probe.error)
            return False
        _logger.info("relay credential ok (user=%s)", probe.user)
        self.stream.connect()
        return True

    def stop_services(self) -> None:
        if self.stream is not None:
            self.stream.disconnect()

    async def _open_storage(self) -> None:
        storage = self.settings.storage
        if self._store is None:
            if not storage.active or storage.database_url is None:
                return
            try:
                self._store = TransactionStore(storage.database_url)
            except ConfigurationError as e:
                _logger.warning("storage disabled: %s", e)
                return
        check = await asyncio.to_thread(self._store.test_connection)
        self._storage_ready = check.success
        if not check.success:
            _logger.warning("storage unavailable, transactions will not be saved: %s", check.error)

    def _notify_status(self, event: str, detail: str | None) -> None:
        if event == "error":
            _logger.warning("relay error: %s", detail)
        else:
            _logger.info("relay %s", event)
        if self._status_listener is not None:
            self._status_listener(event, detail)

    # ---- Transactions ------------------------------------------------------

    def handle_received(self, tx: Transaction) -> SlotId | None:
        """Owner of the stream client's ``received`` event."""

        if self._shutting_down:
            return None
        self.balances.record(tx)
        slot_id = self.notifications.admit(tx)
        if self._store is not None and self._storage_ready:
            self._spawn(self._save(self._store, tx))
        return slot_id

    async def _save(self, store: TransactionStore, tx: Transaction) -> SaveResult:
        result = await asyncio.to_thread(store.save, tx)
        if not result.success:
            _logger.warning("failed to save transaction: %s", result.error)
        return result

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight saves."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def admit_manual(self, tx: Transaction) -> SlotId | None:
        if self._shutting_down:
            return None
        return self.notifications.admit(tx)

    def remove_by_user_dismiss(self, slot_id: SlotId) -> bool:
        return self.notifications.remove_by_user_dismiss(slot_id)

    def close_all(self) -> int:
        self._burst.cancel_all()
        return self.notifications.close_all()

    def get_sample_transactions(self) -> tuple[Transaction, ...]:
        return sample_transactions()

    def validate(self, text: str) -> ValidationResult:
        return validate_sms(text)

    def parse(self, text: str, sender: str = "") -> Transaction:
        return parse_sms(text, sender)

    def show_sample_burst(self, interval: float = 0.8) -> int:
        """Stagger the illustrative demo transactions ``interval`` seconds apart."""

        demos = sample_transactions()[2:]
        for i, tx in enumerate(demos):
            self._burst.schedule(i * interval, lambda tx=tx: self.admit_manual(tx))
        return len(demos)

    # ---- Introspection -----------------------------------------------------

    def status(self) -> dict[str, Any]:
        storage = self.settings.storage
        return {
            "connection": self.stream.status() if self.stream is not None else None,
            "popup_count": len(self.notifications),
            "services": {
                "stream": self.stream is not None,
                "storage": self._store is not None,
            },
            "storage": {
                "enabled": storage.enabled,
                "configured": bool(storage.database_url) or self._store is not None,
                "ready": self._storage_ready,
            },
            "balances": self.balances.snapshot(),
            "shutting_down": self._shutting_down,
        }

    # ---- Teardown ----------------------------------------------------------

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop everything; forced cleanup when ``timeout`` elapses. Idempotent."""

        if self._closed:
            return
        self._shutting_down = True
        _logger.info("shutting down")
        try:
            await asyncio.wait_for(self._graceful_shutdown(), timeout)
        except TimeoutError:
            _logger.warning("graceful shutdown timed out after %.1fs; forcing cleanup", timeout)
            self._force_shutdown()
        self._closed = True

    async def _graceful_shutdown(self) -> None:
        self._burst.cancel_all()
        if self.stream is not None:
            await self.stream.aclose()
        self.notifications.shutdown()
        await self.drain()

    def _force_shutdown(self) -> None:
        self._burst.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        if self.stream is not None:
            self.stream.disconnect()
        self.notifications.shutdown()


__all__ = ["BalanceBook", "NotifierApp", "StatusListener"]
