"""Public interface for the ``sms_notifier`` package.

This module exposes the parser, the stream client, the popup stack, the
orchestrator and the public models/types as the stable import surface. There
is no runtime logic here, only symbol re-exports.
"""

from .app import BalanceBook, NotifierApp
from .config import Settings, load_settings, save_settings
from .errors import (
    ConfigurationError,
    ConnectivityError,
    FormatError,
    NotifierError,
    PresentationError,
)
from .models import (
    SUPPORTED_BANKS,
    Bank,
    MessageRecord,
    Transaction,
    TransactionType,
    ValidationResult,
)
from .notifications import Anchor, NotificationStackManager, StackConfig, compute_geometry
from .parser import detect_bank, parse, require_valid, sample_messages, sample_transactions, validate
from .scheduling import DeferredGroup, LoopScheduler, Scheduler
from .stream_client import ConnectionState, ConnectionTestResult, EventHandlers, StreamClient
from .surfaces import Geometry, SurfaceBackend, SurfacePayload, TerminalSurfaceBackend, WorkArea

__all__ = [
    # Parser
    "parse",
    "validate",
    "detect_bank",
    "require_valid",
    "sample_messages",
    "sample_transactions",
    # Stream
    "StreamClient",
    "EventHandlers",
    "ConnectionState",
    "ConnectionTestResult",
    # Popups
    "NotificationStackManager",
    "StackConfig",
    "Anchor",
    "compute_geometry",
    "SurfaceBackend",
    "TerminalSurfaceBackend",
    "SurfacePayload",
    "Geometry",
    "WorkArea",
    # Orchestration / config
    "NotifierApp",
    "BalanceBook",
    "Settings",
    "load_settings",
    "save_settings",
    "Scheduler",
    "LoopScheduler",
    "DeferredGroup",
    # Models / types
    "Bank",
    "TransactionType",
    "SUPPORTED_BANKS",
    "Transaction",
    "MessageRecord",
    "ValidationResult",
    # Errors
    "NotifierError",
    "FormatError",
    "ConnectivityError",
    "PresentationError",
    "ConfigurationError",
]
