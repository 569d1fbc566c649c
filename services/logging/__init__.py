"""BetterStack logging for the host application.

Typical use::

    from services.logging import BetterStackLogger, b_log

    betterstack = BetterStackLogger(app)
    b_log("Something happened")
"""

from .client import LogShipper, ShipResult, INGESTION_URL
from .config import LoggerConfig, LoggerSettingsSchema, ensure_defaults, load_config, save_config
from .events import EventAdapter, EventKind, Lookups
from .extension import BetterStackLogger, EXTENSION_KEY, b_log, better_error_log
from .fatal import FatalErrorHook

__all__ = [
    "BetterStackLogger",
    "EXTENSION_KEY",
    "EventAdapter",
    "EventKind",
    "FatalErrorHook",
    "INGESTION_URL",
    "LogShipper",
    "LoggerConfig",
    "LoggerSettingsSchema",
    "Lookups",
    "ShipResult",
    "b_log",
    "better_error_log",
    "ensure_defaults",
    "load_config",
    "save_config",
]
