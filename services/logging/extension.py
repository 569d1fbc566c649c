"""Flask extension wiring configuration, shipper and event adapter together."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from blinker import ANY
from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from models import db

from .client import LogShipper, ShipResult
from .config import LoggerConfig, load_config
from .events import EventAdapter, EventKind, Lookups, kinds_from_environment
from .fatal import FatalErrorHook

EXTENSION_KEY = "betterstack_logger"

logger = logging.getLogger(__name__)


class BetterStackLogger:
    """Install BetterStack logging into a Flask application.

    Settings are read from the host settings store before every request.
    Whenever they change the shipper and event adapter are rebuilt, so
    switching event logging off removes every subscription.
    """

    def __init__(
        self,
        app=None,
        *,
        shipper_factory: Optional[Callable[[LoggerConfig], LogShipper]] = None,
        lookups: Optional[Lookups] = None,
        kinds: Optional[Iterable[EventKind]] = None,
        placeholders: bool = True,
    ) -> None:
        self.shipper_factory = shipper_factory or LogShipper
        self.lookups = lookups
        self.kinds = tuple(kinds) if kinds is not None else None
        self.placeholders = placeholders
        self.app = None
        self.config: Optional[LoggerConfig] = None
        self.shipper: Optional[LogShipper] = None
        self.adapter: Optional[EventAdapter] = None
        self.fatal_hook = FatalErrorHook(self.load_config_after_failure, self._build_shipper)
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.app = app
        app.extensions[EXTENSION_KEY] = self
        self.fatal_hook.init_app(app)
        app.before_request(self._refresh_for_request)

    def load_config(self) -> LoggerConfig:
        return load_config()

    def load_config_after_failure(self) -> LoggerConfig:
        """Settings for reporting a failed request.

        The failed request may have left the session mid-transaction, so it
        is rolled back first.  When the store still cannot be read the last
        known settings are used.
        """
        try:
            db.session.rollback()
            return self.load_config()
        except SQLAlchemyError:
            logger.exception("Could not load BetterStack logger settings")
            return self._last_known_config()

    def _last_known_config(self) -> LoggerConfig:
        return self.config if self.config is not None else LoggerConfig.from_environment()

    def _build_shipper(self, config: LoggerConfig) -> LogShipper:
        return self.shipper_factory(config)

    def configure(self, config: LoggerConfig) -> None:
        if self.adapter is not None:
            self.adapter.disconnect()
        self.config = config
        self.shipper = self._build_shipper(config)
        self.adapter = EventAdapter(
            config,
            self.shipper,
            lookups=self.lookups,
            kinds=self.kinds if self.kinds is not None else kinds_from_environment(),
            placeholders=self.placeholders,
        )
        self.adapter.connect(sender=self.app if self.app is not None else ANY)
        logger.info(
            "BetterStack logger configured: api_key=%s error_logging=%s event_logging=%s",
            "set" if config.api_key else "missing",
            config.error_logging_enabled,
            config.event_logging_enabled,
        )

    def refresh(self) -> LoggerConfig:
        """Reload settings and reconfigure when they changed."""
        config = self.load_config()
        if config != self.config:
            self.configure(config)
        return config

    def _refresh_for_request(self) -> None:
        try:
            self.refresh()
        except SQLAlchemyError:
            logger.exception("Could not refresh BetterStack logger settings")

    def shutdown(self) -> None:
        if self.adapter is not None:
            self.adapter.disconnect()

    def log_error(self, message: str) -> ShipResult:
        try:
            self.refresh()
        except SQLAlchemyError:
            logger.exception("Could not refresh BetterStack logger settings")
            if self.shipper is None:
                self.configure(self._last_known_config())
        return self.shipper.send(message)


def better_error_log(message: str) -> ShipResult:
    """Send *message* to BetterStack from anywhere in the process."""
    if has_app_context():
        extension = current_app.extensions.get(EXTENSION_KEY)
        if extension is not None:
            return extension.log_error(message)
        try:
            config = load_config()
        except SQLAlchemyError:
            logger.exception("Could not load BetterStack logger settings")
            config = LoggerConfig.from_environment()
        return LogShipper(config).send(message)
    return LogShipper(LoggerConfig.from_environment()).send(message)


def b_log(message: str) -> ShipResult:
    """Shorthand for :func:`better_error_log`."""
    return better_error_log(message)


__all__ = ["BetterStackLogger", "EXTENSION_KEY", "b_log", "better_error_log"]
