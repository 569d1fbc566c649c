"""Ship fatal request errors before the host renders its error page."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from werkzeug.exceptions import HTTPException, InternalServerError

from .client import LogShipper
from .config import LoggerConfig

logger = logging.getLogger(__name__)


def default_error_handler(error: HTTPException) -> Any:
    """Let Flask render its stock response for *error*."""
    return error


def termination_message(error: Any) -> str:
    original = getattr(error, "original_exception", None)
    if original is not None:
        return str(original) or type(original).__name__
    if isinstance(error, HTTPException):
        return error.description or error.name
    return str(error)


class FatalErrorHook:
    """Observer wrapped around the host's 500 handler.

    The default handler always runs afterwards, whatever happens while
    shipping the message.
    """

    def __init__(
        self,
        load_config: Callable[[], LoggerConfig],
        shipper_factory: Callable[[LoggerConfig], LogShipper],
        default_handler: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self.load_config = load_config
        self.shipper_factory = shipper_factory
        self.default_handler = default_handler or default_error_handler

    def init_app(self, app) -> None:
        app.register_error_handler(InternalServerError, self)

    def notify(self, error: Any) -> None:
        try:
            config = self.load_config()
        except Exception:
            logger.exception("Could not load logger settings, using environment only")
            config = LoggerConfig.from_environment()
        if not config.error_logging_enabled:
            return
        try:
            self.shipper_factory(config).send(termination_message(error))
        except Exception:
            logger.exception("Failed to ship fatal error")

    def __call__(self, error: Any) -> Any:
        self.notify(error)
        return self.default_handler(error)


__all__ = ["FatalErrorHook", "default_error_handler", "termination_message"]
