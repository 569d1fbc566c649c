"""HTTP client that ships log messages to BetterStack.

Each call performs exactly one synchronous POST.  Nothing is retried,
queued or buffered; the outcome is reported back to the caller as a
:class:`ShipResult` and never raised.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import requests
from prometheus_client import Counter

from .config import LoggerConfig

INGESTION_URL = os.environ.get("BETTERSTACK_INGEST_URL", "https://in.logs.betterstack.com")
DEFAULT_TIMEOUT = float(os.environ.get("BETTERSTACK_TIMEOUT", "15"))
VERIFY_SSL = os.environ.get("BETTERSTACK_VERIFY_SSL", "1") != "0"

SUCCESS_STATUS = 202
SUCCESS_MESSAGE = "Log message sent successfully!"
MISSING_KEY_MESSAGE = "API key is not set."

logger = logging.getLogger(__name__)

logs_delivered = Counter(
    "betterstack_logs_delivered_total",
    "Number of log messages accepted by the ingestion endpoint",
)
logs_failed = Counter(
    "betterstack_logs_failed_total",
    "Number of log messages that could not be delivered",
    ["reason"],
)


@dataclass
class ShipResult:
    """Outcome of a single delivery attempt."""

    delivered: bool
    message: str
    status_code: Optional[int] = None

    def __str__(self) -> str:
        return self.message

    def __bool__(self) -> bool:
        return self.delivered


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return *now* (default: current time) as ``YYYY-MM-DD HH:MM:SS UTC``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%d %H:%M:%S") + " UTC"


class LogShipper:
    """Deliver messages to the ingestion endpoint using ``config.api_key``."""

    def __init__(
        self,
        config: LoggerConfig,
        *,
        url: str = INGESTION_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
        verify: bool = VERIFY_SSL,
    ) -> None:
        self.config = config
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.verify = verify

    def build_entry(self, message: str) -> dict:
        return {"dt": utc_timestamp(self.clock()), "message": message}

    def send(self, message: str) -> ShipResult:
        if not self.config.api_key:
            logs_failed.labels(reason="config").inc()
            return ShipResult(delivered=False, message=MISSING_KEY_MESSAGE)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        try:
            response = self.session.post(
                self.url,
                json=self.build_entry(message),
                headers=headers,
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.RequestException as exc:
            logs_failed.labels(reason="transport").inc()
            logger.debug("Log delivery to %s failed", self.url, exc_info=True)
            return ShipResult(
                delivered=False,
                message=f"Failed to send log message. Error: {exc}",
            )

        if response.status_code == SUCCESS_STATUS:
            logs_delivered.inc()
            return ShipResult(
                delivered=True, message=SUCCESS_MESSAGE, status_code=response.status_code
            )

        logs_failed.labels(reason="rejected").inc()
        return ShipResult(
            delivered=False,
            message=(
                "Failed to send log message. "
                f"Status code: {response.status_code}, Response: {response.text}"
            ),
            status_code=response.status_code,
        )


__all__ = [
    "INGESTION_URL",
    "LogShipper",
    "MISSING_KEY_MESSAGE",
    "SUCCESS_MESSAGE",
    "ShipResult",
    "utc_timestamp",
]
