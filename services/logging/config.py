"""Typed configuration for the BetterStack logger.

The three persisted settings live in the host's key/value store.  A
deployment-level ``BETTERSTACK_API_KEY`` environment variable always wins
over the stored key.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from marshmallow import Schema, fields, pre_load, post_load, EXCLUDE

import helpers

API_KEY_ENV = "BETTERSTACK_API_KEY"

API_KEY_OPTION = "betterstack_api_key"
ERROR_LOGGING_OPTION = "betterstack_error_logging_enabled"
EVENT_LOGGING_OPTION = "betterstack_event_logging_enabled"

DEFAULTS: Dict[str, str] = {
    API_KEY_OPTION: "",
    ERROR_LOGGING_OPTION: "yes",
    EVENT_LOGGING_OPTION: "no",
}

_TRUTHY = {"yes", "on", "1", "true"}


def _clean_key(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() == "yes"


def environment_api_key() -> Optional[str]:
    return _clean_key(os.environ.get(API_KEY_ENV))


@dataclass(frozen=True)
class LoggerConfig:
    api_key: Optional[str] = None
    error_logging_enabled: bool = True
    event_logging_enabled: bool = False
    api_key_locked: bool = False

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "LoggerConfig":
        """Build a config from raw stored option values."""
        constant = environment_api_key()
        return cls(
            api_key=constant or _clean_key(options.get(API_KEY_OPTION)),
            error_logging_enabled=_flag(options.get(ERROR_LOGGING_OPTION), True),
            event_logging_enabled=_flag(options.get(EVENT_LOGGING_OPTION), False),
            api_key_locked=constant is not None,
        )

    @classmethod
    def from_environment(cls) -> "LoggerConfig":
        return cls.from_options({})

    def to_options(self) -> Dict[str, str]:
        options = {
            ERROR_LOGGING_OPTION: "yes" if self.error_logging_enabled else "no",
            EVENT_LOGGING_OPTION: "yes" if self.event_logging_enabled else "no",
        }
        if not self.api_key_locked:
            options[API_KEY_OPTION] = self.api_key or ""
        return options


def load_config(get_option: Optional[Callable[[str, Any], Any]] = None) -> LoggerConfig:
    """Read the logger settings from the host settings store."""
    get_option = get_option or helpers.get_option
    return LoggerConfig.from_options(
        {key: get_option(key, None) for key in DEFAULTS}
    )


def ensure_defaults(add_option: Optional[Callable[..., Any]] = None) -> None:
    """Create any missing logger settings with their default values."""
    add_option = add_option or helpers.add_option
    for key, value in DEFAULTS.items():
        add_option(key, value)


def save_config(
    config: LoggerConfig, update_option: Optional[Callable[[str, Any], Any]] = None
) -> None:
    update_option = update_option or helpers.update_option
    for key, value in config.to_options().items():
        update_option(key, value)


class _Checkbox(fields.Boolean):
    truthy = _TRUTHY

    def _deserialize(self, value, attr, data, **kwargs):
        return str(value).strip().lower() in self.truthy


class LoggerSettingsSchema(Schema):
    """Schema for the settings form submission.

    Unchecked checkboxes are absent from a form post, so missing flags
    load as ``False``.
    """

    class Meta:
        unknown = EXCLUDE

    api_key = fields.Str(load_default=None, allow_none=True, data_key=API_KEY_OPTION)
    error_logging_enabled = _Checkbox(load_default=False, data_key=ERROR_LOGGING_OPTION)
    event_logging_enabled = _Checkbox(load_default=False, data_key=EVENT_LOGGING_OPTION)

    @pre_load
    def normalize(self, data, **_: Any):
        return {key: value for key, value in dict(data).items() if value is not None}

    @post_load
    def make_config(self, data: Dict[str, Any], **_: Any) -> LoggerConfig:
        constant = environment_api_key()
        return LoggerConfig(
            api_key=constant or _clean_key(data.get("api_key")),
            error_logging_enabled=data["error_logging_enabled"],
            event_logging_enabled=data["event_logging_enabled"],
            api_key_locked=constant is not None,
        )


__all__ = [
    "API_KEY_ENV",
    "API_KEY_OPTION",
    "DEFAULTS",
    "ERROR_LOGGING_OPTION",
    "EVENT_LOGGING_OPTION",
    "LoggerConfig",
    "LoggerSettingsSchema",
    "ensure_defaults",
    "environment_api_key",
    "load_config",
    "save_config",
]
