"""Translate host lifecycle notifications into log messages.

Every supported notification is an :class:`EventKind`.  Its positional
payload is first parsed into a small typed event (missing items become
``None``) and then rendered by the formatter registered for that kind in
:data:`FORMATTERS`.  A formatter returns the message, ``None`` to suppress
the event, or :data:`MISSING` when the payload does not carry enough data.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from blinker import ANY

import hooks
from models import db, User, Post
from services.plugins import get_plugin_name

from .client import LogShipper, ShipResult
from .config import API_KEY_OPTION, LoggerConfig

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    LOGIN = "wp_login"
    USER_REGISTER = "user_register"
    USER_DELETE = "delete_user"
    PROFILE_UPDATE = "profile_update"
    PASSWORD_RESET = "password_reset"
    POST_SAVE = "save_post"
    POST_DELETE = "delete_post"
    POST_STATUS = "transition_post_status"
    PLUGIN_ACTIVATED = "activated_plugin"
    PLUGIN_DEACTIVATED = "deactivated_plugin"
    THEME_SWITCH = "switch_theme"
    OPTION_UPDATE = "updated_option"


# Post status changes and option updates are noisy, so they are opt-in.
DEFAULT_KINDS: Tuple[EventKind, ...] = tuple(
    kind for kind in EventKind if kind not in (EventKind.POST_STATUS, EventKind.OPTION_UPDATE)
)

# Options whose updates are never logged.  The API key must not leave the site.
IGNORED_OPTIONS = frozenset({"active_plugins", "recently_activated", API_KEY_OPTION})

# Status of a post that has never been saved by its author.
DRAFT_PLACEHOLDER_STATUS = "auto-draft"
PUBLISHED_STATUS = "publish"

MISSING = object()

MISSING_DATA_MESSAGES: Dict[EventKind, str] = {
    EventKind.LOGIN: "Login event detected, but user data is missing.",
    EventKind.USER_REGISTER: "User registration event detected, but user data is missing.",
    EventKind.USER_DELETE: "User deletion event detected, but user data is missing.",
    EventKind.PROFILE_UPDATE: "User profile update detected, but user data is missing.",
    EventKind.PASSWORD_RESET: "Password reset event detected, but user data is missing.",
    EventKind.POST_SAVE: "Post save detected, but post data is missing or invalid.",
    EventKind.POST_DELETE: "Post deletion event detected, but post data is missing.",
    EventKind.POST_STATUS: "Post status change detected, but post data is missing or invalid.",
    EventKind.PLUGIN_ACTIVATED: "Plugin activation event detected, but plugin data is missing.",
    EventKind.PLUGIN_DEACTIVATED: "Plugin deactivation event detected, but plugin data is missing.",
    EventKind.THEME_SWITCH: "Theme switch event detected, but theme data is missing.",
}


# ---------------------------------------------------------------------------
# typed payloads

@dataclass(frozen=True)
class LoginEvent:
    identifier: Any = None


@dataclass(frozen=True)
class UserEvent:
    user_id: Any = None


@dataclass(frozen=True)
class PasswordResetEvent:
    user: Any = None


@dataclass(frozen=True)
class PostSaveEvent:
    post_id: Any = None
    is_update: Any = None


@dataclass(frozen=True)
class PostDeleteEvent:
    post_id: Any = None


@dataclass(frozen=True)
class PostStatusEvent:
    new_status: Any = None
    old_status: Any = None
    post: Any = None


@dataclass(frozen=True)
class PluginEvent:
    plugin_path: Any = None


@dataclass(frozen=True)
class ThemeSwitchEvent:
    name: Any = None


@dataclass(frozen=True)
class OptionUpdateEvent:
    name: Any = None
    old_value: Any = None
    new_value: Any = None


def _arg(args: Tuple[Any, ...], index: int) -> Any:
    return args[index] if len(args) > index else None


PAYLOADS: Dict[EventKind, Callable[[Tuple[Any, ...]], Any]] = {
    EventKind.LOGIN: lambda a: LoginEvent(_arg(a, 0)),
    EventKind.USER_REGISTER: lambda a: UserEvent(_arg(a, 0)),
    EventKind.USER_DELETE: lambda a: UserEvent(_arg(a, 0)),
    EventKind.PROFILE_UPDATE: lambda a: UserEvent(_arg(a, 0)),
    EventKind.PASSWORD_RESET: lambda a: PasswordResetEvent(_arg(a, 0)),
    EventKind.POST_SAVE: lambda a: PostSaveEvent(_arg(a, 0), _arg(a, 2)),
    EventKind.POST_DELETE: lambda a: PostDeleteEvent(_arg(a, 0)),
    EventKind.POST_STATUS: lambda a: PostStatusEvent(_arg(a, 0), _arg(a, 1), _arg(a, 2)),
    EventKind.PLUGIN_ACTIVATED: lambda a: PluginEvent(_arg(a, 0)),
    EventKind.PLUGIN_DEACTIVATED: lambda a: PluginEvent(_arg(a, 0)),
    EventKind.THEME_SWITCH: lambda a: ThemeSwitchEvent(_arg(a, 0)),
    EventKind.OPTION_UPDATE: lambda a: OptionUpdateEvent(_arg(a, 0), _arg(a, 1), _arg(a, 2)),
}


# ---------------------------------------------------------------------------
# lookups into the host

def _coerce_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def find_user(user_id: Any) -> Optional[User]:
    ident = _coerce_id(user_id)
    if ident is None:
        return None
    return db.session.get(User, ident)


def find_post(post_id: Any) -> Optional[Post]:
    ident = _coerce_id(post_id)
    if ident is None:
        return None
    return db.session.get(Post, ident)


@dataclass(frozen=True)
class Lookups:
    """Host queries needed by the formatters."""

    user: Callable[[Any], Any] = find_user
    post: Callable[[Any], Any] = find_post
    plugin_name: Callable[[Any], Optional[str]] = get_plugin_name


# ---------------------------------------------------------------------------
# formatters

def _user_login(user: Any) -> Optional[str]:
    for attr in ("user_login", "username"):
        value = getattr(user, attr, None)
        if value is not None:
            return value
    return None


def _is_post(post: Any) -> bool:
    return post is not None and getattr(post, "id", None) is not None and hasattr(post, "title")


def _post_label(post: Any) -> str:
    return f"'{post.title}' (ID: {post.id})"


def stringify_option_value(value: Any) -> str:
    """Render an option value in a stable textual form."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def format_login(event: LoginEvent, lookups: Lookups):
    if event.identifier is None:
        return MISSING
    return f"User {event.identifier} logged in."


def _user_formatter(template: str):
    def formatter(event: UserEvent, lookups: Lookups):
        user = lookups.user(event.user_id)
        login = _user_login(user) if user is not None else None
        if login is None:
            return MISSING
        return template.format(login=login)

    return formatter


def format_password_reset(event: PasswordResetEvent, lookups: Lookups):
    login = _user_login(event.user) if event.user is not None else None
    if login is None:
        return MISSING
    return f"User {login} reset their password."


def format_post_save(event: PostSaveEvent, lookups: Lookups):
    post = lookups.post(event.post_id)
    if not _is_post(post):
        return MISSING
    if event.is_update:
        return f"Post updated: {_post_label(post)}."
    return f"New post created: {_post_label(post)}."


def format_post_delete(event: PostDeleteEvent, lookups: Lookups):
    post = lookups.post(event.post_id)
    if not _is_post(post):
        return MISSING
    return f"Post deleted: {_post_label(post)}."


def format_post_status(event: PostStatusEvent, lookups: Lookups):
    post = event.post
    if not _is_post(post):
        return MISSING
    new, old = event.new_status, event.old_status
    if old == DRAFT_PLACEHOLDER_STATUS and new == PUBLISHED_STATUS:
        return f"New post published: {_post_label(post)}."
    if new == PUBLISHED_STATUS:
        return f"Post updated: {_post_label(post)} changed from '{old}' to '{new}'."
    return f"Post {_post_label(post)} changed from '{old}' to '{new}'."


def _plugin_formatter(verb: str):
    def formatter(event: PluginEvent, lookups: Lookups):
        name = lookups.plugin_name(event.plugin_path) if event.plugin_path else None
        if not name:
            return MISSING
        return f"Plugin {verb}: {name}."

    return formatter


def format_theme_switch(event: ThemeSwitchEvent, lookups: Lookups):
    if event.name is None:
        return MISSING
    return f"Theme switched to: {event.name}."


def format_option_update(event: OptionUpdateEvent, lookups: Lookups):
    if event.name is None or event.name in IGNORED_OPTIONS:
        return None
    return (
        f"Option '{event.name}' updated. "
        f"Old value: '{stringify_option_value(event.old_value)}', "
        f"New value: '{stringify_option_value(event.new_value)}'."
    )


FORMATTERS: Dict[EventKind, Callable[[Any, Lookups], Any]] = {
    EventKind.LOGIN: format_login,
    EventKind.USER_REGISTER: _user_formatter("New user registered: {login}."),
    EventKind.USER_DELETE: _user_formatter("User deleted: {login}."),
    EventKind.PROFILE_UPDATE: _user_formatter("User profile updated: {login}."),
    EventKind.PASSWORD_RESET: format_password_reset,
    EventKind.POST_SAVE: format_post_save,
    EventKind.POST_DELETE: format_post_delete,
    EventKind.POST_STATUS: format_post_status,
    EventKind.PLUGIN_ACTIVATED: _plugin_formatter("activated"),
    EventKind.PLUGIN_DEACTIVATED: _plugin_formatter("deactivated"),
    EventKind.THEME_SWITCH: format_theme_switch,
    EventKind.OPTION_UPDATE: format_option_update,
}


def kinds_from_environment(default: Iterable[EventKind] = DEFAULT_KINDS) -> Tuple[EventKind, ...]:
    """Read the enabled event kinds from ``BETTERSTACK_EVENT_KINDS``."""
    raw = os.environ.get("BETTERSTACK_EVENT_KINDS", "")
    names = [part.strip() for part in raw.split(",") if part.strip()]
    if not names:
        return tuple(default)
    kinds = []
    for name in names:
        try:
            kinds.append(EventKind(name))
        except ValueError:
            logger.warning("Ignoring unknown event kind %r in BETTERSTACK_EVENT_KINDS", name)
    return tuple(kinds)


class EventAdapter:
    """Subscribe to host notifications and ship one message per event."""

    def __init__(
        self,
        config: LoggerConfig,
        shipper: LogShipper,
        *,
        lookups: Optional[Lookups] = None,
        kinds: Optional[Iterable[EventKind]] = None,
        placeholders: bool = True,
    ) -> None:
        self.config = config
        self.shipper = shipper
        self.lookups = lookups or Lookups()
        self.kinds = tuple(DEFAULT_KINDS if kinds is None else kinds)
        self.placeholders = placeholders
        self._receivers: Dict[EventKind, Callable[..., None]] = {}

    def format(self, kind: EventKind, *args: Any) -> Optional[str]:
        """Return the message for *kind* with payload *args*, or ``None``."""
        kind = EventKind(kind)
        event = PAYLOADS[kind](args)
        message = FORMATTERS[kind](event, self.lookups)
        if message is MISSING:
            return MISSING_DATA_MESSAGES[kind] if self.placeholders else None
        return message

    def handle(self, kind: EventKind, *args: Any) -> Optional[ShipResult]:
        message = self.format(kind, *args)
        if message is None:
            return None
        return self.shipper.send(message)

    # ------------------------------------------------------------------
    # subscriptions

    @property
    def connected(self) -> bool:
        return bool(self._receivers)

    def connect(self, sender: Any = ANY) -> None:
        """Subscribe to the enabled notifications emitted by *sender*.

        Nothing is subscribed while event logging is disabled.
        """
        self.disconnect()
        if not self.config.event_logging_enabled:
            return
        for kind in self.kinds:
            receiver = self._make_receiver(kind)
            hooks.NOTIFICATIONS[kind.value].connect(receiver, sender=sender, weak=False)
            self._receivers[kind] = receiver
        logger.debug("Subscribed to %d host notifications", len(self._receivers))

    def disconnect(self) -> None:
        for kind, receiver in self._receivers.items():
            hooks.NOTIFICATIONS[kind.value].disconnect(receiver)
        self._receivers.clear()

    def _make_receiver(self, kind: EventKind) -> Callable[..., None]:
        def receiver(sender: Any, args: Tuple[Any, ...] = (), **_: Any) -> None:
            try:
                self.handle(kind, *args)
            except Exception:
                logger.exception("Failed to log %s notification", kind.value)

        return receiver


__all__ = [
    "DEFAULT_KINDS",
    "EventAdapter",
    "EventKind",
    "FORMATTERS",
    "IGNORED_OPTIONS",
    "Lookups",
    "MISSING_DATA_MESSAGES",
    "PAYLOADS",
    "kinds_from_environment",
    "stringify_option_value",
]
