from types import SimpleNamespace

import pytest

import hooks
from services.logging.config import LoggerConfig
from services.logging.events import (
    DEFAULT_KINDS,
    EventAdapter,
    EventKind,
    Lookups,
    MISSING_DATA_MESSAGES,
    kinds_from_environment,
    stringify_option_value,
)


USERS = {
    7: SimpleNamespace(id=7, user_login="alice"),
    8: SimpleNamespace(id=8, username="bob"),
}
POSTS = {
    42: SimpleNamespace(id=42, title="Hello"),
}
PLUGINS = {
    "forms/forms.py": "Contact Forms",
}

LOOKUPS = Lookups(
    user=lambda ident: USERS.get(ident),
    post=lambda ident: POSTS.get(ident),
    plugin_name=lambda path: PLUGINS.get(path),
)


class DummyShipper:
    def __init__(self):
        self.messages = []

    def send(self, message):
        self.messages.append(message)
        return message


def _adapter(enabled=True, kinds=None, placeholders=True):
    config = LoggerConfig(api_key="tok", event_logging_enabled=enabled)
    return EventAdapter(
        config, DummyShipper(), lookups=LOOKUPS, kinds=kinds, placeholders=placeholders
    )


@pytest.mark.parametrize(
    "kind, args, expected",
    [
        (EventKind.LOGIN, ("alice", None), "User alice logged in."),
        (EventKind.USER_REGISTER, (7,), "New user registered: alice."),
        (EventKind.USER_DELETE, (8,), "User deleted: bob."),
        (EventKind.PROFILE_UPDATE, (7, {}), "User profile updated: alice."),
        (EventKind.PASSWORD_RESET, (USERS[7], "secret"), "User alice reset their password."),
        (EventKind.POST_SAVE, (42, POSTS[42], False), "New post created: 'Hello' (ID: 42)."),
        (EventKind.POST_SAVE, (42, POSTS[42], True), "Post updated: 'Hello' (ID: 42)."),
        (EventKind.POST_DELETE, (42,), "Post deleted: 'Hello' (ID: 42)."),
        (EventKind.PLUGIN_ACTIVATED, ("forms/forms.py", False), "Plugin activated: Contact Forms."),
        (EventKind.PLUGIN_DEACTIVATED, ("forms/forms.py", False), "Plugin deactivated: Contact Forms."),
        (EventKind.THEME_SWITCH, ("Twenty Four", None), "Theme switched to: Twenty Four."),
    ],
)
def test_format_messages(kind, args, expected):
    assert _adapter().format(kind, *args) == expected


def test_post_status_transitions():
    adapter = _adapter()
    post = POSTS[42]
    assert (
        adapter.format(EventKind.POST_STATUS, "publish", "auto-draft", post)
        == "New post published: 'Hello' (ID: 42)."
    )
    assert (
        adapter.format(EventKind.POST_STATUS, "publish", "draft", post)
        == "Post updated: 'Hello' (ID: 42) changed from 'draft' to 'publish'."
    )
    assert (
        adapter.format(EventKind.POST_STATUS, "trash", "publish", post)
        == "Post 'Hello' (ID: 42) changed from 'publish' to 'trash'."
    )


def test_option_update_message_and_ignored_options():
    adapter = _adapter()
    assert (
        adapter.format(EventKind.OPTION_UPDATE, "blogname", "Old", "New")
        == "Option 'blogname' updated. Old value: 'Old', New value: 'New'."
    )
    assert adapter.format(EventKind.OPTION_UPDATE, "active_plugins", [], ["a.py"]) is None
    assert adapter.format(EventKind.OPTION_UPDATE, "recently_activated", {}, {"a": 1}) is None
    assert adapter.format(EventKind.OPTION_UPDATE, "betterstack_api_key", "", "tok_secret") is None


def test_ignored_option_ships_nothing():
    adapter = _adapter()
    assert adapter.handle(EventKind.OPTION_UPDATE, "active_plugins", [], ["a.py"]) is None
    assert adapter.shipper.messages == []


def test_stringify_option_value_is_stable():
    assert stringify_option_value(None) == ""
    assert stringify_option_value(True) == "1"
    assert stringify_option_value(False) == ""
    assert stringify_option_value(3) == "3"
    assert stringify_option_value({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    assert stringify_option_value({"b", "a"}) == '["a","b"]'


@pytest.mark.parametrize(
    "kind, args",
    [
        (EventKind.LOGIN, ()),
        (EventKind.USER_REGISTER, (999,)),
        (EventKind.USER_DELETE, (None,)),
        (EventKind.PROFILE_UPDATE, ("nope",)),
        (EventKind.PASSWORD_RESET, (None, "pw")),
        (EventKind.POST_SAVE, (999, None, False)),
        (EventKind.POST_DELETE, (999,)),
        (EventKind.POST_STATUS, ("publish", "draft", None)),
        (EventKind.PLUGIN_ACTIVATED, ("missing.py", False)),
        (EventKind.PLUGIN_DEACTIVATED, ()),
        (EventKind.THEME_SWITCH, ()),
    ],
)
def test_missing_data_uses_placeholder(kind, args):
    assert _adapter().format(kind, *args) == MISSING_DATA_MESSAGES[kind]
    assert _adapter(placeholders=False).format(kind, *args) is None


def test_post_without_title_is_treated_as_missing():
    lookups = Lookups(
        user=LOOKUPS.user,
        post=lambda ident: SimpleNamespace(id=ident),
        plugin_name=LOOKUPS.plugin_name,
    )
    adapter = EventAdapter(LoggerConfig(event_logging_enabled=True), DummyShipper(), lookups=lookups)
    assert adapter.format(EventKind.POST_DELETE, 5) == MISSING_DATA_MESSAGES[EventKind.POST_DELETE]


def test_formatting_is_idempotent():
    adapter = _adapter()
    first = adapter.format(EventKind.POST_SAVE, 42, POSTS[42], True)
    second = adapter.format(EventKind.POST_SAVE, 42, POSTS[42], True)
    assert first == second


def test_handle_ships_formatted_message():
    adapter = _adapter()
    adapter.handle(EventKind.LOGIN, "alice", None)
    assert adapter.shipper.messages == ["User alice logged in."]


def test_connect_subscribes_and_disconnect_removes():
    sender = object()
    adapter = _adapter()
    adapter.connect(sender=sender)
    try:
        assert adapter.connected
        hooks.user_logged_in.send(sender, args=("alice", None))
        hooks.post_saved.send(sender, args=(42, POSTS[42], True))
        assert adapter.shipper.messages == [
            "User alice logged in.",
            "Post updated: 'Hello' (ID: 42).",
        ]
    finally:
        adapter.disconnect()

    assert not adapter.connected
    hooks.user_logged_in.send(sender, args=("alice", None))
    assert len(adapter.shipper.messages) == 2


def test_disabled_event_logging_subscribes_nothing():
    sender = object()
    adapter = _adapter(enabled=False)
    adapter.connect(sender=sender)
    assert not adapter.connected
    for signal in hooks.NOTIFICATIONS.values():
        signal.send(sender, args=(7,))
    assert adapter.shipper.messages == []


def test_notifications_from_other_senders_are_ignored():
    mine, other = object(), object()
    adapter = _adapter()
    adapter.connect(sender=mine)
    try:
        hooks.user_logged_in.send(other, args=("alice", None))
        assert adapter.shipper.messages == []
    finally:
        adapter.disconnect()


def test_connect_twice_does_not_duplicate():
    sender = object()
    adapter = _adapter()
    adapter.connect(sender=sender)
    adapter.connect(sender=sender)
    try:
        hooks.user_logged_in.send(sender, args=("alice", None))
        assert adapter.shipper.messages == ["User alice logged in."]
    finally:
        adapter.disconnect()


def test_default_kinds_leave_noisy_notifications_unsubscribed():
    sender = object()
    adapter = _adapter()
    adapter.connect(sender=sender)
    try:
        hooks.option_updated.send(sender, args=("blogname", "a", "b"))
        hooks.post_status_transitioned.send(sender, args=("publish", "draft", POSTS[42]))
        assert adapter.shipper.messages == []
    finally:
        adapter.disconnect()
    assert EventKind.OPTION_UPDATE not in DEFAULT_KINDS
    assert EventKind.POST_STATUS not in DEFAULT_KINDS


def test_receiver_errors_do_not_propagate(caplog):
    class ExplodingShipper:
        def send(self, message):
            raise RuntimeError("network down")

    sender = object()
    adapter = EventAdapter(
        LoggerConfig(api_key="tok", event_logging_enabled=True), ExplodingShipper(), lookups=LOOKUPS
    )
    adapter.connect(sender=sender)
    try:
        hooks.user_logged_in.send(sender, args=("alice", None))
    finally:
        adapter.disconnect()
    assert "Failed to log wp_login notification" in caplog.text


def test_kinds_from_environment(monkeypatch):
    assert kinds_from_environment() == DEFAULT_KINDS
    monkeypatch.setenv("BETTERSTACK_EVENT_KINDS", "wp_login, updated_option, bogus")
    assert kinds_from_environment() == (EventKind.LOGIN, EventKind.OPTION_UPDATE)
