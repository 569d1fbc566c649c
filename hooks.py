"""Lifecycle notifications announced by the host application.

Each notification is a blinker signal named after the action it reports.
Receivers are called as ``receiver(sender, args=(...))`` where ``sender`` is
the Flask application that emitted the notification and ``args`` is the
positional payload documented next to each signal.
"""

from __future__ import annotations

from typing import Any

from blinker import Namespace
from flask import current_app, has_app_context

_signals = Namespace()

# (identifier, user)
user_logged_in = _signals.signal("wp_login")
# (user_id,)
user_registered = _signals.signal("user_register")
# (user_id,)
user_deleted = _signals.signal("delete_user")
# (user_id, old_user_data)
profile_updated = _signals.signal("profile_update")
# (user, new_password)
password_reset = _signals.signal("password_reset")
# (post_id, post, is_update)
post_saved = _signals.signal("save_post")
# (post_id,)
post_deleted = _signals.signal("delete_post")
# (new_status, old_status, post)
post_status_transitioned = _signals.signal("transition_post_status")
# (plugin_path, network_wide)
plugin_activated = _signals.signal("activated_plugin")
# (plugin_path, network_wide)
plugin_deactivated = _signals.signal("deactivated_plugin")
# (theme_name, theme)
theme_switched = _signals.signal("switch_theme")
# (option_name, old_value, new_value)
option_updated = _signals.signal("updated_option")

NOTIFICATIONS = {
    signal.name: signal
    for signal in (
        user_logged_in,
        user_registered,
        user_deleted,
        profile_updated,
        password_reset,
        post_saved,
        post_deleted,
        post_status_transitioned,
        plugin_activated,
        plugin_deactivated,
        theme_switched,
        option_updated,
    )
}


def do_action(name: str, *args: Any) -> None:
    """Announce notification *name* with positional payload *args*.

    The current application is used as sender so that subscriptions made
    by one app instance never fire for another.
    """

    signal = NOTIFICATIONS[name]
    sender = current_app._get_current_object() if has_app_context() else None
    signal.send(sender, args=args)


__all__ = ["NOTIFICATIONS", "do_action"] + [
    "user_logged_in",
    "user_registered",
    "user_deleted",
    "profile_updated",
    "password_reset",
    "post_saved",
    "post_deleted",
    "post_status_transitioned",
    "plugin_activated",
    "plugin_deactivated",
    "theme_switched",
    "option_updated",
]
