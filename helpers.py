from flask import session, abort
from models import User, Setting, db
import json
import logging
from typing import Any, Optional

from hooks import do_action

logger = logging.getLogger(__name__)


def current_user():
    """Return the logged in ``User`` instance or ``None``."""
    user_key = session.get("user")
    if user_key is None:
        return None

    # ``session['user']`` normally stores the user id but older sessions
    # may carry the username.  Handle both cases gracefully.
    if isinstance(user_key, int):
        return db.session.get(User, user_key)

    if isinstance(user_key, str) and user_key.isdigit():
        by_id = db.session.get(User, int(user_key))
        if by_id:
            return by_id

    return User.query.filter_by(username=user_key).first()


def safe_commit():
    """Commit the current database session with rollback on failure."""
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Database commit failed: {e}")
        raise


def die(message: str, status: int = 500):
    """Terminate the current request with *message*."""
    abort(status, description=message)


# ---------------------------------------------------------------------------
# key/value settings store

def _decode(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        # rows written by hand before values were JSON encoded
        return raw


def _encode(value: Any) -> str:
    return json.dumps(value)


def get_option(key: str, default: Any = None) -> Any:
    """Return the stored value for *key* or *default* when unset.

    Values are stored JSON encoded, so strings come back unchanged.
    """
    setting = Setting.query.filter_by(key=key).first()
    if setting is None or setting.value is None:
        return default
    return _decode(setting.value)


def add_option(key: str, value: Any, description: str | None = None) -> bool:
    """Store *value* under *key* unless the key already exists."""
    if Setting.query.filter_by(key=key).first() is not None:
        return False
    db.session.add(Setting(key=key, value=_encode(value), description=description))
    safe_commit()
    return True


def update_option(key: str, value: Any) -> bool:
    """Persist *value* for *key* and announce the change.

    Returns ``False`` when the stored value is already equal to *value*.
    """
    setting = Setting.query.filter_by(key=key).first()
    old_value = _decode(setting.value) if setting is not None else None
    encoded = _encode(value)
    if setting is not None and setting.value == encoded:
        return False
    if setting is None:
        setting = Setting(key=key, value=encoded)
        db.session.add(setting)
    else:
        setting.value = encoded
    safe_commit()
    do_action("updated_option", key, old_value, value)
    return True

