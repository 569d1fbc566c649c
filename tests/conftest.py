import os
import sys
import tempfile
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Ensure required environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="betterstack-test-"))
os.environ.setdefault("SESSION_COOKIE_SECURE", "0")
os.environ.setdefault("RATELIMIT_ENABLED", "0")

from services.logging.client import ShipResult, SUCCESS_MESSAGE


class RecordingShipper:
    """Stand-in for ``LogShipper`` that remembers every message."""

    def __init__(self, config=None, messages=None):
        self.config = config
        self.messages = [] if messages is None else messages

    def send(self, message):
        self.messages.append(message)
        return ShipResult(delivered=True, message=SUCCESS_MESSAGE, status_code=202)


@pytest.fixture
def recording_shipper():
    return RecordingShipper()


@pytest.fixture(autouse=True)
def _no_api_key_constant(monkeypatch):
    monkeypatch.delenv("BETTERSTACK_API_KEY", raising=False)
    monkeypatch.delenv("BETTERSTACK_EVENT_KINDS", raising=False)


@pytest.fixture
def site(tmp_path, monkeypatch, recording_shipper):
    """Fresh application bound to a temporary database.

    Log delivery goes to ``recording_shipper`` instead of the network.
    """
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'site.db'}")
    from importlib import reload
    import app as app_module
    from helpers import die
    from models import db, User

    reload(app_module)
    local_app = app_module.app
    local_app.config.update(TESTING=True, WTF_CSRF_ENABLED=False, PROPAGATE_EXCEPTIONS=False)

    @local_app.route("/boom")
    def boom():
        raise RuntimeError("boom")

    @local_app.route("/halt")
    def halt():
        die("Database is gone")

    betterstack = app_module.betterstack
    betterstack.shipper_factory = lambda config: recording_shipper
    betterstack.config = None
    betterstack.shipper = None

    with local_app.app_context():
        admin = User(username="admin", email="admin@example.com", is_admin=True)
        admin.set_password("secret")
        editor = User(username="editor", email="editor@example.com")
        editor.set_password("secret")
        db.session.add_all([admin, editor])
        db.session.commit()
        admin_id, editor_id = admin.id, editor.id

    client = local_app.test_client()

    def login_as(user_id):
        with client.session_transaction() as sess:
            sess["user"] = user_id

    yield SimpleNamespace(
        app=local_app,
        client=client,
        betterstack=betterstack,
        shipped=recording_shipper.messages,
        admin_id=admin_id,
        editor_id=editor_id,
        login_as=login_as,
    )
    betterstack.shutdown()
