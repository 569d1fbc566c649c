import logging
import re
import unicodedata
from datetime import datetime, timezone
from functools import wraps

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from itsdangerous import URLSafeTimedSerializer, BadSignature
from marshmallow import ValidationError

from models import db, User
from helpers import current_user, get_option, update_option, safe_commit
from hooks import do_action
from limiter import limiter
from blueprints.auth import _generate_token
from services.plugins import get_plugin_data, list_plugins
from services.logging import (
    EXTENSION_KEY,
    LoggerSettingsSchema,
    ensure_defaults,
    load_config,
    save_config,
)

admin_bp = Blueprint('admin', __name__)

logger = logging.getLogger(__name__)

TEST_MESSAGE_ACTION = 'betterstack_test_message_action'
NONCE_FIELD = 'betterstack_nonce'
TEST_MESSAGE_FIELD = 'betterstack_test_message'
# Nonces stay valid for a day
NONCE_MAX_AGE = 86400
SECURITY_CHECK_FAILED = 'Security check failed. Please try again.'
SUPPORT_URL = 'https://prolificdigital.notion.site/BetterStack-Logger-c0cc4526efd049c09b77965bf3ecc28e'

_TAG_RE = re.compile(r'<[^>]*>')
_WS_RE = re.compile(r'\s+')


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return redirect(url_for('auth.login', next=request.path))
        if not user.is_admin:
            abort(403)
        return view(*args, **kwargs)
    return wrapped


def create_nonce(action: str) -> str:
    """Return a token that authorises *action* for the current user."""
    user = current_user()
    s = URLSafeTimedSerializer(current_app.secret_key)
    return s.dumps(user.id if user else 0, salt=action)


def verify_nonce(token: str | None, action: str, max_age: int = NONCE_MAX_AGE) -> bool:
    if not token:
        return False
    user = current_user()
    s = URLSafeTimedSerializer(current_app.secret_key)
    try:
        owner = s.loads(token, salt=action, max_age=max_age)
    except BadSignature:
        return False
    return owner == (user.id if user else 0)


def sanitize_text_field(value: str) -> str:
    """Strip tags and control characters and collapse whitespace."""
    value = _TAG_RE.sub('', value or '')
    value = ''.join(ch for ch in value if unicodedata.category(ch)[0] != 'C' or ch in '\t\n')
    return _WS_RE.sub(' ', value).strip()


def _betterstack():
    return current_app.extensions[EXTENSION_KEY]


# ---------------------------------------------------------------------------
# BetterStack logger settings

def _send_test_message():
    if not verify_nonce(request.form.get(NONCE_FIELD), TEST_MESSAGE_ACTION):
        logger.warning("Rejected BetterStack test message with an invalid nonce")
        flash(SECURITY_CHECK_FAILED, 'error')
        return
    message = sanitize_text_field(request.form.get(TEST_MESSAGE_FIELD, ''))
    if not message:
        return
    result = _betterstack().log_error(message)
    flash(result.message, 'success')


def _save_logger_settings():
    try:
        config = LoggerSettingsSchema().load(request.form.to_dict())
    except ValidationError as exc:
        flash(f"Invalid settings: {exc.messages}", 'error')
        return
    try:
        save_config(config)
    except Exception as exc:
        flash(f"Failed to save settings: {exc}", 'error')
        logger.error(f"Failed to save BetterStack settings: {exc}")
        return
    _betterstack().refresh()
    flash('Settings saved.', 'success')


@admin_bp.route('/tools/betterstack-logger', methods=['GET', 'POST'])
@limiter.limit("30 per minute", methods=["POST"])
@admin_required
def logger_settings():
    ensure_defaults()
    if request.method == 'POST':
        if TEST_MESSAGE_FIELD in request.form:
            _send_test_message()
        elif request.form.get('form') == 'settings':
            _save_logger_settings()

    return render_template(
        'betterstack-logger.html',
        config=load_config(),
        nonce=create_nonce(TEST_MESSAGE_ACTION),
        support_url=SUPPORT_URL,
    )


# ---------------------------------------------------------------------------
# users

@admin_bp.route('/admin/users/<int:user_id>/delete', methods=['POST'])
@admin_required
def delete_user(user_id: int):
    user = db.get_or_404(User, user_id)
    if user.id == current_user().id:
        return jsonify({'error': 'You cannot delete your own account'}), 400
    do_action('delete_user', user.id)
    db.session.delete(user)
    safe_commit()
    return jsonify({'deleted': user_id})


@admin_bp.route('/admin/users/<int:user_id>/reset-link', methods=['POST'])
@admin_required
def password_reset_link(user_id: int):
    user = db.get_or_404(User, user_id)
    token = _generate_token(user.email)
    return jsonify({'reset_url': url_for('auth.reset_password', token=token, _external=True)})


# ---------------------------------------------------------------------------
# plugins and themes

@admin_bp.route('/admin/plugins', methods=['GET'])
@admin_required
def plugins():
    active = get_option('active_plugins', []) or []
    return jsonify([
        {'plugin': path, 'name': data['Name'], 'version': data['Version'], 'active': path in active}
        for path, data in list_plugins().items()
    ])


def _plugin_path() -> str:
    data = request.get_json(silent=True) or request.form
    return (data.get('plugin') or '').strip()


@admin_bp.route('/admin/plugins/activate', methods=['POST'])
@admin_required
def activate_plugin():
    path = _plugin_path()
    if get_plugin_data(path) is None:
        return jsonify({'error': 'Plugin file does not exist.'}), 404
    active = list(get_option('active_plugins', []) or [])
    if path in active:
        return jsonify({'plugin': path, 'active': True})
    active.append(path)
    update_option('active_plugins', sorted(active))
    do_action('activated_plugin', path, False)
    return jsonify({'plugin': path, 'active': True})


@admin_bp.route('/admin/plugins/deactivate', methods=['POST'])
@admin_required
def deactivate_plugin():
    path = _plugin_path()
    active = list(get_option('active_plugins', []) or [])
    if path not in active:
        return jsonify({'error': 'Plugin is not active.'}), 400
    active.remove(path)
    update_option('active_plugins', active)
    recent = dict(get_option('recently_activated', {}) or {})
    recent[path] = int(datetime.now(timezone.utc).timestamp())
    update_option('recently_activated', recent)
    do_action('deactivated_plugin', path, False)
    return jsonify({'plugin': path, 'active': False})


@admin_bp.route('/admin/themes/switch', methods=['POST'])
@admin_required
def switch_theme():
    data = request.get_json(silent=True) or request.form
    name = (data.get('theme') or '').strip()
    if not name:
        return jsonify({'error': 'Theme name is required.'}), 400
    previous = get_option('stylesheet')
    update_option('stylesheet', name)
    do_action('switch_theme', name, {'name': name, 'previous': previous})
    return jsonify({'theme': name})
