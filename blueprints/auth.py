import re
from datetime import datetime
from functools import wraps

from flask import (
    Blueprint,
    render_template,
    request,
    session,
    redirect,
    url_for,
    flash,
    current_app,
)
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from models import db, User
from helpers import current_user, safe_commit
from hooks import do_action

auth_bp = Blueprint('auth', __name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.\-@]{3,60}$")


def _generate_token(email: str) -> str:
    """Return a signed token for the given email address."""
    s = URLSafeTimedSerializer(current_app.secret_key)
    return s.dumps(email, salt="password-reset")


def _verify_token(token: str, max_age: int = 3600) -> str | None:
    """Return the email contained in ``token`` if valid, else ``None``."""
    s = URLSafeTimedSerializer(current_app.secret_key)
    try:
        return s.loads(token, salt="password-reset", max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            return redirect(url_for('auth.login', next=request.path))
        return view(*args, **kwargs)
    return wrapped


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    next_url = request.args.get('next')
    if request.method == 'POST':
        identifier = (request.form.get('username') or '').strip()
        password = request.form.get('password')
        next_url = request.form.get('next') or next_url
        user = None
        if identifier:
            user = User.query.filter(
                (User.username == identifier) | (User.email == identifier)
            ).first()

        if user and user.check_password(password):
            session.permanent = False
            session['user'] = user.id
            user.last_login = datetime.utcnow()
            safe_commit()
            do_action('wp_login', user.username, user)
            return redirect(next_url or url_for('auth.profile'))
        flash('Invalid credentials', 'error')
        return render_template('log-in.html', next=next_url), 401
    return render_template('log-in.html', next=next_url)


@auth_bp.route('/signup', methods=['GET', 'POST'])
def signup():
    if request.method == 'POST':
        username = (request.form.get('username') or '').strip()
        email = (request.form.get('email') or '').strip().lower()
        password = request.form.get('password') or ''

        if not USERNAME_RE.match(username):
            flash('Please choose a username of 3-60 letters, digits or . _ - @', 'error')
            return render_template('sign-up.html'), 400
        if '@' not in email:
            flash('Please enter a valid email address.', 'error')
            return render_template('sign-up.html'), 400
        if len(password) < 6:
            flash('Password must be at least 6 characters long.', 'error')
            return render_template('sign-up.html'), 400
        if User.query.filter((User.username == username) | (User.email == email)).first():
            flash('An account with that username or email already exists.', 'error')
            return render_template('sign-up.html'), 409

        user = User(username=username, email=email)
        user.set_password(password)
        db.session.add(user)
        safe_commit()
        do_action('user_register', user.id)
        flash('Your account has been created. Please log in.', 'success')
        return redirect(url_for('auth.login'))
    return render_template('sign-up.html')


@auth_bp.route('/logout')
def logout():
    session.pop('user', None)
    return redirect(url_for('auth.login'))


@auth_bp.route('/profile', methods=['GET', 'POST'])
@login_required
def profile():
    user = current_user()
    if request.method == 'POST':
        old_data = {'username': user.username, 'email': user.email, 'name': user.name}
        name = request.form.get('name')
        email = request.form.get('email')
        if name is not None:
            user.name = name.strip()
        if email:
            email = email.strip().lower()
            taken = User.query.filter(User.email == email, User.id != user.id).first()
            if taken:
                flash('That email address is already in use.', 'error')
                return render_template('profile.html', user=user), 409
            user.email = email
        safe_commit()
        do_action('profile_update', user.id, old_data)
        flash('Profile updated.', 'success')
        return redirect(url_for('auth.profile'))
    return render_template('profile.html', user=user)


@auth_bp.route('/reset-password/<token>', methods=['GET', 'POST'])
def reset_password(token: str):
    """Verify token and update the user's password."""
    email = _verify_token(token)
    if not email:
        flash('The password reset link is invalid or has expired.', 'error')
        return redirect(url_for('auth.login'))

    if request.method == 'POST':
        password = request.form.get('password') or ''
        if len(password) < 6:
            flash('Password must be at least 6 characters long.', 'error')
            return render_template('reset-password.html', token=token), 400
        user = User.query.filter_by(email=email).first()
        if user:
            user.set_password(password)
            safe_commit()
            do_action('password_reset', user, password)
            flash('Your password has been reset. Please log in.', 'success')
            return redirect(url_for('auth.login'))
        flash('User not found.', 'error')
        return redirect(url_for('auth.login'))
    return render_template('reset-password.html', token=token)
