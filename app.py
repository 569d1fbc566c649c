import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, Response, redirect, url_for
from flask_migrate import Migrate
from flask_talisman import Talisman
from flask_wtf import CSRFProtect
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from models import db, User, Post, Setting
from limiter import limiter
from blueprints.auth import auth_bp
from blueprints.content import content_bp
from blueprints.admin import admin_bp
from services.logging import BetterStackLogger

app = Flask(__name__)
secret_key = os.environ.get("SECRET_KEY")
if not secret_key:
    raise RuntimeError("SECRET_KEY environment variable is required")
app.secret_key = secret_key
secure_cookies = os.environ.get("SESSION_COOKIE_SECURE", "1") == "1"
app.config.update(
    SESSION_COOKIE_SECURE=secure_cookies,
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
)
app.config["WTF_CSRF_TIME_LIMIT"] = None
csrf = CSRFProtect(app)

csp = {
    'default-src': ["'self'"],
    "img-src": ["'self'", "data:", "https:"],
}
Talisman(
    app,
    content_security_policy=csp,
    force_https=os.environ.get("FORCE_HTTPS") == "1",
    session_cookie_secure=secure_cookies,
)
app.config["RATELIMIT_ENABLED"] = os.environ.get("RATELIMIT_ENABLED", "1") == "1"
limiter.init_app(app)

# Log files go to DATA_DIR (default ./data)
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get("DATA_DIR", os.path.join(BASE_DIR, "data"))
os.makedirs(DATA_DIR, exist_ok=True)

log_path = os.path.join(DATA_DIR, 'app.log')
log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=10)
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    handlers=[logging.StreamHandler(), file_handler],
)
logger = logging.getLogger(__name__)

db_url = os.environ.get("DATABASE_URL")
if not db_url:
    raise RuntimeError("DATABASE_URL must be set to a database connection URL")
if db_url.startswith("postgresql://"):
    db_url = db_url.replace("postgresql://", "postgresql+psycopg://", 1)
app.config["SQLALCHEMY_DATABASE_URI"] = db_url
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"pool_pre_ping": True}

db.init_app(app)
migrate = Migrate(app, db)
app.register_blueprint(auth_bp)
app.register_blueprint(content_bp)
app.register_blueprint(admin_bp)

betterstack = BetterStackLogger(app)


@app.route('/')
def index():
    return redirect(url_for('auth.profile'))


@app.route('/metrics')
def metrics():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def initialize_database() -> None:
    """Create missing tables and load the logger settings."""
    with app.app_context():
        db.create_all()
        logger.info("Schema check for %s completed.", ", ".join(
            model.__tablename__ for model in (User, Post, Setting)
        ))
        try:
            betterstack.refresh()
        except Exception:
            logger.exception("Failed to load BetterStack logger settings")


# Tables and logger settings must be ready before the first request
initialize_database()
if __name__ == '__main__':
    debug = os.environ.get("FLASK_DEBUG") == "1"
    app.run(debug=debug)
