from app import app, betterstack
from flask_migrate import upgrade as migrate_upgrade
import logging
import os

logger = logging.getLogger(__name__)

if os.path.isdir(os.path.join(os.path.dirname(os.path.abspath(__file__)), "migrations", "versions")):
    with app.app_context():
        try:
            migrate_upgrade()
            betterstack.refresh()
        except Exception as exc:
            logger.error(f"Failed to apply migrations: {exc}")

# Gunicorn entrypoint
application = app
