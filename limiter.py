import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Set ``LIMITER_STORAGE_URL`` to a Redis URI in production to share limits across instances.
limiter = Limiter(
    get_remote_address,
    default_limits=["20000 per day", "1000 per hour"],
    storage_uri=os.environ.get("LIMITER_STORAGE_URL", "memory://"),
)
