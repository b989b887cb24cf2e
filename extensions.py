# FILE: extensions.py

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(
    # The default key is the IP address of the client making the request.
    key_func=get_remote_address,
    # Storage is configured per app through RATELIMIT_STORAGE_URI in main.create_app().
    default_limits=["1000 per day", "300 per hour"]
)
