"""
Extension singletons for PolicyHub.

Each one is bound to the app in create_app(); the rate-limit storage URI
comes from app config (see ``rate_limit_storage_uri``).
"""

import os

from apscheduler.schedulers.background import BackgroundScheduler
from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
scheduler = BackgroundScheduler()


def client_address():
    """Rate-limit key: first X-Forwarded-For hop when behind a proxy."""
    forwarded_for = request.headers.get('X-Forwarded-For', '')
    first_hop = forwarded_for.split(',')[0].strip()
    return first_hop or get_remote_address()


def rate_limit_storage_uri(environ=None):
    """
    Pick the limiter backend from the environment.

    An explicit RATELIMIT_STORAGE_URI wins, CI runs use process memory, and
    everything else shares counters through Redis.
    """
    environ = os.environ if environ is None else environ
    if environ.get('RATELIMIT_STORAGE_URI'):
        return environ['RATELIMIT_STORAGE_URI']
    if environ.get('CI') or environ.get('GITHUB_ACTIONS'):
        return 'memory://'
    return environ.get('REDIS_URL') or 'redis://localhost:6379'


limiter = Limiter(
    key_func=client_address,
    default_limits=["1000 per day", "300 per hour"],
    strategy="fixed-window",
)
