"""
Gunicorn configuration for the record sync webhook service.

Each worker opens its own connection to the record store; requests inside a
worker share it across threads.
"""

from modules.record_sync.config import config

wsgi_app = "modules.record_sync.webhooks:create_app()"
bind = f"{config.API_HOST}:{config.API_PORT}"

# Worker configuration
workers = 2
worker_class = "gthread"
threads = 8
timeout = 300  # operator-initiated reconciles pull up to RECONCILE_MAX_ITEMS records

# The store connection must not be opened before fork
preload_app = False

# Only trust X-Forwarded-* headers from Caddy on localhost
forwarded_allow_ips = "127.0.0.1"

# Logging
accesslog = "-"  # stdout -> journald
errorlog = "-"   # stderr -> journald
loglevel = "info"


def post_worker_init(worker):
    from modules.record_sync.log_config import setup_logging
    setup_logging()


def worker_exit(server, worker):
    from modules.record_sync.db import db
    db.close()
