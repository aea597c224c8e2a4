"""Gunicorn configuration for the identity broker.

Run with:
    gunicorn -c gunicorn.conf.py identity_broker.flask_app:app

Each worker imports the app itself (no preload), so every worker owns its
own broker handle: one Keycloak session pool and one IdP worker pool.
"""
import os

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
preload_app = False

accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = (
    '%(h)s "%(r)s" %(s)s %(b)s | duration_us=%(D)s | '
    'correlation_id=%({x-correlation-id}o)s'
)


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Reports where the worker's secrets will come from; the settings loader
    reads /run/secrets first and falls back to environment variables.
    """
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if demo_mode:
        worker.log.warning("DEMO_MODE=true: demo credentials in use")

    from pathlib import Path
    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets")
            return

    worker.log.info("No /run/secrets mount, secrets come from environment variables")


def worker_exit(server, worker):
    """Release the worker's broker handle (HTTP session and IdP worker pool)."""
    from identity_broker.flask_app import app

    broker = app.config.get("BROKER")
    if broker is not None:
        broker.close()
