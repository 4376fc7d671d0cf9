"""Gunicorn configuration file.

Workers build the application from the factory; secrets are read by
``load_settings()`` from /run/secrets first, then the environment.
"""
import os
from pathlib import Path

wsgi_app = "inventory_access.flask_app:create_app()"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
accesslog = "-"
errorlog = "-"


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Reports which secrets are mounted so a misconfigured deployment is visible
    in the worker log before the first request.
    """
    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets (using mounted secrets)")
            return

    if os.environ.get("DEMO_MODE", "false").lower() == "true":
        worker.log.warning("DEMO_MODE=true: secrets are generated per process. Do not deploy with these defaults.")
    else:
        worker.log.info("No /run/secrets mount; reading secrets from the environment")
