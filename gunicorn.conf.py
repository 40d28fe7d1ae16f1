"""
Gunicorn configuration for the warehouse analytics API.

    gunicorn src.main:app -c gunicorn.conf.py

Bind address and log level come from the same API_* / LOG_* environment
variables the application reads. Queries are read-only and short, so
workers are recycled often and timeouts are tight.
"""

import multiprocessing
import os

from src.config import get_settings

_settings = get_settings()

bind = os.getenv("BIND", f"{_settings.api.host}:{_settings.api.port}")
workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 9)))
worker_class = "uvicorn.workers.UvicornWorker"

timeout = int(os.getenv("WORKER_TIMEOUT", 60))
graceful_timeout = 20
keepalive = 5
max_requests = 2000
max_requests_jitter = 200

proc_name = "retail-warehouse-api"

# Application logs are structlog JSON on stdout; gunicorn's own go to stderr
errorlog = "-"
accesslog = None
loglevel = _settings.logging.level.lower()


def when_ready(server):
    server.log.info("Warehouse API listening on %s (%s workers)", bind, workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted after %ss, likely a slow warehouse query", worker.pid, timeout)
