"""Gunicorn configuration for the classroom file service.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

Multiple workers require ``CATALOG_STORE_TYPE=redis``: the in-memory
catalog and reference index are per-process.
"""

import multiprocessing
import os

# ─── Server socket ──────────────────────────────────────────────

bind = os.getenv("BIND", "0.0.0.0:3000")
backlog = 2048  # Pending connection queue

# ─── Worker processes ───────────────────────────────────────────
#
# For async ASGI: 1 worker per core is optimal.
# Uploads are buffered in memory (≤ 10 MiB each, capped per worker by
# MAX_CONCURRENT_UPLOADS), so memory scales with workers × that cap.

# The in-memory catalog is per-process: without Redis, run exactly one
# worker whatever WORKERS says.
shared_catalog = (
    os.getenv("CATALOG_STORE_TYPE", "memory").lower() == "redis"
    and bool(os.getenv("REDIS_URL"))
)
if shared_catalog:
    workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4)))
else:
    workers = 1
worker_class = "uvicorn.workers.UvicornWorker"

# ─── Timeouts ───────────────────────────────────────────────────

timeout = 60            # Slow disk or slow client uploads
graceful_timeout = 30   # Let in-flight uploads/deletes finish
keepalive = 5

# ─── Worker recycling ──────────────────────────────────────────

max_requests = 5000
max_requests_jitter = 500    # Randomize to prevent simultaneous recycling

# ─── Logging ────────────────────────────────────────────────────

accesslog = "-"                     # stdout
errorlog = "-"                      # stderr
loglevel = os.getenv("LOG_LEVEL", "info")
access_log_format = (
    '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" %(D)sμs'
)

# Application loggers carry the X-Request-ID of the request being served.
logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "services.middleware.RequestIdLogFilter"},
    },
    "formatters": {
        "app": {
            "format": "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "app": {
            "class": "logging.StreamHandler",
            "formatter": "app",
            "filters": ["request_id"],
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        name: {"handlers": ["app"], "level": loglevel.upper(), "propagate": False}
        for name in ("main", "api", "services")
    },
}

# ─── Process naming ─────────────────────────────────────────────

proc_name = "smartstroke-files"

# ─── Server hooks ───────────────────────────────────────────────


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info(
        "Starting SmartStroke Files — workers=%d, timeout=%ds, bind=%s",
        workers,
        timeout,
        bind,
    )


def worker_exit(server, worker):
    """Called when a worker has been killed or exited."""
    server.log.info("Worker exit (pid: %s)", worker.pid)
