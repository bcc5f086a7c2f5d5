"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn for production deployment.
Set PROMETHEUS_MULTIPROC_DIR so /metrics aggregates across workers.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
# Monthly reports page through large ranges
timeout = 120
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "storefront-analytics-api"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"


def on_starting(server):
    """Validate configuration before any worker is forked."""
    from src.config import get_settings

    get_settings()


def child_exit(server, worker):
    """Drop the metrics files of a dead worker."""
    if os.getenv("PROMETHEUS_MULTIPROC_DIR"):
        from prometheus_client import multiprocess

        multiprocess.mark_process_dead(worker.pid)
