"""
Gunicorn Configuration

Uvicorn workers under Gunicorn. Each worker runs its own application
lifespan, so each holds its own member store and rate limit window.
"""

import multiprocessing
import os

bind = os.getenv("BIND", f"0.0.0.0:{os.getenv('API_PORT', '8000')}")
backlog = 2048

workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
timeout = 60
keepalive = 5
graceful_timeout = 30

proc_name = "carwash-cms-api"

# Logging; application logs go through structlog on stdout
errorlog = "-"
accesslog = None
loglevel = os.getenv("LOG_LEVEL", "info").lower()


def when_ready(server):
    server.log.info("Car wash API ready with %s workers", workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted", worker.pid)
