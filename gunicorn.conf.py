"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn.

Each worker holds its own Prometheus registry and republishes product
gauges from the database at startup, so scrape a single worker (or run
one worker per pod) to avoid mixing registries.
"""

import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("API_WORKERS", 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
# Catalog imports page through Shopify within one request
timeout = 300
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "ecotrack-api"

# Server mechanics
daemon = False
pidfile = "/tmp/ecotrack-gunicorn.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


def when_ready(server):
    server.log.info("EcoTrack API ready on %s with %s workers", bind, workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted (timeout %ss)", worker.pid, timeout)
