"""
Gunicorn configuration for the Watchguard Feed API.

Env vars that override defaults:
  PORT     - TCP port to bind
  WORKERS  - number of worker processes (default: 2)

Per-user ordering across workers relies on the database row lock taken on
the viewer row during ingestion; the in-process user lock only serialises
threads inside one worker.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get("WORKERS", "2"))

# Each worker runs Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

# Playback clients post an event per video; keep their connections warm.
keepalive = 5

# Collaborator calls time out after a few seconds, so 60 s means a stuck worker.
timeout = 60

loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
