# config/gunicorn_conf.py
# Gunicorn + Uvicorn workers serving config.asgi (HTTP API and tracking websockets).
#   gunicorn config.asgi:application -c config/gunicorn_conf.py
import os
import multiprocessing

# Websocket connections pin a worker, so the default stays modest: (2 * CPU) + 1, capped
_default_workers = min(multiprocessing.cpu_count() * 2 + 1, 8)
workers = int(os.getenv("GUNICORN_WORKERS", _default_workers))
worker_class = "uvicorn.workers.UvicornWorker"

port = int(os.getenv("PORT", 8000))
bind = [f"0.0.0.0:{port}"]
proc_name = "dronedispatch-api"

# Long enough for a slow weather provider round trip during launch
timeout = int(os.getenv("GUNICORN_TIMEOUT", 60))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", 5))

max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", 2000))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", 200))

# Container logging: everything to stdout/stderr
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus rid=%({x-request-id}o)s'

# Trust X-Forwarded-* from the platform load balancer
forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "*")

preload_app = True


def on_starting(server):
    server.log.info(f"Drone dispatch API starting: {workers} x {worker_class} on port {port}")


def worker_int(worker):
    worker.log.info(f"Worker {worker.pid} interrupted")


def on_exit(server):
    server.log.info("Drone dispatch API shut down")
