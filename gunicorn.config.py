import os

# gunicorn -c gunicorn.config.py "app:create_app()"
worker_class = "gevent"
workers = int(os.getenv("WEB_CONCURRENCY", "4"))
worker_connections = 1000
timeout = 120
bind = "0.0.0.0:{}".format(os.getenv("PORT", "10000"))

# gevent patches the stdlib before the app module is imported
preload_app = False

loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"
