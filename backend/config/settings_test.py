# config/settings_test.py
# Hermetic settings for the test suite: no Postgres, Redis or broker required.
import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DJANGO_SECRET_KEY", "test-secret-key")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from .settings import *  # noqa: E402,F401,F403

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "tests",
    }
}

CHANNEL_LAYERS = {
    "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}
}

CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = None
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False

SECURE_SSL_REDIRECT = False
ALLOWED_HOSTS = ["*"]

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

WEATHER_API_KEY = ""
DRONE_LOW_BATTERY_ALERT_COOLDOWN = 0
DRONE_QR_TTL_SECONDS = None

LOGGING["handlers"]["console"]["formatter"] = "simple"  # noqa: F405
LOGGING["loggers"]["apps"]["level"] = "CRITICAL"  # noqa: F405


class DisableMigrations:
    """Build the schema straight from models."""

    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None


MIGRATION_MODULES = DisableMigrations()
