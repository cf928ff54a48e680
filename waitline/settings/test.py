"""
Test settings for Waitline.

These settings override the base settings for test environments.
"""

from .base import *  # noqa: F401,F403

# Use regular SQLite database for testing
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test_db.sqlite3",
    }
}

# Use in-memory channel layer for tests
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

# Password hashers are slow; use fast ones for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

USE_I18N = False

# Run Celery tasks synchronously in tests
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Disable throttling in tests
REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

# The prediction service is never reached from tests
WAITLINE = {
    **WAITLINE,
    "AVG_SERVICE_MINUTES": 15,
    "PREDICTOR_ENABLED": False,
    "PREDICTOR_URL": "",
    "REQUIRE_CALL_BEFORE_SERVE": False,
    "REMINDER_POSITIONS": 2,
}

# Disable logging during tests to speed them up
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "null": {
            "class": "logging.NullHandler",
        },
    },
    "loggers": {
        "": {
            "handlers": ["null"],
            "level": "CRITICAL",
        },
    },
}
