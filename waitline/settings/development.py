"""
Development settings for Waitline.

These settings override the base settings for local development environments.
"""

import os

from .base import *  # noqa: F401,F403

SECRET_KEY = env("SECRET_KEY", "django-insecure-development-key-not-for-production")

DEBUG = env("DEBUG", "True") == "True"

# Allow all hosts in development (for convenience)
ALLOWED_HOSTS = ["*"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("POSTGRES_DB", "waitline"),
        "USER": os.environ.get("POSTGRES_USER", "waitline"),
        "PASSWORD": os.environ.get("POSTGRES_PASSWORD", "waitline"),
        "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "PORT": os.environ.get("POSTGRES_PORT", "5432"),
        "CONN_MAX_AGE": 300,
        "OPTIONS": {"connect_timeout": 5},
    }
}

# Local development runs without redis unless explicitly configured
if not os.environ.get("REDIS_HOST"):
    CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}
    CELERY_TASK_ALWAYS_EAGER = True
