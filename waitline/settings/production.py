"""
Production settings for Waitline.
"""

from .base import *  # noqa: F401,F403

SECRET_KEY = env("SECRET_KEY", required=True)
DEBUG = False

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
