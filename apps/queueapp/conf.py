"""
Access to the ``WAITLINE`` settings dict with defaults.
"""

from django.conf import settings

DEFAULTS = {
    "AVG_SERVICE_MINUTES": 15,
    "PREDICTOR_ENABLED": False,
    "PREDICTOR_URL": "",
    "PREDICTOR_IMAGE_URL": "",
    "PREDICTOR_TIMEOUT": 5,
    "REQUIRE_CALL_BEFORE_SERVE": False,
    "REMINDER_POSITIONS": 2,
    "CALLED_TIMEOUT_MINUTES": 15,
}


def get_setting(name):
    """Return a queue engine setting, falling back to its default"""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown WAITLINE setting: {name}")
    return getattr(settings, "WAITLINE", {}).get(name, DEFAULTS[name])
