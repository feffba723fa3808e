"""
conf.py
-------
Booking engine settings with defaults.

Values come from settings.BOOKING (which reads the environment), so tests
can override them with django.test.override_settings.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

DEFAULTS = {
    "DEFAULT_BUFFER_MINUTES": 0,
    "SLOT_HORIZON_WEEKS": 4,
    "RECURRING_HORIZON_MONTHS": 3,
    "DEFAULT_SERVICE_DURATION": 60,
    "REF_CODE_ATTEMPTS": 5,
    "WALK_IN_DEFAULT_DURATION": 30,
}


def booking_setting(name: str) -> int:
    """Return an integer booking setting, with a clear error on bad values."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown booking setting: {name}")

    overrides = getattr(settings, "BOOKING", None) or {}
    raw = overrides.get(name, DEFAULTS[name])
    try:
        value = int(raw)
    except (ValueError, TypeError):
        raise ImproperlyConfigured(
            f"Invalid integer for BOOKING[{name!r}]: {raw!r}"
        ) from None

    if value < 0:
        raise ImproperlyConfigured(f"BOOKING[{name!r}] must be >= 0, got {value}")
    return value
