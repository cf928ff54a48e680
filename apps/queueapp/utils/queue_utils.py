import secrets
import string

from django.utils import timezone

QR_CODE_PREFIX = "WL"
QR_CODE_LENGTH = 16


def generate_qr_code(length=QR_CODE_LENGTH):
    """
    Generate the opaque token printed in a queue entry's QR code.
    Scanning it at the counter looks the entry up.
    """
    characters = string.ascii_uppercase + string.digits
    return QR_CODE_PREFIX + "".join(secrets.choice(characters) for _ in range(length))


def _plural(count, unit):
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_time_interval(minutes):
    """
    Human readable wait label used in notifications,
    e.g. 65 -> "1 hour 5 minutes", 0 -> "less than a minute".
    """
    if minutes < 1:
        return "less than a minute"

    hours, rest = divmod(int(minutes), 60)
    parts = []
    if hours:
        parts.append(_plural(hours, "hour"))
    if rest:
        parts.append(_plural(rest, "minute"))
    return " ".join(parts)


def minutes_between(start_time, end_time=None):
    """
    Minutes elapsed between two timestamps, as a float.
    If end_time is not provided, current time is used.
    """
    if end_time is None:
        end_time = timezone.now()

    return (end_time - start_time).total_seconds() / 60


def format_queue_position(position):
    """
    Format a queue position with appropriate suffix (1st, 2nd, 3rd, etc.)
    """
    if 10 <= position % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(position % 10, "th")

    return f"{position}{suffix}"
