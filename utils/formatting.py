from __future__ import annotations
import re
from datetime import datetime, time

import config

_PHONE_STRIP = re.compile(r"[\s\-\(\)\+]")


def format_clock_time(value: datetime | time) -> str:
    """12-hour wall clock without a leading zero, e.g. 9:05 AM"""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def clean_phone_number(phone: str | None) -> str | None:
    """Drop spaces, dashes, parentheses and plus signs from a phone number"""
    if not phone:
        return None
    cleaned = _PHONE_STRIP.sub("", phone.strip())
    return cleaned or None


def truncate_sms(message: str, limit: int | None = None) -> str:
    """
    Keep an SMS within one segment.
    Over-long text is cut to limit - 3 characters and suffixed with '...'.
    """
    limit = limit or config.SMS_MAX_LENGTH
    if len(message) <= limit:
        return message
    return message[:limit - 3] + "..."


def is_blank(value) -> bool:
    """None, empty or whitespace-only strings count as blank"""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def join_days(days) -> str:
    return ", ".join(days or [])
