"""Utility modules."""

from parcel_sms.utils.phone import is_valid_e164, normalize_phone_to_e164
from parcel_sms.utils.wall_clock import (
    CivilTime,
    FixedClock,
    ParseError,
    SystemClock,
    WallClock,
)

__all__ = [
    "CivilTime",
    "FixedClock",
    "ParseError",
    "SystemClock",
    "WallClock",
    "is_valid_e164",
    "normalize_phone_to_e164",
]
