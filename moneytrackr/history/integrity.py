"""
Payload integrity helpers for snapshots and backups.

The checksum is a 32-bit rolling string hash (``h = h * 31 + c``,
wrapped to a signed 32-bit integer) rendered as signed hexadecimal, the
format existing history rows already carry. It detects accidental
corruption only and is not a security measure.
"""

import base64
import json
import platform
from functools import lru_cache
from typing import Any

from moneytrackr import __version__
from moneytrackr.models.history import DeviceInfo


APP_NAME = "MoneyTrackr"


def serialize_payload(data: Any) -> str:
    """Compact JSON used for both size and checksum."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def payload_size(data: Any) -> int:
    """UTF-8 byte length of the serialized payload."""
    return len(serialize_payload(data).encode("utf-8"))


def generate_checksum(data: Any) -> str:
    h = 0
    for char in serialize_payload(data):
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(h, "x") if h >= 0 else "-" + format(-h, "x")


@lru_cache
def session_fingerprint() -> str:
    """Stable per-machine session id (first 32 chars of an encoded fingerprint)."""
    fingerprint = {
        "userAgent": f"{APP_NAME}/{__version__}",
        "platform": platform.platform(),
        "node": platform.node(),
        "python": platform.python_version(),
    }
    encoded = base64.b64encode(json.dumps(fingerprint).encode("utf-8")).decode("ascii")
    return encoded[:32]


def current_device_info() -> DeviceInfo:
    return DeviceInfo(
        user_agent=f"{APP_NAME}/{__version__}",
        platform=platform.platform(),
        session_id=session_fingerprint(),
    )
