"""
Confirmation code generation.

Format: PREFIX-<base36 millisecond timestamp>-<3 random base36 chars>,
e.g. "APT-LT3K9Z2A-X7Q". Codes are human-readable over the phone and unique
enough that a collision only happens under heavy concurrency; the store's
unique constraint catches the rest and the caller re-mints.
"""

import secrets
import time
from typing import Optional

BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
RANDOM_SUFFIX_LENGTH = 3


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("Only non-negative values can be encoded")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_confirmation_code(prefix: str = "APT", timestamp_ms: Optional[int] = None) -> str:
    """
    Mint a new confirmation code.

    Args:
        prefix: Code prefix (CONFIRMATION_CODE_PREFIX setting)
        timestamp_ms: Milliseconds since the epoch (default: now)

    Example:
        >>> generate_confirmation_code("APT", timestamp_ms=36**3)
        'APT-1000-4KZ'  # suffix is random
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))
    return f"{prefix}-{to_base36(timestamp_ms)}-{suffix}"
