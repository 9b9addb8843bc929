"""
Utility functions for FinalSeal.

Provides hashing, hex encoding, time and comparison helpers shared
by the envelope, digest and chain modules.
"""

import hashlib
import hmac
import re
import time
from typing import Union

_HEX_RE = re.compile(r'^[0-9a-f]*$')


def to_bytes(data: Union[bytes, str]) -> bytes:
    """Return UTF-8 bytes for str input, bytes unchanged."""
    if isinstance(data, str):
        return data.encode('utf-8')
    return bytes(data)


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    return hashlib.sha256(to_bytes(data)).hexdigest()


def now_millis() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def hex_encode(b: bytes) -> str:
    return b.hex()


def hex_decode(s: str) -> bytes:
    """Decode a lowercase hex string. Raises ValueError on bad input."""
    if not isinstance(s, str) or len(s) % 2 or not _HEX_RE.match(s):
        raise ValueError("not a lowercase hex string")
    return bytes.fromhex(s)


def constant_time_compare(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """
    Compare two strings/bytes in constant time to prevent timing attacks.
    """
    return hmac.compare_digest(to_bytes(a), to_bytes(b))


def validate_hex_string(s: str, expected_length: int = None) -> bool:
    """Validate that a string is lowercase hexadecimal of the given length."""
    if not isinstance(s, str):
        return False
    if expected_length is not None and len(s) != expected_length:
        return False
    return bool(_HEX_RE.match(s))


def short_hash(value: str, visible_chars: int = 16) -> str:
    """Truncate a hash for logging."""
    if not value:
        return ""
    return value[:visible_chars] + "..." if len(value) > visible_chars else value
