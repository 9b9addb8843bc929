"""
FinalSeal Integrity Digest

SHA-256 fingerprint of raw plaintext bytes, computed before encryption
so that verification does not depend on any particular key.
"""

from typing import Union

from .util import constant_time_compare, sha256_hex, to_bytes, validate_hex_string

DIGEST_HEX_LENGTH = 64


class IntegrityDigest:
    """Stateless digest service; inject one instance where needed."""

    algorithm = "sha256"

    def digest(self, content: Union[bytes, str]) -> str:
        """
        Compute the lowercase hex SHA-256 digest of content.

        str input is hashed as its UTF-8 bytes.
        """
        return sha256_hex(to_bytes(content))

    def matches(self, content: Union[bytes, str], expected: str) -> bool:
        """Check content against a stored digest in constant time."""
        if not validate_hex_string(expected, DIGEST_HEX_LENGTH):
            return False
        return constant_time_compare(self.digest(content), expected)
