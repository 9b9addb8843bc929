"""
FinalSeal Envelope Cryptography

Password-protected, tamper-evident envelopes for message plaintext.

Key derivation: PBKDF2-HMAC-SHA256, 256-bit key, salted per envelope.
Cipher suites (AEAD, 96-bit nonce, 128-bit tag):
  - AES-256-GCM        (cryptography)
  - CHACHA20-POLY1305  (PyNaCl / libsodium, IETF variant)

Every encrypt() draws a fresh salt and nonce, so no two envelopes
share a (key, nonce) pair. decrypt() verifies the tag before any
plaintext is released.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from nacl import bindings as nacl_bindings
from nacl.exceptions import CryptoError
from pydantic import ValidationError

from . import config
from .errors import (
    AuthenticationFailure,
    MalformedEnvelope,
    MissingPassphrase,
    UndecodablePlaintext,
)
from .logging_config import audit_log
from .models import CipherSuite, EnvelopeRecord
from .util import hex_decode, hex_encode, to_bytes

KEY_LENGTH = 32    # 256-bit key
SALT_LENGTH = 16   # 128-bit salt
NONCE_LENGTH = 12  # 96-bit nonce
TAG_LENGTH = 16    # 128-bit tag

Passphrase = Union[str, bytes]


@dataclass(frozen=True)
class MessageEnvelope:
    """
    One sealed message: ciphertext plus the parameters needed to open it.

    Immutable. Editing a message means sealing a new envelope.
    Construction validates field types and lengths and raises
    MalformedEnvelope on violation.
    """
    ciphertext: bytes
    nonce: bytes
    salt: bytes
    auth_tag: bytes
    cipher_suite: CipherSuite = CipherSuite.AES_256_GCM

    def __post_init__(self):
        self._validate()

    def _validate(self):
        for name in ("ciphertext", "nonce", "salt", "auth_tag"):
            if not isinstance(getattr(self, name), bytes):
                raise MalformedEnvelope(f"{name} must be bytes", field=name)

        expected = {"nonce": NONCE_LENGTH, "salt": SALT_LENGTH, "auth_tag": TAG_LENGTH}
        for name, length in expected.items():
            actual = len(getattr(self, name))
            if actual != length:
                raise MalformedEnvelope(
                    f"{name} must be {length} bytes, got {actual}", field=name
                )

        try:
            suite = CipherSuite(self.cipher_suite)
        except ValueError:
            raise MalformedEnvelope(
                f"Unknown cipher suite: {self.cipher_suite!r}", field="cipher_suite"
            ) from None
        object.__setattr__(self, "cipher_suite", suite)

    def to_record(self) -> Dict[str, str]:
        """Hex-encoded record for the Message Store."""
        return EnvelopeRecord(
            ciphertext=hex_encode(self.ciphertext),
            nonce=hex_encode(self.nonce),
            salt=hex_encode(self.salt),
            auth_tag=hex_encode(self.auth_tag),
            cipher_suite_id=self.cipher_suite,
        ).model_dump(mode="json")

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> 'MessageEnvelope':
        """
        Rebuild an envelope from a stored record.

        Raises:
            MalformedEnvelope: if any field is missing, unknown or not valid hex
                of the required length. Nothing is repaired.
        """
        if not isinstance(data, dict):
            raise MalformedEnvelope("Envelope record must be an object")
        try:
            record = EnvelopeRecord.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            raise MalformedEnvelope(
                f"Invalid envelope record: {first.get('msg')}", field=field
            ) from e

        return cls(
            ciphertext=hex_decode(record.ciphertext),
            nonce=hex_decode(record.nonce),
            salt=hex_decode(record.salt),
            auth_tag=hex_decode(record.auth_tag),
            cipher_suite=record.cipher_suite_id,
        )


# ============================================================
# AEAD primitives
# ============================================================

def _associated_data(suite: CipherSuite) -> bytes:
    return suite.value.encode("ascii")


def _aead_seal(suite: CipherSuite, key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
    """Return ciphertext || tag."""
    aad = _associated_data(suite)
    if suite is CipherSuite.AES_256_GCM:
        return AESGCM(key).encrypt(nonce, plaintext, aad)
    return nacl_bindings.crypto_aead_chacha20poly1305_ietf_encrypt(plaintext, aad, nonce, key)


def _aead_open(suite: CipherSuite, key: bytes, nonce: bytes, sealed: bytes) -> bytes:
    aad = _associated_data(suite)
    try:
        if suite is CipherSuite.AES_256_GCM:
            return AESGCM(key).decrypt(nonce, sealed, aad)
        return nacl_bindings.crypto_aead_chacha20poly1305_ietf_decrypt(sealed, aad, nonce, key)
    except (InvalidTag, CryptoError) as e:
        raise AuthenticationFailure() from e


class EnvelopeCrypto:
    """
    Stateless envelope encryption service.

    Holds only its parameters (iteration count and cipher suite), never
    key material, so instances can be shared freely across threads.
    """

    def __init__(
        self,
        iterations: Optional[int] = None,
        cipher_suite: Union[CipherSuite, str, None] = None
    ):
        if iterations is None:
            iterations = config.KDF_ITERATIONS
        if iterations < config.MIN_KDF_ITERATIONS:
            raise ValueError(
                f"KDF iterations must be at least {config.MIN_KDF_ITERATIONS}, got {iterations}"
            )
        self.iterations = iterations
        self.cipher_suite = CipherSuite(cipher_suite or config.CIPHER_SUITE)

    def derive_key(self, passphrase: Passphrase, salt: bytes) -> bytes:
        """
        Stretch a passphrase into a 256-bit key.

        Args:
            passphrase: Passphrase or raw key material from the key source
            salt: 16-byte salt stored with the envelope

        Returns:
            32-byte derived key
        """
        if not passphrase:
            raise MissingPassphrase()
        if not isinstance(salt, bytes) or len(salt) != SALT_LENGTH:
            raise MalformedEnvelope(f"salt must be {SALT_LENGTH} bytes", field="salt")

        return hashlib.pbkdf2_hmac(
            'sha256',
            to_bytes(passphrase),
            salt,
            self.iterations,
            dklen=KEY_LENGTH,
        )

    def encrypt(self, plaintext: Union[str, bytes], passphrase: Passphrase) -> MessageEnvelope:
        """
        Seal plaintext under a passphrase.

        A fresh random salt and nonce are drawn for every call.
        """
        if not passphrase:
            raise MissingPassphrase()

        salt = secrets.token_bytes(SALT_LENGTH)
        nonce = secrets.token_bytes(NONCE_LENGTH)
        key = self.derive_key(passphrase, salt)

        sealed = _aead_seal(self.cipher_suite, key, nonce, to_bytes(plaintext))

        return MessageEnvelope(
            ciphertext=sealed[:-TAG_LENGTH],
            nonce=nonce,
            salt=salt,
            auth_tag=sealed[-TAG_LENGTH:],
            cipher_suite=self.cipher_suite,
        )

    def decrypt(self, envelope: MessageEnvelope, passphrase: Optional[Passphrase]) -> bytes:
        """
        Open an envelope.

        All-or-nothing: the tag is verified before any plaintext is
        returned. The envelope's own cipher suite is used, not the
        instance default.

        Raises:
            MissingPassphrase: no credential supplied
            MalformedEnvelope: envelope is not a valid MessageEnvelope
            AuthenticationFailure: wrong passphrase or tampered envelope
        """
        if not passphrase:
            raise MissingPassphrase()
        if not isinstance(envelope, MessageEnvelope):
            raise MalformedEnvelope(
                f"Expected MessageEnvelope, got {type(envelope).__name__}"
            )

        key = self.derive_key(passphrase, envelope.salt)
        try:
            return _aead_open(
                envelope.cipher_suite,
                key,
                envelope.nonce,
                envelope.ciphertext + envelope.auth_tag,
            )
        except AuthenticationFailure:
            audit_log.decryption_failed("tag mismatch", envelope.cipher_suite.value)
            raise

    def decrypt_text(self, envelope: MessageEnvelope, passphrase: Optional[Passphrase]) -> str:
        """
        Decrypt and decode UTF-8 plaintext.

        Raises:
            UndecodablePlaintext: the plaintext was sealed as non-UTF-8 bytes;
                use decrypt() for binary content
        """
        plaintext = self.decrypt(envelope, passphrase)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UndecodablePlaintext("Plaintext is not valid UTF-8") from e
