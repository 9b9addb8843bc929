"""
FinalSeal error taxonomy.

Cryptographic failures fail closed and are raised immediately.
Chain breaks are reported as data (see ``finalseal.chain.ChainBreak``),
not raised, so callers can fall back to local-only verification.
"""

from typing import Optional


class SealError(Exception):
    """Base class for all FinalSeal errors."""
    code = "SEAL_ERROR"


class AuthenticationFailure(SealError):
    """
    Authentication tag did not verify.

    Raised for a wrong passphrase and for tampered ciphertext alike;
    the two cases are deliberately indistinguishable. No plaintext is
    ever released when this is raised.
    """
    code = "AUTHENTICATION_FAILURE"

    def __init__(self, message: str = "Authentication tag verification failed"):
        super().__init__(message)


class MissingPassphrase(SealError):
    """Encryption or decryption attempted without a credential."""
    code = "MISSING_PASSPHRASE"

    def __init__(self, message: str = "Passphrase required"):
        super().__init__(message)


class MalformedEnvelope(SealError):
    """Stored envelope fields are structurally invalid."""
    code = "MALFORMED_ENVELOPE"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AnchorUnavailable(SealError):
    """Anchor submitter unreachable or timed out. Recoverable by retry."""
    code = "ANCHOR_UNAVAILABLE"


class MiningCancelled(SealError):
    """Proof-of-work search was interrupted through its cancellation token."""
    code = "MINING_CANCELLED"

    def __init__(self, nonces_tried: int):
        super().__init__(f"Mining cancelled after {nonces_tried} nonces")
        self.nonces_tried = nonces_tried


class InvalidTransition(SealError):
    """Illegal move in the message trust-status state machine."""
    code = "INVALID_TRANSITION"


class UndecodablePlaintext(SealError):
    """Authenticated plaintext is not valid UTF-8 text."""
    code = "UNDECODABLE_PLAINTEXT"
