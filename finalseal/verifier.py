"""
FinalSeal Verification

Recomposes the envelope, digest and chain checks for one message:

1. Decrypt the envelope. An authentication failure short-circuits;
   nothing else is evaluated.
2. Re-hash the plaintext and compare it with the digest stored at seal time.
3. If the chain anchor is confirmed, compare the digest with the block's
   digest and verify the block against its predecessor. An anchor that is
   still pending or failed leaves chain consistency unknown (local-only
   trust) and does not invalidate the message.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from . import config
from .block import ChainBlock
from .chain import ChainLedger, check_block
from .digest import IntegrityDigest
from .envelope import EnvelopeCrypto, MessageEnvelope, Passphrase
from .errors import AuthenticationFailure, InvalidTransition
from .logging_config import audit_log
from .models import AnchorStatus


class TrustStatus(str, Enum):
    """Lifecycle of a message's trust."""
    UNSEALED = "UNSEALED"
    SEALED = "SEALED"
    ANCHOR_PENDING = "ANCHOR_PENDING"
    ANCHOR_CONFIRMED = "ANCHOR_CONFIRMED"
    ANCHOR_FAILED = "ANCHOR_FAILED"


_TRANSITIONS = {
    TrustStatus.UNSEALED: {TrustStatus.SEALED},
    TrustStatus.SEALED: {TrustStatus.ANCHOR_PENDING},
    TrustStatus.ANCHOR_PENDING: {TrustStatus.ANCHOR_CONFIRMED, TrustStatus.ANCHOR_FAILED},
    TrustStatus.ANCHOR_CONFIRMED: set(),
    TrustStatus.ANCHOR_FAILED: set(),
}

_ANCHOR_TO_TRUST = {
    AnchorStatus.PENDING: TrustStatus.ANCHOR_PENDING,
    AnchorStatus.CONFIRMED: TrustStatus.ANCHOR_CONFIRMED,
    AnchorStatus.FAILED: TrustStatus.ANCHOR_FAILED,
}


def advance(current: TrustStatus, target: TrustStatus) -> TrustStatus:
    """
    Move along the trust state machine.

    Raises:
        InvalidTransition: if ``target`` is not reachable from ``current``
    """
    current, target = TrustStatus(current), TrustStatus(target)
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(f"{current.value} -> {target.value} is not allowed")
    return target


def trust_status_for(chain_block: Optional[ChainBlock]) -> TrustStatus:
    """Trust status of a sealed message given its (possibly missing) block."""
    if chain_block is None:
        return TrustStatus.SEALED
    return _ANCHOR_TO_TRUST[chain_block.anchor.status]


class TrustLevel(str, Enum):
    """
    STRONG: envelope, digest and confirmed chain anchor all check out
    LOCAL_ONLY: envelope and digest check out; no confirmed anchor
    NONE: message failed verification
    """
    STRONG = "STRONG"
    LOCAL_ONLY = "LOCAL_ONLY"
    NONE = "NONE"


@dataclass(frozen=True)
class VerificationResult:
    """Structured trust verdict for one message. Never carries plaintext."""
    is_valid: bool
    envelope_integrity_ok: bool
    local_consistency_ok: bool
    chain_consistency_ok: Optional[bool] = None
    broken_at_index: Optional[int] = None
    trust_status: TrustStatus = TrustStatus.SEALED
    failure: Optional[str] = None

    @property
    def trust_level(self) -> TrustLevel:
        if not self.is_valid:
            return TrustLevel.NONE
        if self.chain_consistency_ok is True:
            return TrustLevel.STRONG
        return TrustLevel.LOCAL_ONLY

    @classmethod
    def authentication_failed(cls, trust_status: TrustStatus) -> 'VerificationResult':
        return cls(
            is_valid=False,
            envelope_integrity_ok=False,
            local_consistency_ok=False,
            chain_consistency_ok=None,
            trust_status=trust_status,
            failure=AuthenticationFailure.code,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "envelope_integrity_ok": self.envelope_integrity_ok,
            "local_consistency_ok": self.local_consistency_ok,
            "chain_consistency_ok": self.chain_consistency_ok,
            "broken_at_index": self.broken_at_index,
            "trust_status": self.trust_status.value,
            "trust_level": self.trust_level.value,
            "failure": self.failure,
        }


class VerificationOrchestrator:
    """
    Composes EnvelopeCrypto, IntegrityDigest and ChainLedger checks.

    The ledger is used to find a block's predecessor; without one, only
    genesis blocks (or blocks given an explicit predecessor) can pass
    the chain check. Blocks are checked at ``difficulty``, which defaults
    to the ledger's difficulty, else SEAL_POW_DIFFICULTY.
    """

    def __init__(
        self,
        crypto: Optional[EnvelopeCrypto] = None,
        digest: Optional[IntegrityDigest] = None,
        ledger: Optional[ChainLedger] = None,
        difficulty: Optional[int] = None
    ):
        self.crypto = crypto or EnvelopeCrypto()
        self.digest = digest or IntegrityDigest()
        self.ledger = ledger
        if difficulty is None:
            difficulty = ledger.difficulty if ledger is not None else config.POW_DIFFICULTY
        self.difficulty = difficulty

    def verify_message(
        self,
        envelope: MessageEnvelope,
        passphrase: Optional[Passphrase],
        chain_block: Optional[ChainBlock],
        stored_digest: str,
        previous_block: Optional[ChainBlock] = None
    ) -> VerificationResult:
        """
        Verify a sealed message.

        Args:
            envelope: The stored envelope
            passphrase: Credential to open it
            chain_block: Block anchoring the message digest, if any
            stored_digest: Digest recorded alongside the envelope at seal time
            previous_block: Predecessor of chain_block (default: looked up in the ledger)

        Returns:
            VerificationResult; AuthenticationFailure is reported here
            with envelope_integrity_ok=False rather than raised.

        Raises:
            MissingPassphrase: no credential supplied
            MalformedEnvelope: the envelope is structurally invalid
        """
        trust_status = trust_status_for(chain_block)

        # Step 1: open the envelope
        try:
            plaintext = self.crypto.decrypt(envelope, passphrase)
        except AuthenticationFailure:
            result = VerificationResult.authentication_failed(trust_status)
            self._log(result)
            return result

        # Step 2: local consistency with the seal-time digest
        local_ok = self.digest.matches(plaintext, stored_digest)

        # Step 3: chain consistency, only against a confirmed anchor
        chain_ok = None
        broken_at = None
        if trust_status is TrustStatus.ANCHOR_CONFIRMED:
            digest_ok = self.digest.matches(plaintext, chain_block.digest)
            block_ok = self._verify_block(chain_block, previous_block)
            chain_ok = digest_ok and block_ok
            if not block_ok:
                broken_at = chain_block.index

        # Step 4: verdict
        result = VerificationResult(
            is_valid=local_ok and chain_ok is not False,
            envelope_integrity_ok=True,
            local_consistency_ok=local_ok,
            chain_consistency_ok=chain_ok,
            broken_at_index=broken_at,
            trust_status=trust_status,
        )
        self._log(result)
        return result

    def _verify_block(self, block: ChainBlock, previous_block: Optional[ChainBlock]) -> bool:
        if block.index > 0 and previous_block is None:
            if self.ledger is None:
                return False
            try:
                previous_block = self.ledger.block_at(block.index - 1)
            except IndexError:
                return False

        return check_block(block, previous_block, self.difficulty) is None

    @staticmethod
    def _log(result: VerificationResult) -> None:
        audit_log.verification_result(
            result.is_valid,
            result.trust_level.value,
            failure=result.failure,
            broken_at_index=result.broken_at_index,
        )
