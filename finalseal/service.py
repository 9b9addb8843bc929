"""
FinalSeal public API.

    service = SealService()
    sealed = service.seal("Goodbye, Mom.", passphrase)
    block = service.anchor(sealed.digest)
    result = service.verify(sealed.envelope, passphrase, block, sealed.digest)

One ChainLedger is kept per scope. The scope is an explicit choice
of the caller (for example one chain per user); chains of different
scopes never reference each other.
"""

import threading
from concurrent.futures import Executor
from typing import Any, Dict, NamedTuple, Optional, Union

from . import config
from .anchor import AnchorSubmitter, get_anchor_submitter
from .block import ChainBlock
from .chain import CancellationToken, ChainLedger, ChainVerification
from .digest import IntegrityDigest
from .envelope import EnvelopeCrypto, MessageEnvelope, Passphrase
from .logging_config import audit_log
from .store import LedgerStore, get_ledger_store
from .verifier import VerificationOrchestrator, VerificationResult


class SealedMessage(NamedTuple):
    """Output of seal(): unpacks as (envelope, digest)."""
    envelope: MessageEnvelope
    digest: str

    def to_record(self) -> Dict[str, Any]:
        return {"envelope": self.envelope.to_record(), "digest": self.digest}


class SealService:
    """Seal, anchor and verify final messages."""

    def __init__(
        self,
        crypto: Optional[EnvelopeCrypto] = None,
        digest: Optional[IntegrityDigest] = None,
        submitter: Optional[AnchorSubmitter] = None,
        store: Optional[LedgerStore] = None,
        difficulty: Optional[int] = None,
        anchor_executor: Optional[Executor] = None,
        default_scope: Optional[str] = None
    ):
        self.crypto = crypto or EnvelopeCrypto()
        self.digest = digest or IntegrityDigest()
        self.submitter = submitter if submitter is not None else get_anchor_submitter()
        self.store = store if store is not None else get_ledger_store()
        self.difficulty = difficulty
        self.default_scope = default_scope or config.LEDGER_SCOPE
        self._anchor_executor = anchor_executor
        self._ledgers: Dict[str, ChainLedger] = {}
        self._lock = threading.Lock()

    def ledger(self, scope: Optional[str] = None) -> ChainLedger:
        """Return the ledger for ``scope``, creating it on first use."""
        scope = scope or self.default_scope
        with self._lock:
            ledger = self._ledgers.get(scope)
            if ledger is None:
                ledger = ChainLedger(
                    scope=scope,
                    difficulty=self.difficulty,
                    submitter=self.submitter,
                    store=self.store,
                    anchor_executor=self._anchor_executor,
                )
                self._ledgers[scope] = ledger
            return ledger

    def seal(self, plaintext: Union[str, bytes], passphrase: Passphrase) -> SealedMessage:
        """Encrypt plaintext and fingerprint it. The digest is taken before encryption."""
        digest = self.digest.digest(plaintext)
        envelope = self.crypto.encrypt(plaintext, passphrase)
        audit_log.message_sealed(digest, envelope.cipher_suite.value, len(envelope.ciphertext))
        return SealedMessage(envelope=envelope, digest=digest)

    def anchor(
        self,
        digest: str,
        scope: Optional[str] = None,
        timestamp: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        previous_hash: Optional[str] = None
    ) -> ChainBlock:
        """Append a block for ``digest`` to the scope's chain."""
        return self.ledger(scope).append_block(
            digest,
            timestamp=timestamp,
            cancel_token=cancel_token,
            previous_hash=previous_hash,
        )

    def verify(
        self,
        envelope: MessageEnvelope,
        passphrase: Optional[Passphrase],
        chain_block: Optional[ChainBlock],
        stored_digest: str,
        scope: Optional[str] = None
    ) -> VerificationResult:
        """Verify a sealed message against its digest and chain anchor."""
        orchestrator = VerificationOrchestrator(
            crypto=self.crypto,
            digest=self.digest,
            ledger=self.ledger(scope),
        )
        return orchestrator.verify_message(envelope, passphrase, chain_block, stored_digest)

    def verify_chain(self, scope: Optional[str] = None) -> ChainVerification:
        return self.ledger(scope).verify_chain()

    @staticmethod
    def envelope_to_record(envelope: MessageEnvelope) -> Dict[str, str]:
        return envelope.to_record()

    @staticmethod
    def envelope_from_record(record: Dict[str, Any]) -> MessageEnvelope:
        return MessageEnvelope.from_record(record)
