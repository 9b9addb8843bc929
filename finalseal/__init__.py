"""
FinalSeal

Sealed final messages with tamper-evident anchoring.

A final message is encrypted under a passphrase-derived key, fingerprinted
with SHA-256 before encryption, and its fingerprint is linked into an
append-only, proof-of-work sealed hash chain whose block hashes are
forwarded to an external anchoring ledger.

Verification recomposes three checks:
    envelope integrity  -> the AEAD tag verifies
    local consistency   -> plaintext digest matches the stored digest
    chain consistency   -> the block recomputes, links and is anchored

A confirmed anchor yields STRONG trust; a pending or failed anchor
degrades to LOCAL_ONLY without invalidating the message.

Usage:
    from finalseal import SealService

    service = SealService()

    sealed = service.seal("Goodbye, Mom.", "pass1")
    record = service.envelope_to_record(sealed.envelope)   # for the Message Store

    block = service.anchor(sealed.digest)

    envelope = service.envelope_from_record(record)
    result = service.verify(envelope, "pass1", block, sealed.digest)

    if result.is_valid:
        print(result.trust_level)   # TrustLevel.STRONG
"""

__version__ = "0.1.0"

from .anchor import (
    AnchorReceipt,
    AnchorSubmitter,
    HttpAnchorSubmitter,
    InMemoryAnchorSubmitter,
    get_anchor_submitter,
)
from .block import GENESIS_HASH, AnchorRecord, ChainBlock, compute_block_hash, meets_difficulty
from .chain import (
    BreakReason,
    CancellationToken,
    ChainBreak,
    ChainLedger,
    ChainVerification,
    FifoLock,
    check_block,
    mine,
)
from .digest import IntegrityDigest
from .envelope import EnvelopeCrypto, MessageEnvelope
from .errors import (
    AnchorUnavailable,
    AuthenticationFailure,
    InvalidTransition,
    MalformedEnvelope,
    MiningCancelled,
    MissingPassphrase,
    SealError,
    UndecodablePlaintext,
)
from .logging_config import configure_logging, get_operation_id, set_operation_id
from .models import AnchorStatus, CipherSuite
from .service import SealedMessage, SealService
from .store import InMemoryLedgerStore, LedgerStore, SqliteLedgerStore, get_ledger_store
from .verifier import (
    TrustLevel,
    TrustStatus,
    VerificationOrchestrator,
    VerificationResult,
    advance,
    trust_status_for,
)

__all__ = [
    "__version__",

    # Envelope
    "CipherSuite",
    "EnvelopeCrypto",
    "MessageEnvelope",

    # Digest
    "IntegrityDigest",

    # Chain
    "GENESIS_HASH",
    "AnchorRecord",
    "ChainBlock",
    "compute_block_hash",
    "meets_difficulty",
    "BreakReason",
    "CancellationToken",
    "ChainBreak",
    "ChainLedger",
    "ChainVerification",
    "FifoLock",
    "check_block",
    "mine",

    # Anchoring
    "AnchorStatus",
    "AnchorReceipt",
    "AnchorSubmitter",
    "HttpAnchorSubmitter",
    "InMemoryAnchorSubmitter",
    "get_anchor_submitter",

    # Storage
    "LedgerStore",
    "InMemoryLedgerStore",
    "SqliteLedgerStore",
    "get_ledger_store",

    # Verification
    "TrustLevel",
    "TrustStatus",
    "VerificationOrchestrator",
    "VerificationResult",
    "advance",
    "trust_status_for",

    # Service
    "SealService",
    "SealedMessage",

    # Errors
    "SealError",
    "AuthenticationFailure",
    "MissingPassphrase",
    "MalformedEnvelope",
    "AnchorUnavailable",
    "MiningCancelled",
    "InvalidTransition",
    "UndecodablePlaintext",

    # Logging
    "configure_logging",
    "get_operation_id",
    "set_operation_id",
]
