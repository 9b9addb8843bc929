"""
FinalSeal chain block.

A block links a message digest to its predecessor through a
proof-of-work sealed SHA-256 hash:

    hash = SHA-256(previous_hash || digest || timestamp || nonce)

where timestamp and nonce are rendered in decimal and the whole
concatenation is UTF-8 encoded.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .models import AnchorStatus, BlockRecord
from .util import sha256_hex

# previous_hash of the first block in every chain
GENESIS_HASH = "0" * 64


def compute_block_hash(previous_hash: str, digest: str, timestamp: int, nonce: int) -> str:
    """Hash the block fields in their fixed order."""
    return sha256_hex(f"{previous_hash}{digest}{timestamp}{nonce}")


def meets_difficulty(block_hash: str, difficulty: int) -> bool:
    """True if the hash has at least ``difficulty`` leading zero hex digits."""
    return block_hash.startswith("0" * difficulty)


@dataclass
class AnchorRecord:
    """
    Anchoring state attached to a block.

    Not part of the hashed content. Only ever updated with what the
    AnchorSubmitter reports; a FAILED status never removes the block.
    """
    reference: Optional[str] = None
    status: AnchorStatus = AnchorStatus.PENDING
    error: Optional[str] = None
    updated_at: Optional[float] = None

    def touch(self) -> None:
        self.updated_at = time.time()


@dataclass(frozen=True)
class ChainBlock:
    """One sealed, append-only block."""
    index: int
    previous_hash: str
    digest: str
    timestamp: int
    nonce: int
    hash: str
    anchor: AnchorRecord = field(default_factory=AnchorRecord, compare=False, repr=False)

    def recompute_hash(self) -> str:
        return compute_block_hash(self.previous_hash, self.digest, self.timestamp, self.nonce)

    @property
    def anchor_status(self) -> AnchorStatus:
        return self.anchor.status

    def to_dict(self) -> Dict[str, Any]:
        """Serialize block and anchor record."""
        return BlockRecord(
            index=self.index,
            previous_hash=self.previous_hash,
            digest=self.digest,
            timestamp=self.timestamp,
            nonce=self.nonce,
            hash=self.hash,
            anchor_reference=self.anchor.reference,
            anchor_status=self.anchor.status,
            anchor_error=self.anchor.error,
        ).model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChainBlock':
        """
        Rebuild a block from a stored record.

        Raises pydantic.ValidationError (a ValueError) on malformed input.
        The stored hash is kept as-is; use the ledger to verify it.
        """
        record = BlockRecord.model_validate(data)
        return cls(
            index=record.index,
            previous_hash=record.previous_hash,
            digest=record.digest,
            timestamp=record.timestamp,
            nonce=record.nonce,
            hash=record.hash,
            anchor=AnchorRecord(
                reference=record.anchor_reference,
                status=record.anchor_status,
                error=record.anchor_error,
            ),
        )
