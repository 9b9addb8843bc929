"""
Persistence records and shared enums for FinalSeal.

The Message Store and LedgerStore collaborators exchange these
records as plain dicts; validation happens here on the way in.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

HEX_BYTES_PATTERN = r'^(?:[0-9a-f]{2})*$'
HEX256_PATTERN = r'^[0-9a-f]{64}$'


class CipherSuite(str, Enum):
    """AEAD suites an envelope may be sealed with (``cipherSuiteId``)."""
    AES_256_GCM = "AES-256-GCM"
    CHACHA20_POLY1305 = "CHACHA20-POLY1305"


class AnchorStatus(str, Enum):
    """Status of a block hash submitted to the external ledger."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class EnvelopeRecord(BaseModel):
    """Hex-encoded envelope as held by the Message Store."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    ciphertext: str = Field(pattern=HEX_BYTES_PATTERN)
    nonce: str = Field(pattern=r'^[0-9a-f]{24}$')
    salt: str = Field(pattern=r'^[0-9a-f]{32}$')
    auth_tag: str = Field(pattern=r'^[0-9a-f]{32}$')
    cipher_suite_id: CipherSuite


class BlockRecord(BaseModel):
    """Serialized chain block with its anchor record."""
    model_config = ConfigDict(extra="forbid")

    index: int = Field(ge=0)
    previous_hash: str = Field(pattern=HEX256_PATTERN)
    digest: str = Field(pattern=HEX256_PATTERN)
    timestamp: int = Field(ge=0)
    nonce: int = Field(ge=0)
    hash: str = Field(pattern=HEX256_PATTERN)
    anchor_reference: Optional[str] = None
    anchor_status: AnchorStatus = AnchorStatus.PENDING
    anchor_error: Optional[str] = None
