"""
FinalSeal Chain Ledger

Append-only, proof-of-work sealed hash chain of message digests.

Properties:
  - block[i].previous_hash == block[i-1].hash; block[0] links to GENESIS_HASH
  - every stored hash recomputes from its fields and meets the difficulty
  - appends are serialized FIFO per ledger so each block references the true tail
  - mining is deterministic and cancellable; a cancelled append changes nothing
  - anchoring is forwarded after the block is linked locally and never
    rolls it back; only the attached anchor status changes

Verification is a query: verify_block() and verify_chain() report
breaks as data and never raise.
"""

import hashlib
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from . import config
from .anchor import AnchorSubmitter, get_anchor_submitter
from .block import GENESIS_HASH, AnchorRecord, ChainBlock, meets_difficulty
from .errors import AnchorUnavailable, MiningCancelled
from .logging_config import audit_log
from .models import AnchorStatus
from .store import InMemoryLedgerStore, LedgerStore
from .util import now_millis, validate_hex_string

MAX_DIFFICULTY = 64

_UNSET = object()


# ============================================================
# Cancellation and ordering primitives
# ============================================================

class CancellationToken:
    """Cooperative cancellation signal checked inside the nonce search."""

    def __init__(self):
        self._event = threading.Event()
        self._timer: Optional[threading.Timer] = None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel_after(self, seconds: float) -> 'CancellationToken':
        """Arrange for cancel() to fire after ``seconds``. Returns self."""
        self._timer = threading.Timer(seconds, self.cancel)
        self._timer.daemon = True
        self._timer.start()
        return self

    def dispose(self) -> None:
        """Stop a pending cancel_after timer."""
        if self._timer is not None:
            self._timer.cancel()


class FifoLock:
    """
    Ticket lock: waiters acquire strictly in arrival order.

    threading.Lock makes no ordering promise, and appends must be
    processed in the order they were requested.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0

    def acquire(self) -> None:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._cond.wait()

    def release(self) -> None:
        with self._cond:
            self._now_serving += 1
            self._cond.notify_all()

    @property
    def queued(self) -> int:
        """Holder plus waiters."""
        with self._cond:
            return self._next_ticket - self._now_serving

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


# ============================================================
# Proof of work
# ============================================================

def mine(
    previous_hash: str,
    digest: str,
    timestamp: int,
    difficulty: int,
    cancel_token: Optional[CancellationToken] = None,
    yield_interval: Optional[int] = None
) -> Tuple[int, str]:
    """
    Search nonces from 0 until the block hash meets the difficulty.

    Deterministic: identical inputs always return the same (nonce, hash).
    The cancellation token is checked every ``yield_interval`` nonces.

    Returns:
        Tuple of (nonce, hash)

    Raises:
        MiningCancelled: the token was cancelled before a nonce was found
    """
    if not 0 <= difficulty <= MAX_DIFFICULTY:
        raise ValueError(f"difficulty must be between 0 and {MAX_DIFFICULTY}")
    interval = yield_interval or config.MINING_YIELD_INTERVAL

    prefix = hashlib.sha256(f"{previous_hash}{digest}{timestamp}".encode("utf-8"))
    target = "0" * difficulty
    nonce = 0
    while True:
        if cancel_token is not None and nonce % interval == 0 and cancel_token.cancelled:
            raise MiningCancelled(nonce)
        h = prefix.copy()
        h.update(str(nonce).encode("ascii"))
        block_hash = h.hexdigest()
        if block_hash.startswith(target):
            return nonce, block_hash
        nonce += 1


# ============================================================
# Verification results
# ============================================================

class BreakReason(str, Enum):
    HASH_MISMATCH = "HASH_MISMATCH"
    DIFFICULTY_NOT_MET = "DIFFICULTY_NOT_MET"
    LINKAGE_BROKEN = "LINKAGE_BROKEN"
    INDEX_MISMATCH = "INDEX_MISMATCH"


@dataclass(frozen=True)
class ChainBreak:
    """First failing block of a chain walk. Later indices are unverifiable."""
    index: int
    reason: BreakReason


@dataclass(frozen=True)
class ChainVerification:
    ok: bool
    blocks_checked: int
    chain_break: Optional[ChainBreak] = None

    @property
    def broken_at_index(self) -> Optional[int]:
        return self.chain_break.index if self.chain_break else None


def check_block(
    block: ChainBlock,
    previous_block: Optional[ChainBlock],
    difficulty: int
) -> Optional[BreakReason]:
    """
    Check one block against its predecessor.

    Returns:
        None if the block is sound, otherwise the first failing reason
    """
    if not isinstance(block, ChainBlock):
        return BreakReason.HASH_MISMATCH

    expected_index = 0 if previous_block is None else previous_block.index + 1
    if block.index != expected_index:
        return BreakReason.INDEX_MISMATCH

    if block.recompute_hash() != block.hash:
        return BreakReason.HASH_MISMATCH

    # A stored hash that recomputes but misses the difficulty was never mined honestly.
    if not meets_difficulty(block.hash, difficulty):
        return BreakReason.DIFFICULTY_NOT_MET

    expected_previous = GENESIS_HASH if previous_block is None else previous_block.hash
    if block.previous_hash != expected_previous:
        return BreakReason.LINKAGE_BROKEN

    return None


# ============================================================
# Ledger
# ============================================================

class ChainLedger:
    """
    One append-only chain for one scope.

    Use a single ChainLedger instance per (store, scope) in a process;
    the FIFO append lock is per instance.
    """

    def __init__(
        self,
        scope: Optional[str] = None,
        difficulty: Optional[int] = None,
        submitter: Optional[AnchorSubmitter] = None,
        store: Optional[LedgerStore] = None,
        anchor_executor: Optional[Executor] = None,
        yield_interval: Optional[int] = None
    ):
        self.scope = scope or config.LEDGER_SCOPE
        self.difficulty = config.POW_DIFFICULTY if difficulty is None else difficulty
        if not 0 <= self.difficulty <= MAX_DIFFICULTY:
            raise ValueError(f"difficulty must be between 0 and {MAX_DIFFICULTY}")

        self._submitter = submitter if submitter is not None else get_anchor_submitter()
        self._store = store if store is not None else InMemoryLedgerStore()
        self._executor = anchor_executor
        self._yield_interval = yield_interval

        self._append_lock = FifoLock()
        self._state_lock = threading.RLock()
        self._blocks: List[ChainBlock] = list(self._store.load(self.scope))

    # -- read access -------------------------------------------------

    def __len__(self) -> int:
        with self._state_lock:
            return len(self._blocks)

    def blocks(self) -> List[ChainBlock]:
        with self._state_lock:
            return list(self._blocks)

    def block_at(self, index: int) -> ChainBlock:
        if index < 0:
            raise IndexError(index)
        with self._state_lock:
            return self._blocks[index]

    @property
    def tail_hash(self) -> str:
        with self._state_lock:
            return self._blocks[-1].hash if self._blocks else GENESIS_HASH

    @property
    def submitter(self) -> AnchorSubmitter:
        return self._submitter

    # -- append ------------------------------------------------------

    def append_block(
        self,
        digest: str,
        timestamp: Optional[int] = None,
        difficulty: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        previous_hash: Optional[str] = None
    ) -> ChainBlock:
        """
        Mine, link and persist a block for ``digest``, then forward its
        hash to the anchor submitter.

        Args:
            digest: 64-char hex digest to anchor
            timestamp: Block timestamp in ms (default: now)
            difficulty: Leading zero hex digits required (default: ledger difficulty)
            cancel_token: Interrupts mining; the ledger is left unchanged
            previous_hash: If given, must equal the current tail hash

        Returns:
            The sealed block. Its anchor record holds the submission's
            reference and initial status (PENDING if submission is still
            in flight or the submitter was unavailable).

        Raises:
            MiningCancelled: mining was cancelled
            ValueError: invalid digest, difficulty or stale previous_hash
        """
        if not validate_hex_string(digest, 64):
            raise ValueError("digest must be a 64-char lowercase hex string")
        difficulty = self.difficulty if difficulty is None else difficulty
        if difficulty < self.difficulty:
            raise ValueError(
                f"difficulty {difficulty} below ledger minimum {self.difficulty}"
            )

        with self._append_lock:
            tail_hash = self.tail_hash
            if previous_hash is not None and previous_hash != tail_hash:
                raise ValueError("previous_hash does not match the current tail")

            index = len(self)
            ts = now_millis() if timestamp is None else int(timestamp)

            try:
                nonce, block_hash = mine(
                    tail_hash, digest, ts, difficulty,
                    cancel_token=cancel_token,
                    yield_interval=self._yield_interval,
                )
            except MiningCancelled as e:
                audit_log.mining_cancelled(self.scope, e.nonces_tried)
                raise

            block = ChainBlock(
                index=index,
                previous_hash=tail_hash,
                digest=digest,
                timestamp=ts,
                nonce=nonce,
                hash=block_hash,
            )
            self._store.append(self.scope, block)
            with self._state_lock:
                self._blocks.append(block)

        audit_log.block_appended(self.scope, index, block_hash, nonce, difficulty)
        self._dispatch_anchor(block)
        return block

    # -- anchoring ---------------------------------------------------

    def _dispatch_anchor(self, block: ChainBlock) -> None:
        if self._executor is not None:
            self._executor.submit(self._submit_anchor, block)
        else:
            self._submit_anchor(block)

    def _submit_anchor(self, block: ChainBlock) -> None:
        try:
            receipt = self._submitter.submit(block.hash)
        except AnchorUnavailable as e:
            self._record_anchor(block.index, error=str(e))
            audit_log.anchor_unavailable(block.index, str(e))
            return
        except Exception as e:
            # The block is already linked; a submitter fault only leaves it PENDING for retry.
            reason = f"{type(e).__name__}: {e}"
            self._record_anchor(block.index, error=reason)
            audit_log.anchor_unavailable(block.index, reason)
            return

        self._record_anchor(
            block.index,
            reference=receipt.reference,
            status=receipt.status,
            error=None,
        )
        audit_log.anchor_submitted(block.index, receipt.reference or "", receipt.status.value)

    def _record_anchor(
        self,
        index: int,
        reference=_UNSET,
        status: Optional[AnchorStatus] = None,
        error=_UNSET
    ) -> AnchorRecord:
        with self._state_lock:
            record = self._blocks[index].anchor
            if reference is not _UNSET:
                record.reference = reference
            if status is not None:
                record.status = AnchorStatus(status)
            if error is not _UNSET:
                record.error = error
            record.touch()
            self._store.update_anchor(self.scope, index, record)
            return record

    def anchor_status(self, index: int) -> AnchorStatus:
        return self.block_at(index).anchor.status

    def refresh_anchor(self, index: int) -> AnchorStatus:
        """
        Poll the submitter for a block's status and record it.

        Raises:
            AnchorUnavailable: submitter unreachable; retry with backoff
        """
        block = self.block_at(index)
        reference = block.anchor.reference
        if reference is None:
            return block.anchor.status

        status = self._submitter.poll(reference)
        self._record_anchor(index, status=status)
        audit_log.anchor_status(index, reference, status.value)
        return status

    def retry_anchor(self, index: int) -> AnchorRecord:
        """Resubmit a block that has no anchor reference yet."""
        block = self.block_at(index)
        if block.anchor.reference is None and block.anchor.status is AnchorStatus.PENDING:
            self._submit_anchor(block)
        return block.anchor

    def pending_anchors(self) -> List[ChainBlock]:
        with self._state_lock:
            return [b for b in self._blocks if b.anchor.status is AnchorStatus.PENDING]

    # -- verification ------------------------------------------------

    def verify_block(
        self,
        block: ChainBlock,
        previous_block: Optional[ChainBlock],
        difficulty: Optional[int] = None
    ) -> bool:
        """
        Recompute and check one block.

        Checks that the stored hash recomputes, meets the difficulty and
        that previous_hash links to ``previous_block`` (GENESIS_HASH when
        None). Never raises.
        """
        difficulty = self.difficulty if difficulty is None else difficulty
        return check_block(block, previous_block, difficulty) is None

    def verify_chain(self, blocks: Optional[Sequence[ChainBlock]] = None) -> ChainVerification:
        """
        Walk a chain and stop at the first failing block.

        Args:
            blocks: Blocks to check (default: this ledger's blocks)
        """
        if blocks is None:
            blocks = self.blocks()

        previous = None
        for position, block in enumerate(blocks):
            reason = check_block(block, previous, self.difficulty)
            if reason is not None:
                audit_log.chain_break(self.scope, position, reason.value)
                return ChainVerification(
                    ok=False,
                    blocks_checked=position,
                    chain_break=ChainBreak(index=position, reason=reason),
                )
            previous = block

        return ChainVerification(ok=True, blocks_checked=len(blocks))
