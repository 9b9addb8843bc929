import dataclasses
import unittest
from unittest import mock

from finalseal import (
    AnchorStatus,
    ChainLedger,
    EnvelopeCrypto,
    InMemoryAnchorSubmitter,
    IntegrityDigest,
    InvalidTransition,
    MalformedEnvelope,
    MissingPassphrase,
    TrustLevel,
    TrustStatus,
    VerificationOrchestrator,
    advance,
    trust_status_for,
)
from finalseal import config
from finalseal.util import sha256_hex

TS = 1_700_000_000_000


class TestTrustStateMachine(unittest.TestCase):

    def test_happy_path(self):
        status = TrustStatus.UNSEALED
        for target in (TrustStatus.SEALED, TrustStatus.ANCHOR_PENDING, TrustStatus.ANCHOR_CONFIRMED):
            status = advance(status, target)
        self.assertEqual(status, TrustStatus.ANCHOR_CONFIRMED)

    def test_pending_may_fail(self):
        self.assertEqual(
            advance(TrustStatus.ANCHOR_PENDING, TrustStatus.ANCHOR_FAILED),
            TrustStatus.ANCHOR_FAILED,
        )

    def test_illegal_transitions(self):
        illegal = [
            (TrustStatus.UNSEALED, TrustStatus.ANCHOR_CONFIRMED),
            (TrustStatus.SEALED, TrustStatus.ANCHOR_CONFIRMED),
            (TrustStatus.ANCHOR_CONFIRMED, TrustStatus.ANCHOR_PENDING),
            (TrustStatus.ANCHOR_FAILED, TrustStatus.ANCHOR_CONFIRMED),
            (TrustStatus.SEALED, TrustStatus.UNSEALED),
        ]
        for current, target in illegal:
            with self.subTest(current=current, target=target):
                with self.assertRaises(InvalidTransition):
                    advance(current, target)

    def test_status_for_block(self):
        ledger = ChainLedger(difficulty=1, submitter=InMemoryAnchorSubmitter(AnchorStatus.PENDING))
        block = ledger.append_block(sha256_hex("m1"), timestamp=TS)

        self.assertEqual(trust_status_for(None), TrustStatus.SEALED)
        self.assertEqual(trust_status_for(block), TrustStatus.ANCHOR_PENDING)


class TestVerificationOrchestrator(unittest.TestCase):
    """One envelope sealed per class; each verify costs one key derivation."""

    @classmethod
    def setUpClass(cls):
        cls.crypto = EnvelopeCrypto()
        cls.digest = IntegrityDigest()
        cls.plaintext = "See you on the other side."
        cls.envelope = cls.crypto.encrypt(cls.plaintext, "pass1")
        cls.stored_digest = cls.digest.digest(cls.plaintext)

    def _ledger(self, status=AnchorStatus.CONFIRMED, preceding=0):
        ledger = ChainLedger(difficulty=2, submitter=InMemoryAnchorSubmitter(status))
        for i in range(preceding):
            ledger.append_block(sha256_hex(f"earlier-{i}"), timestamp=TS + i)
        block = ledger.append_block(self.stored_digest, timestamp=TS + preceding)
        return ledger, block

    def _orchestrator(self, ledger=None, difficulty=None):
        if ledger is None and difficulty is None:
            difficulty = 2
        return VerificationOrchestrator(
            crypto=self.crypto, digest=self.digest, ledger=ledger, difficulty=difficulty
        )

    def test_strong_trust(self):
        ledger, block = self._ledger(preceding=1)
        result = self._orchestrator(ledger).verify_message(
            self.envelope, "pass1", block, self.stored_digest
        )

        self.assertTrue(result.is_valid)
        self.assertTrue(result.envelope_integrity_ok)
        self.assertTrue(result.local_consistency_ok)
        self.assertTrue(result.chain_consistency_ok)
        self.assertEqual(result.trust_level, TrustLevel.STRONG)
        self.assertEqual(result.trust_status, TrustStatus.ANCHOR_CONFIRMED)

    def test_explicit_previous_block_without_ledger(self):
        ledger, block = self._ledger(preceding=1)
        result = self._orchestrator().verify_message(
            self.envelope, "pass1", block, self.stored_digest,
            previous_block=ledger.block_at(0),
        )
        self.assertEqual(result.trust_level, TrustLevel.STRONG)

    def test_block_checked_at_mining_difficulty(self):
        ledger = ChainLedger(difficulty=1, submitter=InMemoryAnchorSubmitter())
        ledger.append_block(sha256_hex("earlier"), timestamp=TS)
        block = ledger.append_block(self.stored_digest, timestamp=TS + 1)
        self.assertTrue(ledger.verify_block(block, ledger.block_at(0)))

        with mock.patch.object(config, "POW_DIFFICULTY", 4):
            standalone = self._orchestrator(difficulty=1).verify_message(
                self.envelope, "pass1", block, self.stored_digest,
                previous_block=ledger.block_at(0),
            )
            attached = self._orchestrator(ledger).verify_message(
                self.envelope, "pass1", block, self.stored_digest
            )

        self.assertEqual(standalone.trust_level, TrustLevel.STRONG)
        self.assertEqual(attached.trust_level, TrustLevel.STRONG)

    def test_difficulty_defaults(self):
        ledger = ChainLedger(difficulty=1, submitter=InMemoryAnchorSubmitter())
        self.assertEqual(VerificationOrchestrator(crypto=self.crypto, ledger=ledger).difficulty, 1)
        with mock.patch.object(config, "POW_DIFFICULTY", 3):
            self.assertEqual(VerificationOrchestrator(crypto=self.crypto).difficulty, 3)

    def test_missing_predecessor_breaks_chain(self):
        _, block = self._ledger(preceding=1)
        result = self._orchestrator().verify_message(
            self.envelope, "pass1", block, self.stored_digest
        )

        self.assertFalse(result.is_valid)
        self.assertFalse(result.chain_consistency_ok)
        self.assertEqual(result.broken_at_index, 1)

    def test_unanchored_message(self):
        result = self._orchestrator().verify_message(
            self.envelope, "pass1", None, self.stored_digest
        )

        self.assertTrue(result.is_valid)
        self.assertIsNone(result.chain_consistency_ok)
        self.assertEqual(result.trust_level, TrustLevel.LOCAL_ONLY)
        self.assertEqual(result.trust_status, TrustStatus.SEALED)

    def test_failed_anchor_degrades(self):
        ledger, block = self._ledger(status=AnchorStatus.FAILED)
        result = self._orchestrator(ledger).verify_message(
            self.envelope, "pass1", block, self.stored_digest
        )

        self.assertTrue(result.is_valid)
        self.assertIsNone(result.chain_consistency_ok)
        self.assertEqual(result.trust_level, TrustLevel.LOCAL_ONLY)
        self.assertEqual(result.trust_status, TrustStatus.ANCHOR_FAILED)

    def test_stored_digest_mismatch(self):
        result = self._orchestrator().verify_message(
            self.envelope, "pass1", None, sha256_hex("something else")
        )

        self.assertFalse(result.is_valid)
        self.assertTrue(result.envelope_integrity_ok)
        self.assertFalse(result.local_consistency_ok)
        self.assertEqual(result.trust_level, TrustLevel.NONE)

    def test_block_for_other_digest(self):
        ledger = ChainLedger(difficulty=2, submitter=InMemoryAnchorSubmitter())
        block = ledger.append_block(sha256_hex("a different message"), timestamp=TS)
        result = self._orchestrator(ledger).verify_message(
            self.envelope, "pass1", block, self.stored_digest
        )

        self.assertFalse(result.is_valid)
        self.assertFalse(result.chain_consistency_ok)
        self.assertIsNone(result.broken_at_index)

    def test_tampered_block(self):
        ledger, block = self._ledger()
        tampered = dataclasses.replace(block, timestamp=block.timestamp + 1)
        result = self._orchestrator(ledger).verify_message(
            self.envelope, "pass1", tampered, self.stored_digest
        )

        self.assertFalse(result.is_valid)
        self.assertTrue(result.local_consistency_ok)
        self.assertFalse(result.chain_consistency_ok)
        self.assertEqual(result.broken_at_index, 0)

    def test_wrong_passphrase_short_circuits(self):
        ledger, block = self._ledger()
        result = self._orchestrator(ledger).verify_message(
            self.envelope, "pass2", block, self.stored_digest
        )

        self.assertFalse(result.is_valid)
        self.assertFalse(result.envelope_integrity_ok)
        self.assertFalse(result.local_consistency_ok)
        self.assertIsNone(result.chain_consistency_ok)
        self.assertEqual(result.failure, "AUTHENTICATION_FAILURE")
        self.assertEqual(result.trust_level, TrustLevel.NONE)

    def test_missing_passphrase_raises(self):
        with self.assertRaises(MissingPassphrase):
            self._orchestrator().verify_message(self.envelope, None, None, self.stored_digest)

    def test_malformed_envelope_raises(self):
        with self.assertRaises(MalformedEnvelope):
            self._orchestrator().verify_message({"ciphertext": ""}, "pass1", None, self.stored_digest)

    def test_result_serialization(self):
        result = self._orchestrator().verify_message(
            self.envelope, "pass1", None, self.stored_digest
        )
        data = result.to_dict()

        self.assertEqual(data["trust_level"], "LOCAL_ONLY")
        self.assertEqual(data["trust_status"], "SEALED")
        self.assertNotIn(self.plaintext, str(data))

    def test_result_logged(self):
        with self.assertLogs("finalseal.audit", level="INFO") as cm:
            self._orchestrator().verify_message(self.envelope, "pass1", None, self.stored_digest)

        record = cm.records[-1]
        self.assertEqual(record.extra_fields["event_type"], "VERIFICATION_RESULT")
        self.assertEqual(record.extra_fields["trust_level"], "LOCAL_ONLY")


if __name__ == "__main__":
    unittest.main(verbosity=2)
