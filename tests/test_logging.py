import json
import logging
import os
import unittest
from unittest import mock

from finalseal import config
from finalseal.logging_config import (
    AuditLogger,
    StructuredFormatter,
    get_operation_id,
    set_operation_id,
)


class _ListHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.lines = []
        self.setFormatter(StructuredFormatter())

    def emit(self, record):
        self.lines.append(self.format(record))


class TestStructuredLogging(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger("finalseal.audit.test")
        self.logger.setLevel(logging.INFO)
        self.handler = _ListHandler()
        self.logger.addHandler(self.handler)
        self.audit = AuditLogger("finalseal.audit.test")

    def tearDown(self):
        self.logger.removeHandler(self.handler)

    def test_json_line(self):
        set_operation_id("op-123")
        self.audit.block_appended("alice", 3, "00" * 32, 417, 2)

        data = json.loads(self.handler.lines[0])
        self.assertEqual(data["event_type"], "BLOCK_APPENDED")
        self.assertEqual(data["operation_id"], "op-123")
        self.assertEqual(data["index"], 3)
        self.assertEqual(data["level"], "INFO")
        self.assertTrue(data["block_hash"].endswith("..."))

    def test_failed_anchor_is_error(self):
        self.audit.anchor_status(0, "tx-1", "FAILED")
        self.assertEqual(json.loads(self.handler.lines[0])["level"], "ERROR")

    def test_disabled_level_skipped(self):
        self.logger.setLevel(logging.ERROR)
        self.audit.message_sealed("ab" * 32, "AES-256-GCM", 12)
        self.assertEqual(self.handler.lines, [])

    def test_generated_operation_id(self):
        op = set_operation_id()
        self.assertEqual(get_operation_id(), op)
        self.assertEqual(len(op), 36)


class TestConfig(unittest.TestCase):

    def test_defaults_validate(self):
        checks = config.validate_config()
        self.assertTrue(checks["kdf_iterations"])
        self.assertTrue(checks["cipher_suite"])
        self.assertTrue(checks["pow_difficulty"])

    def test_production_requires_durable_backends(self):
        with mock.patch.object(config, "ENV", "prod"), \
                mock.patch.object(config, "LEDGER_BACKEND", "memory"):
            self.assertFalse(config.validate_config()["durable_backends"])
        self.assertNotIn("durable_backends", config.validate_config())

    def test_debug_flag(self):
        with mock.patch.dict(os.environ, {"SEAL_DEBUG": "true"}):
            self.assertTrue(config.is_debug())
        with mock.patch.dict(os.environ, {"SEAL_DEBUG": ""}):
            self.assertFalse(config.is_debug())

    def test_minimum_iterations(self):
        self.assertEqual(config.MIN_KDF_ITERATIONS, 100_000)
        self.assertGreaterEqual(config.KDF_ITERATIONS, config.MIN_KDF_ITERATIONS)


if __name__ == "__main__":
    unittest.main(verbosity=2)
