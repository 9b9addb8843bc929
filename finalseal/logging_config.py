"""
Logging configuration for FinalSeal.

Provides structured JSON logging for audit trails and debugging.
Plaintext and passphrases are never passed to any logger; hashes and
digests are truncated.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from .config import is_debug
from .util import short_hash

# Context variable for correlating the log lines of one operation
operation_id_var: ContextVar[str] = ContextVar('operation_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        operation_id = operation_id_var.get()
        if operation_id:
            log_data["operation_id"] = operation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class AuditLogger:
    """
    Specialized logger for sealing, anchoring and verification events.
    """

    def __init__(self, name: str = "finalseal.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return

        extra = {
            "event_type": event_type,
            "operation_id": operation_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def message_sealed(self, digest: str, cipher_suite: str, ciphertext_len: int) -> None:
        self._log(
            logging.INFO,
            "MESSAGE_SEALED",
            digest=short_hash(digest),
            cipher_suite=cipher_suite,
            ciphertext_len=ciphertext_len,
            message="Message sealed"
        )

    def decryption_failed(self, reason: str, cipher_suite: Optional[str] = None) -> None:
        self._log(
            logging.WARNING,
            "DECRYPTION_FAILED",
            reason=reason,
            cipher_suite=cipher_suite,
            message=f"Decryption failed: {reason}"
        )

    def block_appended(
        self,
        scope: str,
        index: int,
        block_hash: str,
        nonce: int,
        difficulty: int
    ) -> None:
        self._log(
            logging.INFO,
            "BLOCK_APPENDED",
            scope=scope,
            index=index,
            block_hash=short_hash(block_hash),
            nonce=nonce,
            difficulty=difficulty,
            message=f"Block {index} appended to {scope}"
        )

    def mining_cancelled(self, scope: str, nonces_tried: int) -> None:
        self._log(
            logging.WARNING,
            "MINING_CANCELLED",
            scope=scope,
            nonces_tried=nonces_tried,
            message=f"Mining cancelled after {nonces_tried} nonces"
        )

    def anchor_submitted(self, index: int, reference: str, status: str) -> None:
        self._log(
            logging.INFO,
            "ANCHOR_SUBMITTED",
            index=index,
            reference=reference,
            status=status,
            message=f"Block {index} submitted for anchoring"
        )

    def anchor_unavailable(self, index: int, reason: str) -> None:
        self._log(
            logging.WARNING,
            "ANCHOR_UNAVAILABLE",
            index=index,
            reason=reason,
            message=f"Anchor submitter unavailable for block {index}"
        )

    def anchor_status(self, index: int, reference: str, status: str) -> None:
        level = logging.ERROR if status == "FAILED" else logging.INFO
        self._log(
            level,
            "ANCHOR_STATUS",
            index=index,
            reference=reference,
            status=status,
            message=f"Anchor status for block {index}: {status}"
        )

    def chain_break(self, scope: str, index: int, reason: str) -> None:
        self._log(
            logging.ERROR,
            "CHAIN_BREAK",
            scope=scope,
            index=index,
            reason=reason,
            message=f"Chain break at index {index}: {reason}"
        )

    def verification_result(
        self,
        is_valid: bool,
        trust_level: str,
        failure: Optional[str] = None,
        broken_at_index: Optional[int] = None
    ) -> None:
        level = logging.INFO if is_valid else logging.WARNING
        self._log(
            level,
            "VERIFICATION_RESULT",
            is_valid=is_valid,
            trust_level=trust_level,
            failure=failure,
            broken_at_index=broken_at_index,
            message=f"Verification {'passed' if is_valid else 'failed'} ({trust_level})"
        )


def configure_logging(
    level: Optional[str] = None,
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL); default
            DEBUG when SEAL_DEBUG is set, else INFO
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    if level is None:
        level = "DEBUG" if is_debug() else "INFO"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_operation_id(operation_id: Optional[str] = None) -> str:
    """
    Set the operation ID for the current context.

    Args:
        operation_id: ID to set, or None to generate one

    Returns:
        The operation ID that was set
    """
    if operation_id is None:
        operation_id = str(uuid.uuid4())
    operation_id_var.set(operation_id)
    return operation_id


def get_operation_id() -> str:
    """Get the current operation ID."""
    return operation_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
