"""
Configuration module for FinalSeal.

Centralizes all configuration with environment variable support
and validation. Values are read once at import time; components take
explicit constructor arguments that default to these settings.
"""

import os
from pathlib import Path
from typing import Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("SEAL_ENV", "dev")  # dev|stage|prod

# Key derivation
MIN_KDF_ITERATIONS = 100_000
KDF_ITERATIONS = int(os.getenv("SEAL_KDF_ITERATIONS", str(MIN_KDF_ITERATIONS)))

# Envelope cipher suite id (see finalseal.envelope.CipherSuite)
CIPHER_SUITE = os.getenv("SEAL_CIPHER_SUITE", "AES-256-GCM")

# Proof of work
POW_DIFFICULTY = int(os.getenv("SEAL_POW_DIFFICULTY", "4"))
MINING_YIELD_INTERVAL = int(os.getenv("SEAL_MINING_YIELD_INTERVAL", "1024"))

# Anchor submitter
ANCHOR_BACKEND = os.getenv("SEAL_ANCHOR_BACKEND", "memory")  # memory|http
ANCHOR_URL = os.getenv("SEAL_ANCHOR_URL", "")
ANCHOR_TIMEOUT = float(os.getenv("SEAL_ANCHOR_TIMEOUT", "5"))

# Ledger storage
LEDGER_BACKEND = os.getenv("SEAL_LEDGER_BACKEND", "memory")  # memory|sqlite
LEDGER_DB_PATH = os.getenv("SEAL_LEDGER_DB_PATH", "data/finalseal.db")
LEDGER_SCOPE = os.getenv("SEAL_LEDGER_SCOPE", "global")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate the current settings.
    Returns dict of check name -> passed.
    """
    from .envelope import CipherSuite

    checks = {
        "kdf_iterations": KDF_ITERATIONS >= MIN_KDF_ITERATIONS,
        "cipher_suite": CIPHER_SUITE in {s.value for s in CipherSuite},
        "pow_difficulty": 0 <= POW_DIFFICULTY <= 64,
        "mining_yield_interval": MINING_YIELD_INTERVAL > 0,
        "anchor_backend": ANCHOR_BACKEND in ("memory", "http"),
        "ledger_backend": LEDGER_BACKEND in ("memory", "sqlite"),
    }

    if ANCHOR_BACKEND == "http":
        checks["anchor_url"] = bool(ANCHOR_URL)

    if LEDGER_BACKEND == "sqlite":
        checks["ledger_db_dir"] = Path(LEDGER_DB_PATH).parent.exists()

    # In-memory backends lose the chain and anchor state on restart
    if is_production():
        checks["durable_backends"] = ANCHOR_BACKEND == "http" and LEDGER_BACKEND == "sqlite"

    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("SEAL_DEBUG", "").lower() in ("1", "true", "yes")
