import os
import sys

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time; pin the in-process backends for tests
os.environ.setdefault("SEAL_ANCHOR_BACKEND", "memory")
os.environ.setdefault("SEAL_LEDGER_BACKEND", "memory")
os.environ.setdefault("SEAL_LEDGER_SCOPE", "global")

from finalseal import InMemoryAnchorSubmitter, SealService, set_operation_id  # noqa: E402


@pytest.fixture(autouse=True)
def _operation_id():
    set_operation_id("test")
    yield
    set_operation_id("")


@pytest.fixture
def submitter():
    return InMemoryAnchorSubmitter()


@pytest.fixture
def service(submitter):
    return SealService(submitter=submitter, difficulty=2)
