"""
Anchor submission for FinalSeal.

An AnchorSubmitter forwards block hashes to an external, presumptively
immutable ledger and reports their status. The ChainLedger depends only
on the abstract interface; this module provides a deterministic
in-memory implementation and an HTTP client.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from . import config
from .errors import AnchorUnavailable
from .models import AnchorStatus
from .util import sha256_hex


@dataclass(frozen=True)
class AnchorReceipt:
    """What a submitter returns for one submission."""
    reference: Optional[str]
    status: AnchorStatus


class AnchorSubmitter(ABC):
    """Abstract interface to an external anchoring ledger."""

    @abstractmethod
    def submit(self, block_hash: str) -> AnchorReceipt:
        """
        Submit a block hash for anchoring.

        Raises:
            AnchorUnavailable: submitter unreachable or timed out
        """
        pass

    @abstractmethod
    def poll(self, reference: str) -> AnchorStatus:
        """
        Query the current status of a prior submission.

        Raises:
            AnchorUnavailable: submitter unreachable or timed out
        """
        pass


class InMemoryAnchorSubmitter(AnchorSubmitter):
    """
    Deterministic in-process submitter.

    References are derived from the block hash, so resubmitting the
    same hash returns the same reference. Completes immediately with
    ``initial_status``; tests drive later transitions with set_status().
    """

    def __init__(
        self,
        initial_status: AnchorStatus = AnchorStatus.CONFIRMED,
        unreachable: bool = False
    ):
        self.initial_status = AnchorStatus(initial_status)
        self.unreachable = unreachable
        self._lock = threading.RLock()
        self._statuses: Dict[str, AnchorStatus] = {}
        self._submitted: List[str] = []

    @staticmethod
    def reference_for(block_hash: str) -> str:
        return "anchor:" + sha256_hex(block_hash)

    def submit(self, block_hash: str) -> AnchorReceipt:
        if self.unreachable:
            raise AnchorUnavailable("In-memory anchor submitter is unreachable")

        reference = self.reference_for(block_hash)
        with self._lock:
            status = self._statuses.setdefault(reference, self.initial_status)
            self._submitted.append(block_hash)
        return AnchorReceipt(reference=reference, status=status)

    def poll(self, reference: str) -> AnchorStatus:
        if self.unreachable:
            raise AnchorUnavailable("In-memory anchor submitter is unreachable")
        with self._lock:
            return self._statuses.get(reference, AnchorStatus.FAILED)

    def set_status(self, reference: str, status: AnchorStatus) -> None:
        """Simulate the external ledger changing a submission's status."""
        with self._lock:
            self._statuses[reference] = AnchorStatus(status)

    @property
    def submitted(self) -> List[str]:
        """Block hashes in submission order."""
        with self._lock:
            return list(self._submitted)


def _parse_status(value: Any) -> AnchorStatus:
    """Map a remote status string to AnchorStatus; unknown values are FAILED."""
    try:
        return AnchorStatus(str(value).upper())
    except ValueError:
        return AnchorStatus.FAILED


class HttpAnchorSubmitter(AnchorSubmitter):
    """
    JSON-over-HTTP anchor gateway client.

    POST {base_url}/anchors            {"block_hash": ...} -> {"reference", "status"}
    GET  {base_url}/anchors/{reference}                    -> {"status"}

    Transport errors, timeouts and 5xx responses raise AnchorUnavailable.
    A 4xx on submit is a rejection and is reported as FAILED.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        if not base_url:
            raise ValueError("base_url required for HTTP anchor submitter")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout if timeout is not None else config.ANCHOR_TIMEOUT
        self._session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise AnchorUnavailable(f"{method} {url} failed: {e}") from e
        if resp.status_code >= 500:
            raise AnchorUnavailable(f"{method} {url} returned HTTP {resp.status_code}")
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError as e:
            raise AnchorUnavailable("Anchor gateway returned invalid JSON") from e
        if not isinstance(body, dict):
            raise AnchorUnavailable("Anchor gateway returned unexpected payload")
        return body

    def submit(self, block_hash: str) -> AnchorReceipt:
        resp = self._request("POST", "/anchors", json={"block_hash": block_hash})
        if resp.status_code >= 400:
            return AnchorReceipt(reference=None, status=AnchorStatus.FAILED)

        body = self._json(resp)
        reference = body.get("reference")
        if not reference:
            raise AnchorUnavailable("Anchor gateway response missing reference")
        return AnchorReceipt(
            reference=str(reference),
            status=_parse_status(body.get("status", AnchorStatus.PENDING.value)),
        )

    def poll(self, reference: str) -> AnchorStatus:
        resp = self._request("GET", f"/anchors/{reference}")
        if resp.status_code == 404:
            return AnchorStatus.FAILED
        if resp.status_code >= 400:
            raise AnchorUnavailable(f"Anchor gateway returned HTTP {resp.status_code}")
        return _parse_status(self._json(resp).get("status"))


def get_anchor_submitter(
    backend: Optional[str] = None,
    url: Optional[str] = None,
    timeout: Optional[float] = None
) -> AnchorSubmitter:
    """
    Factory function to create the configured anchor submitter.

    Args:
        backend: "memory" or "http" (default: SEAL_ANCHOR_BACKEND)
        url: Gateway base URL for the http backend (default: SEAL_ANCHOR_URL)
        timeout: Request timeout in seconds (default: SEAL_ANCHOR_TIMEOUT)
    """
    backend = backend or config.ANCHOR_BACKEND
    if backend == "http":
        return HttpAnchorSubmitter(base_url=url or config.ANCHOR_URL, timeout=timeout)
    if backend == "memory":
        return InMemoryAnchorSubmitter()
    raise ValueError(f"Unknown anchor backend: {backend}")
