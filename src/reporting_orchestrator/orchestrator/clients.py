"""Clients the baseline reporting actions talk to.

These are thin wrappers around ``requests`` so actions never build HTTP calls
themselves and tests can substitute fakes. They are synchronous; async actions
run them in a worker thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"

DEIDENTIFY = "deidentify"
ANONYMIZE = "anonymize"
PSEUDONYMIZE = "pseudonymize"


class DestinationClient(Protocol):
    endpoint: str

    def submit(self, bundle: dict[str, Any]) -> int: ...


class TrustServiceClient(Protocol):
    def transform(self, operation: str, bundle: dict[str, Any]) -> dict[str, Any]: ...


class ReportDatabase(Protocol):
    def insert(
        self, bundle: dict[str, Any], *, context_id: str | None = None
    ) -> dict[str, Any]: ...


@dataclass
class ReportingClients:
    """Collaborators available to actions through ``context.clients``."""

    source: FhirEndpointClient | None = None
    dest: DestinationClient | None = None
    trust: TrustServiceClient | None = None
    database: ReportDatabase | None = None

    def close(self) -> None:
        for client in (self.source, self.dest, self.trust):
            close = getattr(client, "close", None)
            if callable(close):
                close()


def _session(token: str) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "Accept": FHIR_JSON,
            "Content-Type": FHIR_JSON,
            "User-Agent": "medmorph-reporting-orchestrator",
        }
    )
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
    return session


class FhirEndpointClient:
    """A FHIR server: the EHR we read from or the public health agency we report to."""

    def __init__(self, *, endpoint: str, token: str = "", timeout_seconds: float = 30.0) -> None:
        if not endpoint:
            raise ValueError("FHIR endpoint is required")
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout_seconds
        self._session = _session(token)

    def read(self, path: str) -> dict[str, Any]:
        resp = self._session.get(f"{self.endpoint}/{path.lstrip('/')}", timeout=self._timeout)
        resp.raise_for_status()
        data: dict[str, Any] = resp.json()
        return data

    def submit(self, bundle: dict[str, Any]) -> int:
        """POST a reporting bundle to ``$process-message``; return the HTTP status."""

        url = f"{self.endpoint}/$process-message"
        resp = self._session.post(url, json=bundle, timeout=self._timeout)
        logger.info(
            "Submitted reporting bundle",
            extra={"url": url, "status_code": resp.status_code},
        )
        return resp.status_code

    def close(self) -> None:
        self._session.close()


class DataTrustClient:
    """Data trust service performing de-identification style transformations."""

    def __init__(self, *, endpoint: str, token: str = "", timeout_seconds: float = 30.0) -> None:
        if not endpoint:
            raise ValueError("Data trust service endpoint is required")
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout_seconds
        self._session = _session(token)

    def transform(self, operation: str, bundle: dict[str, Any]) -> dict[str, Any]:
        if operation not in {DEIDENTIFY, ANONYMIZE, PSEUDONYMIZE}:
            raise ValueError(f"Unsupported data trust operation: {operation}")
        resp = self._session.post(
            f"{self.endpoint}/{operation}", json=bundle, timeout=self._timeout
        )
        resp.raise_for_status()
        data: dict[str, Any] = resp.json()
        return data

    def close(self) -> None:
        self._session.close()
