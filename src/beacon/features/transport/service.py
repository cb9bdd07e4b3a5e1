from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any, Protocol

import requests

from beacon.core.types import LIBRARY_NAME, LIBRARY_VERSION
from beacon.features.events.schema import Event

from .wire import WireEvent, to_wire

BATCH_PATH = "/api/v1/events/batch"
SINGLE_PATH = "/api/v1/events"


class TransportError(Exception):
    """A batch could not be delivered. The dispatcher retries on this."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Transport(Protocol):
    name: str

    def send(self, batch: Sequence[WireEvent]) -> None: ...
    def close(self) -> None: ...


class HttpTransport:
    """
    Default provider: POSTs JSON batches to the collector.

    Raises TransportError on any non-2xx status or network failure.
    """

    name = "http"

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        project_id: str,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._session = session or requests.Session()
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"ApiKey {api_key}",
            "X-Project-ID": project_id,
            "User-Agent": f"{LIBRARY_NAME}/{LIBRARY_VERSION}",
        }

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def _post(self, path: str, body: Any) -> None:
        url = f"{self.endpoint}{path}"
        try:
            resp = self._session.post(
                url,
                data=json.dumps(body, separators=(",", ":")),
                headers=self._headers,
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise TransportError(f"network error posting to {url}: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise TransportError(
                f"HTTP {resp.status_code}: {resp.reason}", status_code=resp.status_code
            )

    def send(self, batch: Sequence[WireEvent]) -> None:
        if not batch:
            return
        self._post(BATCH_PATH, list(batch))

    def send_event(self, event: Event) -> None:
        """Deliver a single event immediately, bypassing the queue."""
        self._post(SINGLE_PATH, to_wire(event))

    def close(self) -> None:
        self._session.close()
