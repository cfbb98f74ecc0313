"""Transport seam between the submitter and the network."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import httpx


class TransportError(Exception):
    """I/O-level failure: no usable HTTP response was received."""


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    async def send(
        self, url: str, body: str, headers: Mapping[str, str]
    ) -> TransportResponse: ...


class HttpxTransport:
    """POST bodies through a shared ``httpx.AsyncClient``.

    When no client is injected one is created and owned; :meth:`aclose` only
    closes clients the transport owns.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, *, timeout: float = 10.0):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, url: str, body: str, headers: Mapping[str, str]) -> TransportResponse:
        try:
            r = await self._client.post(url, content=body.encode("utf-8"), headers=dict(headers))
        except httpx.RequestError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        return TransportResponse(status_code=r.status_code, body=r.text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
