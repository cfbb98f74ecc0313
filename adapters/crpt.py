"""Rate-limited client for the document-creation endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeAlias

from prometheus_client import Counter
from pydantic import BaseModel

from utils.rate_gate import Cancelled, RateGate, Rejected, WindowUnit, window_seconds

from .base import HttpxTransport, Transport, TransportError

if TYPE_CHECKING:
    from config import GateSettings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://ismp.crpt.ru"
CREATE_DOCUMENT_PATH = "/api/v3/lk/documents/create"

SUBMISSIONS = Counter(
    "document_submissions_total", "Document submissions by outcome.", ("outcome",)
)


class FailureKind(str, Enum):
    SERIALIZATION = "serialization"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"
    REMOTE_REJECTED = "remote_rejected"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class SubmissionRequest:
    document: Any
    signature: str


@dataclass(frozen=True)
class SubmissionSuccess:
    body: str | None = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class SubmissionFailure:
    kind: FailureKind
    detail: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return False


SubmissionResult: TypeAlias = SubmissionSuccess | SubmissionFailure


def serialize_document(document: Any) -> str:
    """Encode a document as JSON using its wire field names.

    Raises ``TypeError`` or ``ValueError`` when the document cannot be encoded.
    """
    if isinstance(document, BaseModel):
        return document.model_dump_json(by_alias=True)
    if isinstance(document, Mapping) or (
        isinstance(document, Sequence) and not isinstance(document, (str, bytes))
    ):
        return json.dumps(document, ensure_ascii=False, allow_nan=False)
    raise TypeError(f"cannot serialize document of type {type(document).__name__}")


class DocumentSubmitter:
    """Serialize, gate, send and classify one document submission."""

    def __init__(
        self,
        gate: RateGate,
        transport: Transport,
        *,
        url: str = DEFAULT_BASE_URL + CREATE_DOCUMENT_PATH,
        permit_timeout: float | None = None,
    ) -> None:
        self._gate = gate
        self._transport = transport
        self._url = url
        self._permit_timeout = permit_timeout

    @property
    def url(self) -> str:
        return self._url

    async def submit(self, document: Any, signature: str) -> SubmissionResult:
        return await self.submit_request(SubmissionRequest(document, signature))

    async def submit_request(self, request: SubmissionRequest) -> SubmissionResult:
        result = await self._submit(request)
        SUBMISSIONS.labels(outcome="success" if result.ok else result.kind.value).inc()
        return result

    async def _submit(self, request: SubmissionRequest) -> SubmissionResult:
        try:
            body = serialize_document(request.document)
        except (TypeError, ValueError) as exc:
            logger.error("crpt: document serialization failed: %s", exc)
            return SubmissionFailure(FailureKind.SERIALIZATION, detail=str(exc))

        headers = {"Content-Type": "application/json", "Signature": request.signature}
        async with self._gate.permit(timeout=self._permit_timeout) as outcome:
            if isinstance(outcome, Rejected):
                logger.info(
                    "crpt: request limit reached, retry after the window resets",
                    extra={"event": "quota_exhausted", "limit": outcome.request_limit},
                )
                return SubmissionFailure(
                    FailureKind.RATE_LIMITED,
                    detail=f"{outcome.issued_in_window}/{outcome.request_limit} calls used",
                )
            if isinstance(outcome, Cancelled):
                logger.warning("crpt: permit wait abandoned reason=%s", outcome.reason)
                return SubmissionFailure(FailureKind.CANCELLED, detail=outcome.reason)

            try:
                response = await self._transport.send(self._url, body, headers)
            except TransportError as exc:
                logger.error(
                    "crpt: transport failure while creating document",
                    exc_info=True,
                    extra={"event": "transport_error", "url": self._url},
                )
                return SubmissionFailure(FailureKind.TRANSPORT_ERROR, detail=str(exc))

        if not response.is_success:
            logger.warning(
                "crpt: remote rejected document status=%d",
                response.status_code,
                extra={"event": "remote_rejected", "status_code": response.status_code},
            )
            return SubmissionFailure(
                FailureKind.REMOTE_REJECTED,
                detail=str(response.status_code),
                status_code=response.status_code,
            )
        logger.info("crpt: response: %s", response.body)
        return SubmissionSuccess(body=response.body or None)


class CrptApi:
    """Client for the document-creation endpoint with a per-instance rate gate.

    ``request_limit`` calls are admitted per ``window_unit``; at most
    ``max_concurrency`` (default ``request_limit``) run at once. ``name`` labels
    the gate in logs and metrics; give each client in a process its own.
    """

    def __init__(
        self,
        window_unit: WindowUnit | float,
        request_limit: int,
        *,
        max_concurrency: int | None = None,
        transport: Transport | None = None,
        base_url: str = DEFAULT_BASE_URL,
        http_timeout: float = 10.0,
        permit_timeout: float | None = None,
        name: str = "crpt",
    ) -> None:
        self._gate = RateGate(
            request_limit,
            window_seconds(window_unit),
            max_concurrency=max_concurrency,
            name=name,
        )
        self._owned_transport: HttpxTransport | None = None
        if transport is None:
            self._owned_transport = HttpxTransport(timeout=http_timeout)
            transport = self._owned_transport
        self._submitter = DocumentSubmitter(
            self._gate,
            transport,
            url=base_url.rstrip("/") + CREATE_DOCUMENT_PATH,
            permit_timeout=permit_timeout,
        )

    @classmethod
    def from_settings(
        cls,
        settings: GateSettings,
        *,
        transport: Transport | None = None,
        name: str = "crpt",
    ) -> CrptApi:
        return cls(
            settings.window_seconds,
            settings.request_limit,
            max_concurrency=settings.max_concurrency,
            transport=transport,
            base_url=settings.base_url,
            http_timeout=settings.http_timeout_s,
            permit_timeout=settings.permit_timeout_s,
            name=name,
        )

    @property
    def gate(self) -> RateGate:
        return self._gate

    async def create_document(self, document: Any, signature: str) -> SubmissionResult:
        return await self._submitter.submit(document, signature)

    async def aclose(self) -> None:
        await self._gate.aclose()
        if self._owned_transport is not None:
            await self._owned_transport.aclose()
            self._owned_transport = None

    async def __aenter__(self) -> CrptApi:
        self._gate.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
