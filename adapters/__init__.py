"""Adapter package exports."""

from .base import HttpxTransport, Transport, TransportError, TransportResponse
from .crpt import (
    CrptApi,
    DocumentSubmitter,
    FailureKind,
    SubmissionFailure,
    SubmissionRequest,
    SubmissionSuccess,
)

__all__ = [
    "CrptApi",
    "DocumentSubmitter",
    "FailureKind",
    "HttpxTransport",
    "SubmissionFailure",
    "SubmissionRequest",
    "SubmissionSuccess",
    "Transport",
    "TransportError",
    "TransportResponse",
]
