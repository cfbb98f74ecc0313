"""Structured logging for the document client."""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Any

import boto3
from pythonjsonlogger.json import JsonFormatter

if TYPE_CHECKING:
    from adapters.crpt import SubmissionResult

DEFAULT_SERVICE = "crpt-gate"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(message)s"

_LOGGING_CONFIGURED = False


class _ServiceFilter(logging.Filter):
    def __init__(self, service: str | None):
        super().__init__()
        self._service = service or DEFAULT_SERVICE

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self._service
        return True


class CloudWatchHandler(logging.Handler):
    """Ship each record to a CloudWatch Logs stream."""

    def __init__(
        self,
        log_group: str,
        log_stream: str,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        super().__init__()
        self._log_group = log_group
        self._log_stream = log_stream
        self._client = boto3.client("logs", region_name=region_name, endpoint_url=endpoint_url)
        self._sequence_token: str | None = None
        self._create_destination()

    def _create_destination(self) -> None:
        already_exists = self._client.exceptions.ResourceAlreadyExistsException
        try:
            self._client.create_log_group(logGroupName=self._log_group)
        except already_exists:
            pass
        try:
            self._client.create_log_stream(
                logGroupName=self._log_group, logStreamName=self._log_stream
            )
        except already_exists:
            pass

    def emit(self, record: logging.LogRecord) -> None:
        try:
            request: dict[str, Any] = {
                "logGroupName": self._log_group,
                "logStreamName": self._log_stream,
                "logEvents": [
                    {"timestamp": int(record.created * 1000), "message": self.format(record)}
                ],
            }
            if self._sequence_token is not None:
                request["sequenceToken"] = self._sequence_token
            response = self._client.put_log_events(**request)
            self._sequence_token = response.get("nextSequenceToken")
        except Exception:
            self.handleError(record)


def _build_formatter() -> logging.Formatter:
    return JsonFormatter(LOG_FORMAT)


def _cloudwatch_handler(service_name: str | None) -> CloudWatchHandler | None:
    log_group = os.getenv("CLOUDWATCH_LOG_GROUP")
    if not log_group:
        return None
    log_stream = os.getenv(
        "CLOUDWATCH_LOG_STREAM", f"{service_name or DEFAULT_SERVICE}-{int(time.time())}"
    )
    return CloudWatchHandler(
        log_group,
        log_stream,
        region_name=os.getenv("AWS_REGION"),
        endpoint_url=os.getenv("CLOUDWATCH_ENDPOINT"),
    )


def configure_logging(service_name: str | None = None) -> None:
    """Install JSON logging on the root logger once per process."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    root = logging.getLogger()
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    formatter = _build_formatter()
    service_filter = _ServiceFilter(service_name)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    cloudwatch = _cloudwatch_handler(service_name)
    if cloudwatch is not None:
        handlers.append(cloudwatch)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(service_filter)
        root.addHandler(handler)

    _LOGGING_CONFIGURED = True


def reset_logging() -> None:
    """Reset logging configuration for tests."""
    global _LOGGING_CONFIGURED
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    _LOGGING_CONFIGURED = False


def log_submission(logger: logging.Logger, result: SubmissionResult) -> None:
    """Log a submission result: info for success, warning for any failure."""
    if result.ok:
        logger.info("document submitted", extra={"outcome": "success"})
        return
    logger.warning(
        "document submission failed: %s",
        result.kind.value,
        extra={
            "outcome": result.kind.value,
            "detail": result.detail,
            "status_code": result.status_code,
        },
    )
