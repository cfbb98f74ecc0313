"""Environment-driven settings for the document client."""

from __future__ import annotations

import os
from dataclasses import dataclass

from adapters.crpt import DEFAULT_BASE_URL
from utils.rate_gate import WindowUnit


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _env_window_seconds() -> float:
    explicit = _env_optional_float("CRPT_WINDOW_SECONDS")
    if explicit is not None:
        return explicit
    try:
        unit = WindowUnit.parse(os.getenv("CRPT_WINDOW_UNIT", "minutes"))
    except ValueError:
        unit = WindowUnit.MINUTES
    return unit.seconds


@dataclass(frozen=True)
class GateSettings:
    request_limit: int = 5
    window_seconds: float = WindowUnit.MINUTES.seconds
    # None keeps concurrency equal to the request limit.
    max_concurrency: int | None = None
    base_url: str = DEFAULT_BASE_URL
    http_timeout_s: float = 10.0
    permit_timeout_s: float | None = None

    @classmethod
    def from_env(cls) -> GateSettings:
        """Read settings from ``CRPT_*`` variables, keeping defaults for unparsable values.

        Zero or negative limits are passed through and rejected when the gate
        is built.
        """
        concurrency = os.getenv("CRPT_MAX_CONCURRENCY")
        max_concurrency: int | None = None
        if concurrency:
            try:
                max_concurrency = int(concurrency)
            except ValueError:
                max_concurrency = None
        return cls(
            request_limit=_env_int("CRPT_REQUEST_LIMIT", 5),
            window_seconds=_env_window_seconds(),
            max_concurrency=max_concurrency,
            base_url=os.getenv("CRPT_BASE_URL", DEFAULT_BASE_URL),
            http_timeout_s=_env_float("CRPT_HTTP_TIMEOUT_S", 10.0),
            permit_timeout_s=_env_optional_float("CRPT_PERMIT_TIMEOUT_S"),
        )
