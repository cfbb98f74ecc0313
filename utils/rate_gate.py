"""Window quota plus concurrency permits for outbound API calls.

The gate admits at most ``request_limit`` calls per window and at most
``max_concurrency`` calls in flight. The window is a fixed period: a timer task
owned by the gate zeroes the admitted-call counter every ``window_seconds``.
An exhausted window rejects immediately instead of queueing; only the wait for
a concurrency permit suspends the caller.

All state lives on one event loop. Check-and-increment sections contain no
``await`` so they cannot interleave with other callers.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import math
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

from prometheus_client import Counter, Gauge

logger = logging.getLogger(__name__)

# Serials are unique across gates so a permit cannot be released on the wrong one.
_PERMIT_SERIALS = itertools.count(1)

GATE_ADMITTED = Counter("rate_gate_admitted_total", "Calls admitted by the gate.", ("gate",))
GATE_REJECTED = Counter(
    "rate_gate_rejected_total", "Calls rejected because the window quota was spent.", ("gate",)
)
GATE_CANCELLED = Counter(
    "rate_gate_cancelled_total", "Permit waits abandoned before admission.", ("gate", "reason")
)
GATE_WINDOW_RESETS = Counter(
    "rate_gate_window_resets_total", "Window counter resets.", ("gate",)
)
GATE_PERMITS_IN_USE = Gauge(
    "rate_gate_permits_in_use", "Concurrency permits currently held.", ("gate",)
)


class WindowUnit(Enum):
    """Window lengths accepted in place of a number of seconds."""

    SECONDS = 1.0
    MINUTES = 60.0
    HOURS = 3600.0
    DAYS = 86400.0

    @property
    def seconds(self) -> float:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> WindowUnit:
        """Return the unit for names like ``"minutes"`` or ``"MINUTE"``."""
        name = raw.strip().upper()
        if not name.endswith("S"):
            name += "S"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown window unit: {raw!r}") from None


def window_seconds(window: WindowUnit | float) -> float:
    if isinstance(window, WindowUnit):
        return window.seconds
    return float(window)


@dataclass(frozen=True)
class Permit:
    """One held unit of concurrency, returned by an admitted acquire."""

    gate: str
    serial: int


@dataclass(frozen=True)
class Rejected:
    """The window quota is spent; retry after the next reset."""

    issued_in_window: int
    request_limit: int


@dataclass(frozen=True)
class Cancelled:
    """The permit wait was abandoned: ``"timeout"`` or ``"closed"``."""

    reason: str


AcquireOutcome: TypeAlias = Permit | Rejected | Cancelled


class RateGate:
    """Fixed-window quota combined with a bounded permit pool.

    ``request_limit`` caps admissions per window and ``max_concurrency`` caps
    permits held at once; the latter defaults to the former.
    """

    _request_limit: int
    _max_concurrency: int
    _window_seconds: float
    _issued_in_window: int
    _outstanding: int
    _held: set[int]

    def __init__(
        self,
        request_limit: int,
        window_seconds: float,
        *,
        max_concurrency: int | None = None,
        name: str = "default",
    ) -> None:
        if request_limit <= 0:
            raise ValueError("request_limit must be positive")
        if not math.isfinite(window_seconds) or window_seconds <= 0:
            raise ValueError("window_seconds must be a positive finite number")
        if max_concurrency is None:
            max_concurrency = request_limit
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self._name = name
        self._request_limit = request_limit
        self._max_concurrency = max_concurrency
        self._window_seconds = float(window_seconds)
        self._issued_in_window = 0
        self._outstanding = 0
        self._held = set()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._timer_task: asyncio.Task[None] | None = None
        self._window_started = time.monotonic()
        self._closed = False
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Built outside a loop; the timer starts on first use.
            pass
        else:
            self.start()

    @classmethod
    def for_unit(
        cls,
        unit: WindowUnit | float,
        request_limit: int,
        *,
        max_concurrency: int | None = None,
        name: str = "default",
    ) -> RateGate:
        """Build a gate whose window is one ``unit`` long."""
        return cls(
            request_limit,
            window_seconds(unit),
            max_concurrency=max_concurrency,
            name=name,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def request_limit(self) -> int:
        return self._request_limit

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def issued_in_window(self) -> int:
        return self._issued_in_window

    @property
    def outstanding_permits(self) -> int:
        return self._outstanding

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start(self) -> None:
        """Start the window timer on the running loop. No-op while running or once closed.

        A timer that died with its event loop is replaced. Quota left over from
        a window that elapsed while no timer ran is reset first.
        """
        if self._closed or self.timer_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise RuntimeError("rate gate timer needs a running event loop") from None
        previous = self._timer_task
        if previous is not None:
            if previous.get_loop() is not loop and self._outstanding == 0:
                # Waiters of the old loop are gone with it.
                self._semaphore = asyncio.Semaphore(self._max_concurrency)
            if time.monotonic() - self._window_started >= self._window_seconds:
                self.reset_window()
        self._timer_task = loop.create_task(self._run_window_timer())
        logger.info(
            "rate_gate: started gate=%s limit=%d concurrency=%d window=%ss",
            self._name,
            self._request_limit,
            self._max_concurrency,
            self._window_seconds,
        )

    async def _run_window_timer(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._window_seconds)
            except asyncio.CancelledError:
                logger.info("rate_gate: window timer cancelled gate=%s", self._name)
                break
            self.reset_window()

    def reset_window(self) -> None:
        """Replenish the window quota. Held permits are left alone."""
        self._issued_in_window = 0
        self._window_started = time.monotonic()
        GATE_WINDOW_RESETS.labels(gate=self._name).inc()
        logger.info("rate_gate: request count reset to 0 gate=%s", self._name)

    def _cancelled(self, reason: str) -> Cancelled:
        GATE_CANCELLED.labels(gate=self._name, reason=reason).inc()
        return Cancelled(reason)

    def _rejected(self) -> Rejected:
        GATE_REJECTED.labels(gate=self._name).inc()
        logger.info(
            "rate_gate: request limit reached gate=%s issued=%d limit=%d",
            self._name,
            self._issued_in_window,
            self._request_limit,
            extra={"gate": self._name, "event": "quota_exhausted"},
        )
        return Rejected(self._issued_in_window, self._request_limit)

    async def acquire(self, *, timeout: float | None = None) -> AcquireOutcome:
        """Admit one call or explain why not.

        Returns ``Rejected`` without waiting when the window is spent. Otherwise
        waits for a concurrency permit, at most ``timeout`` seconds when given.
        """
        if self._closed:
            return self._cancelled("closed")
        self.start()
        if self._issued_in_window >= self._request_limit:
            return self._rejected()

        if self._semaphore.locked():
            logger.debug(
                "rate_gate: waiting for permit gate=%s outstanding=%d",
                self._name,
                self._outstanding,
                extra={"gate": self._name, "event": "permit_wait"},
            )
        try:
            if timeout is None:
                await self._semaphore.acquire()
            else:
                await asyncio.wait_for(self._semaphore.acquire(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "rate_gate: permit wait timed out gate=%s timeout=%ss",
                self._name,
                timeout,
                extra={"gate": self._name, "event": "permit_timeout"},
            )
            return self._cancelled("timeout")

        # Other waiters may have spent the window or the gate may have closed
        # while this one slept.
        if self._closed:
            self._semaphore.release()
            return self._cancelled("closed")
        if self._issued_in_window >= self._request_limit:
            self._semaphore.release()
            return self._rejected()

        self._outstanding += 1
        self._issued_in_window += 1
        serial = next(_PERMIT_SERIALS)
        self._held.add(serial)
        GATE_ADMITTED.labels(gate=self._name).inc()
        GATE_PERMITS_IN_USE.labels(gate=self._name).set(self._outstanding)
        return Permit(self._name, serial)

    def release(self, permit: Permit) -> None:
        """Return a permit obtained from :meth:`acquire` on this gate."""
        if permit.gate != self._name or permit.serial not in self._held:
            raise RuntimeError(f"permit {permit.serial} is not held by gate {self._name!r}")
        self._held.remove(permit.serial)
        self._outstanding -= 1
        self._semaphore.release()
        GATE_PERMITS_IN_USE.labels(gate=self._name).set(self._outstanding)

    @asynccontextmanager
    async def permit(self, *, timeout: float | None = None) -> AsyncIterator[AcquireOutcome]:
        """Acquire for the duration of the block, releasing on every exit path.

        Usage::

            async with gate.permit() as outcome:
                if isinstance(outcome, Permit):
                    await send()
        """
        outcome = await self.acquire(timeout=timeout)
        try:
            yield outcome
        finally:
            if isinstance(outcome, Permit):
                self.release(outcome)

    async def aclose(self) -> None:
        """Stop the window timer. Safe to call repeatedly; in-flight calls finish."""
        if self._closed:
            return
        self._closed = True
        task = self._timer_task
        self._timer_task = None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("rate_gate: closed gate=%s", self._name)

    async def __aenter__(self) -> RateGate:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
