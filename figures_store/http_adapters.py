"""HTTP inventory client with retries, a circuit breaker and context headers.

This module implements the inventory port over HTTP using ``httpx``
against the counter service in ``inventory_api``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the request-id middleware.
- A circuit breaker to avoid hammering an unhealthy inventory store, with
  a single HALF_OPEN trial call after a timeout.
- A simple retry policy with capped exponential backoff for transport
  errors and 5xx.

Exhausted retries and an open circuit both surface as
``InventoryUnavailable``.
"""

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional

import httpx

from .config import Settings, get_settings
from .errors import InventoryUnavailable
from .middleware import REQUEST_ID_CTX

logger = logging.getLogger(__name__)

# ---------------- Circuit Breaker ---------------- #

class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Consecutive-failure circuit breaker guarding one upstream.

    ``fail_threshold`` failed calls in a row open the circuit; after
    ``reset_timeout`` seconds a single trial call is let through
    (HALF_OPEN). Its outcome closes or reopens the circuit. Only
    ``InventoryUnavailable`` counts as a failure: a 4xx answer means the
    upstream is alive.

    Thread-safe; ``clock`` is injectable for tests.
    """

    def __init__(
        self,
        name: str,
        fail_threshold: int,
        reset_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.fail_threshold = max(1, fail_threshold)
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._state = BreakerState.CLOSED
        self._opened_at = 0.0
        self._trial_in_flight = False

    @classmethod
    def from_settings(cls, name: str, settings: Settings) -> "CircuitBreaker":
        return cls(name, settings.http_circuit_fail_threshold, settings.http_circuit_reset_timeout)

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._current()

    def _current(self) -> BreakerState:
        if self._state is BreakerState.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False
        return self._state

    def _admit(self) -> BreakerState:
        with self._lock:
            st = self._current()
            if st is BreakerState.OPEN:
                raise InventoryUnavailable("CIRCUIT_OPEN")
            if st is BreakerState.HALF_OPEN:
                if self._trial_in_flight:
                    raise InventoryUnavailable("CIRCUIT_HALF_OPEN_BUSY")
                self._trial_in_flight = True
            return st

    def _record(self, failed: bool) -> None:
        with self._lock:
            self._trial_in_flight = False
            if not failed:
                self._failures = 0
                self._state = BreakerState.CLOSED
                return
            self._failures += 1
            trial_failed = self._state is BreakerState.HALF_OPEN
            if trial_failed or (self._state is BreakerState.CLOSED and self._failures >= self.fail_threshold):
                self._state = BreakerState.OPEN
                self._opened_at = self._clock()
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})

    @contextmanager
    def guard(self) -> Iterator[BreakerState]:
        """Admit one protected call and record its outcome.

        Yields:
            BreakerState: The state the call was admitted in.

        Raises:
            InventoryUnavailable: If the circuit is OPEN or a HALF_OPEN trial
                is already in flight.
        """
        state = self._admit()
        try:
            yield state
        except InventoryUnavailable:
            self._record(failed=True)
            raise
        except httpx.HTTPStatusError:
            self._record(failed=False)
            raise
        except BaseException:
            with self._lock:
                self._trial_in_flight = False
            raise
        self._record(failed=False)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


# ---------------- Inventory Adapter ---------------- #

class HttpInventoryClient:
    """HTTP client for the inventory counter service."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.inventory_base_url).rstrip("/")
        self.timeout = timeout or self.settings.http_timeout_secs
        self.breaker = breaker or CircuitBreaker.from_settings("inventory", self.settings)

    def get_count(self, figure_type: str) -> int:
        """Fetch the current stock of ``figure_type``."""
        resp = self._call("GET", f"/stock/{figure_type}")
        return int(resp.json().get("count", 0))

    def set_count(self, figure_type: str, value: int) -> None:
        """Overwrite the stock of ``figure_type``."""
        self._call("PUT", f"/stock/{figure_type}", json={"count": value})

    def _call(self, method: str, path: str, json: Optional[dict] = None) -> httpx.Response:
        """Send one request with circuit-breaker precheck and retries.

        Raises:
            InventoryUnavailable: When the circuit is open or retries for
                transport errors / 5xx are exhausted.
            httpx.HTTPStatusError: For non-retriable non-2xx responses.
        """
        max_retries = max(1, self.settings.http_retry_max)
        backoff = self.settings.http_retry_backoff_base
        tries = 0

        with self.breaker.guard() as state, httpx.Client(timeout=self.timeout) as client:
            headers = _request_headers({"X-Circuit-State": state.value, "X-Retry-Count": "0"})
            while True:
                resp = None
                exc = None
                try:
                    resp = client.request(method, f"{self.base_url}{path}", json=json, headers=headers)
                    if resp.status_code < 400:
                        return resp
                    if not _should_retry(resp, None):
                        resp.raise_for_status()
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_retries:
                    reason = str(exc) if exc else f"HTTP {resp.status_code}"
                    raise InventoryUnavailable(f"{method} {path}: {reason}") from exc

                sleep_s = backoff * (2 ** (tries - 1))
                time.sleep(min(sleep_s, self.settings.http_retry_max_sleep))
