"""Rate limiting, retry and request accounting for calls to the Places API.

Every search request the pipeline makes goes through a single
:class:`RequestGateway`. The gateway keeps calls at or below the configured
QPS, retries rate-limited (429) and server-side (5xx) responses with
exponential backoff plus jitter, and counts every HTTP attempt so a run can
stop once its request budget is spent.

The gateway is constructed explicitly and handed to whoever needs it;
tests pass ``sleep=lambda _: None`` and a fake session.
"""

import logging
import math
import random
import threading
import time
from typing import Any, Callable, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429})
PROGRESS_EVERY = 50


class RequestBudgetExceeded(RuntimeError):
    """Raised when the global request cap has been reached."""


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUSES or 500 <= status_code < 600


class RequestGateway:
    """Process-wide throttle in front of the upstream search service."""

    def __init__(
        self,
        qps: float = 3.0,
        *,
        max_retries: int = 5,
        max_requests: int = 0,
        backoff_base: float = 0.5,
        max_jitter: float = 0.25,
        timeout: float = 10.0,
        cost_per_request: float = 0.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if qps <= 0:
            raise ValueError("qps must be positive")
        self.min_interval = math.ceil(1000 / qps) / 1000.0
        self.max_retries = max_retries
        self.max_requests = max_requests
        self.backoff_base = backoff_base
        self.max_jitter = max_jitter
        self.timeout = timeout
        self.cost_per_request = cost_per_request
        self.request_count = 0
        self._session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock
        self._last_call_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def budget_exhausted(self) -> bool:
        return bool(self.max_requests) and self.request_count >= self.max_requests

    def estimated_cost(self, cost_per_request: Optional[float] = None) -> float:
        if cost_per_request is None:
            cost_per_request = self.cost_per_request
        return round(self.request_count * cost_per_request, 2)

    def execute(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request, retrying transient failures.

        Returns the last response once retries are exhausted, even when it is
        a failure; non-retryable responses come back untouched.
        """
        attempt = 0
        while True:
            try:
                response = self._send(method, url, **kwargs)
            except requests.RequestException as exc:
                if attempt >= self.max_retries:
                    logger.error("%s %s failed after %d attempts: %s", method, url, attempt + 1, exc)
                    raise
                logger.warning("%s %s raised %s (attempt %d/%d)", method, url, exc, attempt + 1, self.max_retries + 1)
            else:
                if not is_retryable_status(response.status_code) or attempt >= self.max_retries:
                    if is_retryable_status(response.status_code):
                        logger.error(
                            "%s %s still failing with %s after %d attempts",
                            method,
                            url,
                            response.status_code,
                            attempt + 1,
                        )
                    return response
                logger.warning(
                    "%s %s returned %s (attempt %d/%d)",
                    method,
                    url,
                    response.status_code,
                    attempt + 1,
                    self.max_retries + 1,
                )

            self._sleep(self._backoff_delay(attempt))
            attempt += 1

    def _backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt) + random.uniform(0, self.max_jitter)

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        with self._lock:
            if self.budget_exhausted:
                raise RequestBudgetExceeded(f"request cap of {self.max_requests} reached")

            if self._last_call_at is not None:
                elapsed = self._clock() - self._last_call_at
                if elapsed < self.min_interval:
                    self._sleep(self.min_interval - elapsed)

            self.request_count += 1
            if self.request_count % PROGRESS_EVERY == 0:
                logger.info(
                    "Progress: %d requests, ~$%.2f",
                    self.request_count,
                    self.estimated_cost(),
                )
            kwargs.setdefault("timeout", self.timeout)
            try:
                return self._session.request(method, url, **kwargs)
            finally:
                self._last_call_at = self._clock()
