"""Bounded exponential-backoff retry beneath every outbound request.

The retry loop is kept separate from the HTTP mechanics: `retry()` knows
nothing about requests, and `RetryAdapter` only decides which outcomes of a
single `send()` are worth repeating. Mounting the adapter on the session
means the paginated fetcher and every direct call share one policy.

Backoff: the first delay is `policy.delay`; after the i-th failed attempt
(0-based) the delay is multiplied by `2**i + 1` and clipped to
`policy.truncate`. With the defaults the sleeps are 10ms, 20ms, 60ms,
300ms, 2.7s and then 10s for every later attempt.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_RETRIES = 10
_BASE_DELAY = 0.01
_MAX_DELAY = 10.0

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

# Only reads are ever repeated.
_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = _MAX_RETRIES
    delay: float = _BASE_DELAY
    truncate: float = _MAX_DELAY
    statuses: frozenset[int] = field(default=RETRYABLE_STATUSES)

    @classmethod
    def from_config(cls, config: dict) -> RetryPolicy:
        return cls(
            retries=int(config.get("retries", _MAX_RETRIES)),
            delay=float(config.get("retry_delay", _BASE_DELAY)),
            truncate=float(config.get("retry_truncate", _MAX_DELAY)),
        )

    def delays(self):
        """Yield the sleep before each retry, `retries` values in total."""
        d = min(self.delay, self.truncate)
        for i in range(self.retries):
            yield d
            d = min(d * (2**i + 1), self.truncate)


def retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    retryable: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call func until it succeeds or `policy.retries` retries have failed.

    Exceptions outside `retryable` propagate on the first occurrence. When the
    budget is exhausted the last exception is re-raised unchanged.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except retryable as e:
            d = next(delays, None)
            if d is None:
                logger.error("Giving up after %d attempts: %s", attempt, e)
                raise
            logger.warning("Attempt %d failed: %s. Retrying in %.2fs...", attempt, e, d)
            sleep(d)


class RetryableStatus(Exception):
    """Internal signal carrying a response whose status warrants a retry."""

    def __init__(self, response: requests.Response):
        super().__init__(f"HTTP {response.status_code} for {response.url}")
        self.response = response


class RetryAdapter(HTTPAdapter):
    """HTTPAdapter whose send() is wrapped in `retry()`.

    Connection errors and timeouts are retried and, once exhausted, raised
    unchanged. Responses with a status in `policy.statuses` are retried and,
    once exhausted, the last response is returned as-is so the caller's
    status handling applies. Everything else (including 404) is returned
    after a single attempt.
    """

    def __init__(self, policy: RetryPolicy | None = None, sleep: Callable[[float], None] = time.sleep, **kwargs):
        super().__init__(**kwargs)
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def send(self, request, **kwargs):
        send = super().send
        if request.method not in _IDEMPOTENT_METHODS:
            return send(request, **kwargs)

        discarded: list[requests.Response] = []

        def attempt():
            # A retryable response is released only once another attempt replaces it;
            # the last one is handed back to the caller open.
            while discarded:
                discarded.pop().close()
            response = send(request, **kwargs)
            if response.status_code in self.policy.statuses:
                discarded.append(response)
                raise RetryableStatus(response)
            return response

        try:
            return retry(
                attempt,
                self.policy,
                retryable=(requests.ConnectionError, requests.Timeout, RetryableStatus),
                sleep=self._sleep,
            )
        except RetryableStatus as e:
            return e.response
