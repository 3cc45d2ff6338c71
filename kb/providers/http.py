"""
Shared HTTP plumbing for the provider clients: retry with backoff and a
circuit breaker, so a failing provider stops being called for a while.
"""

from __future__ import annotations

import random
import threading
import time
from typing import Optional

import httpx

import kb.config as config

logger = config.logger

RETRYABLE_STATUS = {429, 500, 502, 503, 504, 529}


class CircuitBreaker:
    def __init__(self, name: str, failure_threshold: int, cooldown_seconds: int):
        self.name = name
        self._failure_threshold = max(1, failure_threshold)
        self._cooldown_seconds = max(1, cooldown_seconds)
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._cooldown_until = 0.0
        self._last_error: Optional[str] = None
        self._last_failure_ts: Optional[float] = None
        self._last_success_ts: Optional[float] = None

    def is_open(self) -> bool:
        with self._lock:
            return time.time() < self._cooldown_until

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._cooldown_until = 0.0
            self._last_success_ts = time.time()

    def record_failure(self, error: str) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._last_error = error
            self._last_failure_ts = time.time()
            if self._consecutive_failures >= self._failure_threshold:
                self._cooldown_until = time.time() + self._cooldown_seconds

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._cooldown_until = 0.0
            self._last_error = None

    def status(self) -> dict:
        with self._lock:
            return {
                "open": time.time() < self._cooldown_until,
                "consecutive_failures": self._consecutive_failures,
                "cooldown_until_epoch": int(self._cooldown_until) if self._cooldown_until else None,
                "last_error": self._last_error,
                "last_failure_epoch": int(self._last_failure_ts) if self._last_failure_ts else None,
                "last_success_epoch": int(self._last_success_ts) if self._last_success_ts else None,
            }


def new_circuit_breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        failure_threshold=config.PROVIDER_FAILURE_THRESHOLD,
        cooldown_seconds=config.PROVIDER_COOLDOWN_SECONDS,
    )


def build_client(timeout_seconds: float, headers: dict) -> httpx.Client:
    return httpx.Client(
        timeout=httpx.Timeout(timeout_seconds),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        headers=headers,
    )


def _sleep_backoff(attempt: int) -> None:
    base = config.PROVIDER_RETRY_BACKOFF_SECONDS * (2 ** attempt)
    jitter = random.uniform(0, config.PROVIDER_RETRY_JITTER_SECONDS)
    time.sleep(base + jitter)


def post_json(
    client: httpx.Client,
    url: str,
    payload: dict,
    breaker: CircuitBreaker,
    unavailable: type[Exception],
) -> dict:
    """
    POST payload and return the decoded JSON body.

    Transport errors (including timeouts) and retryable statuses are retried
    up to PROVIDER_RETRY_MAX times; anything else, or exhausting the
    retries, records a breaker failure and raises `unavailable`.
    """
    if breaker.is_open():
        raise unavailable(f"{breaker.name}: circuit breaker open")

    for attempt in range(config.PROVIDER_RETRY_MAX + 1):
        try:
            response = client.post(url, json=payload)
        except httpx.RequestError as exc:
            if attempt >= config.PROVIDER_RETRY_MAX:
                breaker.record_failure(type(exc).__name__)
                logger.warning(f"{breaker.name} request failed: {type(exc).__name__}")
                raise unavailable(f"{breaker.name}: request failed ({type(exc).__name__})") from exc
            _sleep_backoff(attempt)
            continue

        if response.status_code in RETRYABLE_STATUS and attempt < config.PROVIDER_RETRY_MAX:
            _sleep_backoff(attempt)
            continue
        if response.status_code >= 400:
            breaker.record_failure(f"status {response.status_code}")
            logger.warning(f"{breaker.name} returned status {response.status_code}")
            raise unavailable(f"{breaker.name}: api error (status {response.status_code})")

        try:
            data = response.json()
        except ValueError as exc:
            breaker.record_failure("invalid json")
            raise unavailable(f"{breaker.name}: response is not JSON") from exc
        breaker.record_success()
        return data

    raise unavailable(f"{breaker.name}: retries exhausted")
