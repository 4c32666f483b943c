import logging
import os
import time
from dataclasses import dataclass
from typing import Any

import httpx

from townsfolk.domain.errors import TownsfolkError


RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})

logger = logging.getLogger(__name__)


class CircuitOpenError(TownsfolkError, RuntimeError):
    pass


def is_truthy(value: str | None, *, default: str) -> bool:
    normalized = str(value if value is not None else default).strip().lower()
    return normalized in {"1", "true", "yes"}


@dataclass(frozen=True)
class CircuitSettings:
    enabled: bool = True
    failure_threshold: int = 3
    reset_seconds: float = 120.0

    @classmethod
    def from_env(cls) -> "CircuitSettings":
        return cls(
            enabled=is_truthy(os.getenv("TOWNSFOLK_HTTP_CIRCUIT_BREAKER_ENABLED"), default="1"),
            failure_threshold=max(1, int(os.getenv("TOWNSFOLK_HTTP_CIRCUIT_FAILURE_THRESHOLD", "3"))),
            reset_seconds=max(0.0, float(os.getenv("TOWNSFOLK_HTTP_CIRCUIT_RESET_SECONDS", "120"))),
        )


@dataclass
class _HostCircuit:
    failures: int = 0
    open_until: float = 0.0

    def check(self, host: str, now: float) -> None:
        if self.open_until > now:
            raise CircuitOpenError(f"Narrative host {host} is unavailable until {int(self.open_until)}")
        if self.open_until:
            # half-open: the cool-down elapsed, give the host a fresh count
            self.failures = 0
            self.open_until = 0.0

    def trip(self, settings: CircuitSettings, now: float) -> bool:
        self.failures += 1
        if self.failures >= settings.failure_threshold:
            self.open_until = now + settings.reset_seconds
            return True
        return False


_CIRCUITS: dict[str, _HostCircuit] = {}


def reset_circuit_breakers() -> None:
    _CIRCUITS.clear()


def _host(client: httpx.Client) -> str:
    return str(getattr(client, "base_url", "") or "unknown")


def _retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))


def _send(client: httpx.Client, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
    response = client.request(method, path, **kwargs)
    if response.status_code in RETRYABLE_STATUS_CODES:
        raise httpx.HTTPStatusError(
            f"Retryable HTTP status: {response.status_code}",
            request=response.request,
            response=response,
        )
    response.raise_for_status()
    payload = response.json()
    return payload if isinstance(payload, dict) else {"results": payload}


def request_json_with_retry(
    client: httpx.Client,
    method: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    json_body: Any = None,
    headers: dict[str, str] | None = None,
    retries: int = 0,
    backoff_seconds: float = 0.2,
) -> dict[str, Any]:
    """Send one JSON request; retry transient failures with exponential backoff.

    Consecutive transient failures against the same base URL open that host's
    circuit, after which calls fail fast with ``CircuitOpenError`` until the
    reset window passes.
    """
    settings = CircuitSettings.from_env()
    host = _host(client)
    attempts = max(0, int(retries)) + 1

    for attempt in range(attempts):
        circuit = _CIRCUITS.get(host) if settings.enabled else None
        if circuit is not None:
            circuit.check(host, time.time())
        try:
            payload = _send(client, method, path, params=params, json=json_body, headers=headers)
        except Exception as exc:
            if not _retryable(exc):
                raise
            if settings.enabled and _CIRCUITS.setdefault(host, _HostCircuit()).trip(settings, time.time()):
                logger.warning("HTTP circuit opened", extra={"host": host, "error": str(exc)})
            if attempt >= attempts - 1:
                raise
            delay = max(0.0, backoff_seconds) * (2 ** attempt)
            logger.debug("Retrying HTTP request", extra={"host": host, "attempt": attempt + 1, "delay": delay})
            if delay > 0:
                time.sleep(delay)
            continue

        if settings.enabled:
            _CIRCUITS.pop(host, None)
        return payload

    return {}


def get_json_with_retry(client: httpx.Client, path: str, **kwargs: Any) -> dict[str, Any]:
    return request_json_with_retry(client, "GET", path, **kwargs)


def post_json_with_retry(client: httpx.Client, path: str, payload: Any, **kwargs: Any) -> dict[str, Any]:
    return request_json_with_retry(client, "POST", path, json_body=payload, **kwargs)
