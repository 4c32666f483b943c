from __future__ import annotations

from dataclasses import asdict

import httpx

from townsfolk.application.dtos import NarrativeRequest, NarrativeResponse
from townsfolk.application.services.narrative_collaborator import NarrativeCollaborator, response_from_payload
from townsfolk.domain.errors import NarrativeServiceError
from townsfolk.infrastructure.resilient_http import CircuitOpenError, post_json_with_retry


class HttpNarrativeCollaborator(NarrativeCollaborator):
    GENERATE_PATH = "/narrative"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retries: int = 1,
        backoff_seconds: float = 0.2,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._retries = retries
        self._backoff_seconds = backoff_seconds
        self.client = http_client or httpx.Client(base_url=base_url, timeout=timeout)

    def generate(self, request: NarrativeRequest) -> NarrativeResponse:
        try:
            payload = post_json_with_retry(
                self.client,
                self.GENERATE_PATH,
                asdict(request),
                headers={"Accept": "application/json"},
                retries=self._retries,
                backoff_seconds=self._backoff_seconds,
            )
        except (httpx.HTTPError, CircuitOpenError, ValueError) as exc:
            raise NarrativeServiceError(f"Narrative generation failed: {exc}") from exc
        return response_from_payload(payload)

    def close(self) -> None:
        self.client.close()
