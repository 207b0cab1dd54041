"""Podcast Ad Orchestrator - Generation providers.

A provider starts one asynchronous generation run for one component of a job.
start() returns as soon as the provider has accepted the request; the result
arrives later through the callback endpoint (or, for the fake provider,
through a direct call into the reconciler).

Variants:
- HttpGenerationProvider: real provider API over HTTP (httpx).
- FakeGenerationProvider: deterministic in-process provider for tests and
  local development.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.config import PROVIDER_FAKE, PROVIDER_HTTP, ProviderConfig
from app.jobs import Component, ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """One component generation request."""

    job_id: str
    component: str
    params: dict[str, Any]
    callback_url: str


@dataclass(frozen=True)
class ProviderAck:
    """Provider acceptance of a generation request."""

    component: str
    provider_request_id: str | None = None


class GenerationProvider(ABC):
    """Starts asynchronous generation runs."""

    @abstractmethod
    def start(self, request: GenerationRequest) -> ProviderAck:
        """Start a generation run. Raises on synchronous rejection."""

    def close(self) -> None:
        """Release provider resources."""


# --- HTTP Provider ---


# Provider API route per component
COMPONENT_ROUTES = {
    Component.MUSIC.value: "v1/music/generations",
    Component.VOICE_OVER.value: "v1/voice-over/generations",
}


def build_music_payload(params: dict[str, Any]) -> dict[str, Any]:
    """Map music input parameters to the provider payload."""
    prompt = params.get("prompt") or {}
    tags = ", ".join(
        part for part in (prompt.get("genres"), prompt.get("moods"), prompt.get("themes")) if part
    )
    return {
        "music_prompt": prompt.get("description") or tags,
        "genres": prompt.get("genres", ""),
        "moods": prompt.get("moods", ""),
        "themes": prompt.get("themes", ""),
        "length": prompt.get("length", 0),
        "duration_in_seconds": params.get("durationInSeconds", 1),
    }


def build_voice_over_payload(params: dict[str, Any]) -> dict[str, Any]:
    """Map voice-over input parameters to the provider payload."""
    prompt = params.get("prompt") or {}
    return {
        "voice": prompt.get("voice", ""),
        "input": prompt.get("input", ""),
        "duration_in_seconds": params.get("durationInSeconds", 1),
    }


PAYLOAD_BUILDERS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    Component.MUSIC.value: build_music_payload,
    Component.VOICE_OVER.value: build_voice_over_payload,
}


class HttpGenerationProvider(GenerationProvider):
    """Provider API client.

    Each request is a POST to {provider_base_url}/{route} with a bearer token
    and a webhook_url the provider calls when the run finishes.
    """

    def __init__(self, config: ProviderConfig, client: httpx.Client | None = None):
        if not config.provider_base_url or not config.api_key:
            raise ConfigError("HTTP provider requires provider_base_url and api_key")
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.request_timeout_sec)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, component: str) -> str:
        try:
            route = COMPONENT_ROUTES[component]
        except KeyError:
            raise ValueError(f"No provider route for component '{component}'") from None
        return f"{self.config.provider_base_url.rstrip('/')}/{route}"

    def start(self, request: GenerationRequest) -> ProviderAck:
        url = self._url(request.component)
        payload = PAYLOAD_BUILDERS[request.component](request.params)
        payload["webhook_url"] = request.callback_url
        payload["metadata"] = {"job_id": request.job_id, "component": request.component}

        logger.info(
            "Starting provider run: job_id=%s, component=%s, url=%s",
            request.job_id,
            request.component,
            url,
        )
        response = self._client.post(url, headers=self._headers(), json=payload)
        response.raise_for_status()

        try:
            body = response.json()
        except ValueError:
            body = {}
        run_id = body.get("id") if isinstance(body, dict) else None
        return ProviderAck(component=request.component, provider_request_id=run_id)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


# --- Fake Provider ---


# deliver(job_id, component, callback_body) -> anything
DeliverFn = Callable[[str, str, dict[str, Any]], Any]

DEFAULT_FAKE_URLS = {
    Component.MUSIC.value: "https://media.example.com/fake/music.mp3",
    Component.VOICE_OVER.value: "https://media.example.com/fake/voice-over.m4a",
}


@dataclass
class FakeGenerationProvider(GenerationProvider):
    """Deterministic provider that never touches the network.

    Attributes:
        deliver: Called with (job_id, component, callback_body) when a run
            finishes. Normally bound to the callback reconciler.
        urls: Media URL reported per component on success.
        reject: Components whose start() raises, simulating a provider that
            refuses the request.
        auto_complete: If True, every accepted run is completed immediately.
        requests: Every accepted request, in order.
    """

    deliver: DeliverFn | None = None
    urls: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FAKE_URLS))
    reject: Iterable[str] = ()
    auto_complete: bool = False
    requests: list[GenerationRequest] = field(default_factory=list)

    def start(self, request: GenerationRequest) -> ProviderAck:
        if request.component in set(self.reject):
            raise RuntimeError(f"fake provider rejected component '{request.component}'")

        run_id = f"fake-{uuid.uuid4().hex[:12]}"
        self.requests.append(request)
        logger.debug(
            "Fake provider accepted: job_id=%s, component=%s", request.job_id, request.component
        )

        if self.auto_complete:
            self.complete(request.job_id, request.component, run_id=run_id)
        return ProviderAck(component=request.component, provider_request_id=run_id)

    def complete(
        self, job_id: str, component: str, url: str | None = None, run_id: str | None = None
    ) -> Any:
        """Deliver a success callback for one component."""
        body = {
            "id": run_id,
            "status": "completed",
            "output": {"jobId": job_id, "url": url or self.urls.get(component, "")},
        }
        return self._deliver(job_id, component, body)

    def fail(self, job_id: str, component: str, error: str = "generation failed") -> Any:
        """Deliver a failure callback for one component."""
        body = {"status": "failed", "error": error}
        return self._deliver(job_id, component, body)

    def _deliver(self, job_id: str, component: str, body: dict[str, Any]) -> Any:
        if self.deliver is None:
            raise RuntimeError("FakeGenerationProvider has no deliver callback")
        return self.deliver(job_id, component, body)


def build_provider(config: ProviderConfig, deliver: DeliverFn | None = None) -> GenerationProvider:
    """Create the provider variant selected by config.provider.

    Args:
        config: Provider configuration.
        deliver: Callback sink for the fake provider (ignored for HTTP).

    Raises:
        ConfigError: If the variant is unknown or misconfigured.
    """
    if config.provider == PROVIDER_HTTP:
        return HttpGenerationProvider(config)
    if config.provider == PROVIDER_FAKE:
        return FakeGenerationProvider(deliver=deliver, auto_complete=True)
    raise ConfigError(f"Unknown provider '{config.provider}'")
