"""Provider availability probes.

Composition renderers get one lightweight authenticated GET each; generative
video, image, speech and text providers are judged on credential presence
alone. Nothing here retries.
"""

from __future__ import annotations

import logging
from contextlib import closing
from datetime import datetime, timezone

import httpx

import config
from pipeline.provider_registry import get_registry, providers_of_kind
from schemas.video import ProviderKind, ProviderSpec, ProviderStatus

logger = logging.getLogger(__name__)

# key -> path probed relative to the provider base URL
_PROBE_PATHS = {
    "shotstack": "probe",
    "bannerbear": "account",
    "creatomate": "templates",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AvailabilityProber:
    def __init__(self, client: httpx.Client | None = None):
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def probe(self, spec: ProviderSpec) -> ProviderStatus:
        if not spec.has_credentials:
            return ProviderStatus(
                key=spec.key,
                name=spec.name,
                kind=spec.kind,
                has_credentials=False,
                available=False,
                checked_at=_now_iso(),
                detail=f"{spec.api_key_env} not set",
            )

        path = _PROBE_PATHS.get(spec.key)
        if path is None:
            return ProviderStatus(
                key=spec.key,
                name=spec.name,
                kind=spec.kind,
                has_credentials=True,
                available=True,
                checked_at=_now_iso(),
                detail="credentials present",
            )

        try:
            response = self._client.get(f"{spec.base_url}/{path}", headers=spec.auth_headers())
            available = response.is_success
            detail = f"HTTP {response.status_code}"
        except httpx.HTTPError as exc:
            available = False
            detail = f"{type(exc).__name__}: {exc}"

        if available:
            logger.info("%s is available", spec.name)
        else:
            logger.warning("%s is not available (%s)", spec.name, detail)
        return ProviderStatus(
            key=spec.key,
            name=spec.name,
            kind=spec.kind,
            has_credentials=True,
            available=available,
            checked_at=_now_iso(),
            detail=detail,
        )

    def probe_all(self, kind: ProviderKind | None = None) -> list[ProviderStatus]:
        specs = providers_of_kind(kind) if kind else list(get_registry().values())
        return [self.probe(spec) for spec in specs]

    def available_keys(self, kind: ProviderKind) -> list[str]:
        return [status.key for status in self.probe_all(kind) if status.available]


def probe_all_providers(client: httpx.Client | None = None) -> list[ProviderStatus]:
    with closing(AvailabilityProber(client)) as prober:
        return prober.probe_all()


# ---------------------------------------------------------------------------
# Composition provider cache: probe once, then consult
# ---------------------------------------------------------------------------
_available_composition: list[str] | None = None


def initialize_video_providers(client: httpx.Client | None = None) -> list[str]:
    """Probe the composition renderers and remember which answered."""
    global _available_composition
    logger.info("Checking cloud video providers...")
    with closing(AvailabilityProber(client)) as prober:
        _available_composition = prober.available_keys("composition")
    if _available_composition:
        logger.info("Available video providers: %s", ", ".join(_available_composition))
    else:
        logger.info("No cloud video providers available. Using local generation.")
    return list(_available_composition)


def ensure_video_providers(client: httpx.Client | None = None) -> list[str]:
    """Probe on first use; later calls return the cached answer."""
    if _available_composition is None:
        return initialize_video_providers(client)
    return list(_available_composition)


def get_available_providers() -> list[str]:
    if _available_composition is None:
        return []
    return list(_available_composition)


def has_available_providers() -> bool:
    return bool(_available_composition)


def reset_availability_cache() -> None:
    global _available_composition
    _available_composition = None


def available_generative_providers() -> list[ProviderSpec]:
    """Generative video specs with credentials, in fallback priority order."""
    if config.FORCE_MOCK_GENERATION:
        return []
    return [spec for spec in providers_of_kind("generative_video") if spec.has_credentials]
