"""Static registry of the external providers Animato knows how to call.

Order inside each kind is the fallback priority. Specs are rebuilt from
`config` on every call so environment changes (and test patches) apply
without a restart.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

import config
from schemas.video import ProviderKind, ProviderSpec

logger = logging.getLogger(__name__)


def is_usable_api_key(value: str | None) -> bool:
    """True when `value` looks like a real credential (not blank or a placeholder)."""
    key = str(value or "").strip()
    if not key:
        return False
    return key.lower() not in config.PLACEHOLDER_API_KEYS


def _spec(**fields) -> ProviderSpec:
    api_key = str(fields.get("api_key") or "").strip()
    fields["api_key"] = api_key
    return ProviderSpec(has_credentials=is_usable_api_key(api_key), **fields)


def get_registry() -> "OrderedDict[str, ProviderSpec]":
    specs = [
        # --- composition (timeline renderers) ---
        _spec(
            key="shotstack",
            name="Shotstack",
            kind="composition",
            base_url=config.SHOTSTACK_BASE_URL.rstrip("/"),
            api_key_env="SHOTSTACK_API_KEY",
            api_key=config.SHOTSTACK_API_KEY,
            auth_scheme="x-api-key",
        ),
        _spec(
            key="bannerbear",
            name="Bannerbear",
            kind="composition",
            base_url=config.BANNERBEAR_BASE_URL.rstrip("/"),
            api_key_env="BANNERBEAR_API_KEY",
            api_key=config.BANNERBEAR_API_KEY,
        ),
        _spec(
            key="creatomate",
            name="Creatomate",
            kind="composition",
            base_url=config.CREATOMATE_BASE_URL.rstrip("/"),
            api_key_env="CREATOMATE_API_KEY",
            api_key=config.CREATOMATE_API_KEY,
        ),
        # --- generative video ---
        _spec(
            key="luma",
            name="Luma Dream Machine",
            kind="generative_video",
            base_url=config.LUMA_BASE_URL.rstrip("/"),
            api_key_env="LUMA_API_KEY",
            api_key=config.LUMA_API_KEY,
            models=["text-to-video", "image-to-video"],
            supports_image_to_video=True,
            supports_text_to_video=True,
            max_duration_seconds=5,
        ),
        _spec(
            key="runway",
            name="RunwayML",
            kind="generative_video",
            base_url=config.RUNWAY_BASE_URL.rstrip("/"),
            api_key_env="RUNWAY_API_KEY",
            api_key=config.RUNWAY_API_KEY,
            models=["gen3a_turbo", "gen4_turbo"],
            supports_image_to_video=True,
            supports_text_to_video=True,
            max_duration_seconds=10,
        ),
        _spec(
            key="kling",
            name="Kling AI",
            kind="generative_video",
            base_url=config.KLING_BASE_URL.rstrip("/"),
            api_key_env="KLING_API_KEY",
            api_key=config.KLING_API_KEY,
            models=["v1.6-pro", "v2-master"],
            supports_image_to_video=True,
            supports_text_to_video=True,
            max_duration_seconds=10,
        ),
        _spec(
            key="aiml",
            name="AI/ML API",
            kind="generative_video",
            base_url=config.AIML_BASE_URL.rstrip("/"),
            api_key_env="AIML_API_KEY",
            api_key=config.AIML_API_KEY,
            models=["runway/gen3a_turbo", "luma/dream-machine", "kling/v1.6-pro"],
            supports_image_to_video=True,
            supports_text_to_video=True,
            max_duration_seconds=10,
        ),
        # --- images / speech / text ---
        _spec(
            key="huggingface",
            name="Hugging Face Stable Diffusion",
            kind="image",
            base_url=config.HUGGINGFACE_MODEL_URL,
            api_key_env="HUGGINGFACE_API_KEY",
            api_key=config.HUGGINGFACE_API_KEY,
        ),
        _spec(
            key="openai_tts",
            name="OpenAI TTS",
            kind="speech",
            base_url="https://api.openai.com/v1",
            api_key_env="OPENAI_API_KEY",
            api_key=config.OPENAI_API_KEY,
            models=[config.OPENAI_TTS_MODEL],
        ),
        _spec(
            key="gemini",
            name="Google Gemini",
            kind="text",
            base_url="https://generativelanguage.googleapis.com",
            api_key_env="GOOGLE_API_KEY",
            api_key=config.GOOGLE_API_KEY,
            models=[config.GOOGLE_TEXT_MODEL],
        ),
        _spec(
            key="openai",
            name="OpenAI",
            kind="text",
            base_url="https://api.openai.com/v1",
            api_key_env="OPENAI_API_KEY",
            api_key=config.OPENAI_API_KEY,
            models=[config.OPENAI_TEXT_MODEL],
        ),
    ]
    return OrderedDict((spec.key, spec) for spec in specs)


def get_provider(key: str) -> ProviderSpec:
    registry = get_registry()
    if key not in registry:
        raise KeyError(f"Unknown provider: '{key}'. Available: {list(registry.keys())}")
    return registry[key]


def providers_of_kind(kind: ProviderKind) -> list[ProviderSpec]:
    """Specs of one kind, in fallback priority order."""
    return [spec for spec in get_registry().values() if spec.kind == kind]


def credential_report() -> dict[str, bool]:
    """Provider display name -> credential present. Never touches the network."""
    return {spec.name: spec.has_credentials for spec in get_registry().values()}


def available_models() -> dict[str, list[str]]:
    """Provider display name -> model identifiers for generative video providers."""
    return {spec.name: list(spec.models) for spec in providers_of_kind("generative_video")}
