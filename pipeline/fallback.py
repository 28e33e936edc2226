"""Fallback chains for video acquisition.

Generative video: Luma -> RunwayML -> Kling -> AI/ML API -> enhanced mock.
Composition: cloud renderers (Shotstack -> Bannerbear -> Creatomate) ->
local slideshow -> composition metadata with a stock video.

Providers are tried strictly one after another. A failing provider is logged
and skipped; only the final local step can surface an error to the caller.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import closing
from pathlib import Path
from typing import Any, Callable
from urllib.parse import quote

import httpx

from pipeline import availability
from pipeline.composition import (
    STOCK_VIDEO_URLS,
    compose_video_metadata_only,
    create_subtitle_segments,
    select_images_for_video,
    split_script_into_segments,
    split_text_for_subtitles,
    write_local_slideshow,
)
from pipeline.errors import AllProvidersFailed, VideoCompositionError
from pipeline.provider_registry import providers_of_kind
from pipeline.tts import generate_speech_from_text
from pipeline.video_providers import build_composition_renderer, build_video_generator
from schemas.story import Character, CharacterPhoto
from schemas.video import (
    PLACEHOLDER_THUMBNAIL_URL,
    AIVideoRequest,
    AIVideoResult,
    CompositionRequest,
    CompositionResult,
    ProviderSpec,
    SubtitleSegment,
    VideoCompositionOptions,
)

logger = logging.getLogger(__name__)

ENHANCED_MOCK_PROVIDER = "Enhanced Mock"
ENHANCED_MOCK_DURATION = 30
ENHANCED_MOCK_URLS = STOCK_VIDEO_URLS[:4]

VARIATION_STYLES = ["cinematic", "dramatic", "artistic", "realistic", "stylized"]

DEMO_VIDEO_BY_THEME = {
    "Educational": STOCK_VIDEO_URLS[0],
    "Entertainment": STOCK_VIDEO_URLS[1],
    "Marketing": STOCK_VIDEO_URLS[2],
    "Social Media": STOCK_VIDEO_URLS[3],
    "Business": STOCK_VIDEO_URLS[4],
    "Tutorial": "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/TearsOfSteel.mp4",
}


# ---------------------------------------------------------------------------
# Generative video
# ---------------------------------------------------------------------------

def create_enhanced_video_prompt(script: str, characters: list[Character], theme: str) -> str:
    prompt = f"Create a {theme} style video: {script[:200]}"
    if characters:
        main = characters[0]
        prompt += f". Features {main.name}, {main.description}"
    prompt += f". Cinematic quality, professional lighting, smooth camera movements, {theme} atmosphere."
    return prompt


def generate_enhanced_mock_video(
    script: str,
    photos: list[CharacterPhoto],
    theme: str,
    offset: int = 0,
) -> AIVideoResult:
    """Deterministic stand-in clip: stock video picked from script and theme length."""
    index = (len(script) + len(theme) + offset) % len(ENHANCED_MOCK_URLS)
    thumbnail = (photos[0].photo_url if photos else "") or PLACEHOLDER_THUMBNAIL_URL
    return AIVideoResult(
        video_url=ENHANCED_MOCK_URLS[index],
        thumbnail_url=thumbnail,
        duration=ENHANCED_MOCK_DURATION,
        provider=ENHANCED_MOCK_PROVIDER,
        status="completed",
    )


def _generate_with_chain(
    request: AIVideoRequest,
    providers: list[ProviderSpec],
    client: httpx.Client | None,
    sleep: Callable[[float], None],
) -> AIVideoResult:
    errors: dict[str, str] = {}
    for spec in providers:
        logger.info("Using provider: %s", spec.name)
        try:
            with closing(build_video_generator(spec, client, sleep=sleep)) as generator:
                result = generator.generate(request)
        except Exception as exc:
            logger.warning("%s video generation failed: %s", spec.name, exc)
            errors[spec.name] = str(exc)
            continue
        logger.info("AI video generation completed with %s", spec.name)
        return result
    if not providers:
        raise AllProvidersFailed("No AI video generation providers available")
    raise AllProvidersFailed("All AI video generation providers failed", errors)


def generate_ai_video(
    script: str,
    characters: list[Character],
    photos: list[CharacterPhoto],
    theme: str,
    options: dict[str, Any] | None = None,
    *,
    allow_mock: bool = True,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AIVideoResult:
    """One clip for the whole script, from the first generative provider that delivers.

    With `allow_mock=False` exhaustion raises `AllProvidersFailed` instead of
    returning the enhanced mock.
    """
    options = options or {}
    logger.info(
        "Starting AI video generation: script=%d chars, characters=%d, photos=%d, theme=%s",
        len(script), len(characters), len(photos), theme,
    )
    prompt = create_enhanced_video_prompt(script, characters, theme)
    logger.info("Generated prompt: %s...", prompt[:100])
    request = AIVideoRequest(
        prompt=prompt,
        character_image_url=(photos[0].photo_url if photos else None) or None,
        duration=options.get("duration") or 5,
        aspect_ratio=options.get("aspect_ratio") or "9:16",
        style=options.get("style") or "cinematic",
        theme=theme,
    )
    try:
        return _generate_with_chain(request, availability.available_generative_providers(), client, sleep)
    except AllProvidersFailed as exc:
        if not allow_mock:
            raise
        logger.warning("AI video generation failed, using enhanced mock: %s", exc)
        return generate_enhanced_mock_video(script, photos, theme)


def generate_mock_video_options(
    text: str,
    photos: list[CharacterPhoto],
    theme: str,
    count: int,
) -> list[AIVideoResult]:
    return [generate_enhanced_mock_video(text, photos, theme, offset=i) for i in range(count)]


def generate_segment_video_options(
    segment_text: str,
    characters: list[Character],
    photos: list[CharacterPhoto],
    theme: str,
    count: int = 3,
    *,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[AIVideoResult]:
    """`count` stylistic variations, assigning providers round-robin."""
    logger.info("Generating %d AI video options for segment", count)
    providers = availability.available_generative_providers()
    results: list[AIVideoResult] = []
    if providers:
        for i in range(count):
            spec = providers[i % len(providers)]
            style = VARIATION_STYLES[i % len(VARIATION_STYLES)]
            photo = photos[i % len(photos)] if photos else None
            request = AIVideoRequest(
                prompt=f"{style} {theme} video: {segment_text}. Professional quality, smooth motion.",
                character_image_url=(photo.photo_url if photo else None) or None,
                duration=5,
                aspect_ratio="9:16",
                style=style,
                theme=theme,
            )
            try:
                with closing(build_video_generator(spec, client, sleep=sleep)) as generator:
                    results.append(generator.generate(request))
            except Exception as exc:
                logger.warning("Variation %d with %s failed: %s", i + 1, spec.name, exc)

    if not results:
        logger.warning("No video options generated; using enhanced mock videos")
        return generate_mock_video_options(segment_text, photos, theme, count)
    logger.info("Generated %d video options", len(results))
    return results


def get_provider_status(client: httpx.Client | None = None) -> dict[str, bool]:
    """Generative provider display name -> usable."""
    with closing(availability.AvailabilityProber(client)) as prober:
        statuses = prober.probe_all("generative_video")
    return {status.name: status.available for status in statuses}


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def generate_video_with_cloud_api(
    request: CompositionRequest,
    *,
    available: list[str] | None = None,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CompositionResult:
    logger.info("Starting cloud video generation...")
    if available is None:
        available = availability.get_available_providers()
    errors: dict[str, str] = {}
    for spec in providers_of_kind("composition"):
        if spec.key not in available:
            logger.info("Skipping %s - not available", spec.name)
            continue
        logger.info("Attempting video generation with %s...", spec.name)
        try:
            with closing(build_composition_renderer(spec, client, sleep=sleep)) as renderer:
                return renderer.render(request)
        except Exception as exc:
            logger.error("%s video generation failed: %s", spec.name, exc)
            errors[spec.name] = str(exc)
    raise AllProvidersFailed("All cloud video providers failed", errors)


def compose_video_with_fallback(
    request: CompositionRequest,
    *,
    output_dir: Path | None = None,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CompositionResult:
    """Cloud render, then local slideshow, then composition metadata."""
    available = availability.ensure_video_providers(client)
    if available:
        logger.info("Using cloud video providers: %s", ", ".join(available))
        try:
            return generate_video_with_cloud_api(request, available=available, client=client, sleep=sleep)
        except AllProvidersFailed as exc:
            logger.warning("Cloud composition failed: %s", exc)

    if request.character_images:
        logger.info("Using local slideshow generation with %d character images", len(request.character_images))
        try:
            return write_local_slideshow(request, output_dir)
        except OSError as exc:
            logger.warning("Local slideshow failed: %s", exc)

    logger.info("Using composition metadata with a stock video")
    return compose_video_metadata_only(request, output_dir)


def create_video_from_script(
    script: str,
    characters: list[Character],
    photos: list[CharacterPhoto],
    theme: str,
    options: VideoCompositionOptions | None = None,
    *,
    output_dir: Path | None = None,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CompositionResult:
    """Whole-script video: generative provider first, composition chain second."""
    opts = options or VideoCompositionOptions()

    try:
        logger.info("Attempting AI video generation...")
        ai_video = generate_ai_video(
            script,
            characters,
            photos,
            theme,
            {
                "duration": min(10, max(5, len(script) / 20)),
                "aspect_ratio": "9:16",
                "style": "cinematic",
            },
            allow_mock=False,
            client=client,
            sleep=sleep,
        )
        voiceover = generate_speech_from_text(script, opts.voice_options, output_dir)
        subtitles = create_subtitle_segments(split_script_into_segments(script), voiceover.duration)
        logger.info("AI video generation successful with %s", ai_video.provider)
        return CompositionResult(
            video_url=ai_video.video_url,
            thumbnail_url=ai_video.thumbnail_url,
            duration=ai_video.duration,
            subtitles=subtitles,
            provider=ai_video.provider,
        )
    except Exception as exc:
        logger.warning("AI video generation unavailable, using composition: %s", exc)

    try:
        segments = split_script_into_segments(script)
        logger.info("Script split into %d segments", len(segments))
        voiceover = generate_speech_from_text(script, opts.voice_options, output_dir)
        request = CompositionRequest(
            segments=segments,
            voiceover_url=voiceover.audio_uri,
            character_images=select_images_for_video(photos, len(segments)),
            subtitles=create_subtitle_segments(segments, voiceover.duration),
            options=opts,
            theme=theme,
        )
        return compose_video_with_fallback(request, output_dir=output_dir, client=client, sleep=sleep)
    except Exception as exc:
        logger.error("Video composition error: %s", exc)
        raise VideoCompositionError(f"Failed to create video: {exc}") from exc


# ---------------------------------------------------------------------------
# Demo video (offline stand-in)
# ---------------------------------------------------------------------------

def _subtitles_from_sentences(script: str) -> list[SubtitleSegment]:
    subtitles: list[SubtitleSegment] = []
    current = 0.0
    for sentence in (s.strip() for s in re.split(r"[.!?]+", script or "")):
        if not sentence:
            continue
        duration = max(len(sentence.split(" ")) / 150 * 60, 2)
        lines = split_text_for_subtitles(sentence, max_chars=50) or [sentence]
        share = duration / len(lines)
        for line in lines:
            subtitles.append(SubtitleSegment(start_time=current, end_time=current + share, text=line))
            current += share
    return subtitles


def generate_demo_video(script: str, theme: str, character_image_urls: list[str]) -> CompositionResult:
    """Offline demo: stock video by theme, sentence subtitles, at least 10 seconds."""
    logger.info("Generating demo video...")
    word_count = len(str(script or "").split(" "))
    return CompositionResult(
        video_url=DEMO_VIDEO_BY_THEME.get(theme, DEMO_VIDEO_BY_THEME["Educational"]),
        thumbnail_url=(
            character_image_urls[0]
            if character_image_urls
            else f"https://via.placeholder.com/1080x1920/6200ee/ffffff?text={quote(theme, safe='')}"
        ),
        duration=max(word_count / 150 * 60, 10),
        subtitles=_subtitles_from_sentences(script),
        provider="Demo",
    )


def create_sample_script() -> str:
    return (
        "Welcome to our amazing story! This is where our adventure begins.\n"
        "Our characters are about to embark on an incredible journey that will change their lives forever.\n"
        "Through challenges and triumphs, they will discover the true meaning of friendship and courage.\n"
        "Join us as we explore this fascinating world filled with wonder and excitement.\n"
        "The story unfolds with each passing moment, revealing new mysteries and surprises.\n"
        "Don't miss a single second of this captivating tale that will keep you on the edge of your seat!"
    )


def create_sample_character_images() -> list[str]:
    return [
        "https://via.placeholder.com/512x512/6200ee/ffffff?text=Hero",
        "https://via.placeholder.com/512x512/ff6200/ffffff?text=Sidekick",
        "https://via.placeholder.com/512x512/00b4d8/ffffff?text=Mentor",
    ]
