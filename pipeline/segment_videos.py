"""Per-segment video options and the final compile of selected clips."""

from __future__ import annotations

import logging
import re
import time
from contextlib import closing
from pathlib import Path
from typing import Callable

import httpx

from pipeline import availability
from pipeline.composition import STOCK_VIDEO_URLS, theme_hash, write_composition_metadata
from pipeline.fallback import ENHANCED_MOCK_DURATION, ENHANCED_MOCK_PROVIDER, generate_segment_video_options
from pipeline.provider_registry import providers_of_kind
from pipeline.video_providers import build_composition_renderer
from schemas.story import Character, CharacterPhoto, ScriptSegment
from schemas.video import (
    PLACEHOLDER_THUMBNAIL_URL,
    CompositionRequest,
    CompositionResult,
    VideoOption,
    VideoSegment,
)

logger = logging.getLogger(__name__)

OPTIONS_PER_SEGMENT = 3
PLACEHOLDER_FINAL_VIDEO_URL = "https://storage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"

# Renderers that accept a timeline of video clips; Bannerbear only fills templates.
CLIP_RENDERERS = ("shotstack", "creatomate")


def _alnum(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "", str(value or ""))


def generate_fallback_segment_options(
    segment: ScriptSegment,
    photos: list[CharacterPhoto],
    theme: str,
    count: int = OPTIONS_PER_SEGMENT,
) -> list[VideoOption]:
    """Stock clips keyed off the characters, used when no provider produced anything."""
    base = len(photos) + theme_hash(theme)
    options: list[VideoOption] = []
    for i in range(count):
        photo = photos[i % len(photos)] if photos else None
        options.append(
            VideoOption(
                id=f"{segment.id}-video-{i}",
                url=STOCK_VIDEO_URLS[abs(base + i) % len(STOCK_VIDEO_URLS)],
                selected=i == 0,
                thumbnail_url=(photo.photo_url if photo else None)
                or f"https://picsum.photos/seed/{_alnum(segment.id)}-video-{i}/400/225",
                provider=ENHANCED_MOCK_PROVIDER,
                duration=ENHANCED_MOCK_DURATION,
            )
        )
    return options


def placeholder_segment_options(segment_id: str, count: int = OPTIONS_PER_SEGMENT) -> list[VideoOption]:
    return [
        VideoOption(
            id=f"{segment_id}-video-{i}",
            url=PLACEHOLDER_FINAL_VIDEO_URL,
            selected=i == 0,
            thumbnail_url=f"https://picsum.photos/seed/fallback{_alnum(segment_id)}{i}/400/225",
        )
        for i in range(count)
    ]


def generate_segment_video(
    segment: ScriptSegment,
    characters: list[Character],
    photos: list[CharacterPhoto],
    theme: str,
    *,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[VideoOption]:
    """Three selectable clips for one segment; the first starts selected."""
    logger.info("Generating videos for segment %s (%s)", segment.id, segment.title)
    text = f"{segment.title}: {segment.content}" if segment.content else segment.title
    # Provider failures already become mock options downstream; this catches
    # errors raised before any provider is tried, such as a broken registry.
    try:
        results = generate_segment_video_options(
            text, characters, photos, theme, OPTIONS_PER_SEGMENT, client=client, sleep=sleep
        )
    except Exception as exc:
        logger.warning("Segment %s generation failed, using character-based clips: %s", segment.id, exc)
        return generate_fallback_segment_options(segment, photos, theme)

    return [
        VideoOption(
            id=f"{segment.id}-ai-video-{i}",
            url=result.video_url,
            selected=i == 0,
            thumbnail_url=result.thumbnail_url,
            provider=result.provider,
            duration=result.duration,
        )
        for i, result in enumerate(results)
    ]


def generate_all_segment_videos(
    segments: list[ScriptSegment],
    characters: list[Character],
    photos: list[CharacterPhoto],
    theme: str,
    *,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, list[VideoOption]]:
    videos: dict[str, list[VideoOption]] = {}
    for segment in segments:
        try:
            videos[segment.id] = generate_segment_video(
                segment, characters, photos, theme, client=client, sleep=sleep
            )
        except Exception as exc:
            logger.error("Error generating videos for segment %s: %s", segment.id, exc)
            videos[segment.id] = placeholder_segment_options(segment.id)
    return videos


def selected_clips(segment_videos: dict[str, list[VideoOption]]) -> list[tuple[str, VideoOption]]:
    """(segment id, chosen option) in segment order; unselected segments use their first option."""
    clips = []
    for segment_id, options in segment_videos.items():
        if not options:
            continue
        chosen = next((o for o in options if o.selected), options[0])
        clips.append((segment_id, chosen))
    return clips


def build_compile_request(segment_videos: dict[str, list[VideoOption]], theme: str = "") -> CompositionRequest:
    clips = selected_clips(segment_videos)
    return CompositionRequest(
        segments=[
            VideoSegment(id=segment_id, text="", duration=option.duration or 5.0)
            for segment_id, option in clips
        ],
        video_clips=[option.url for _, option in clips],
        character_images=[option.thumbnail_url for _, option in clips if option.thumbnail_url],
        theme=theme,
    )


def combine_videos(
    segment_videos: dict[str, list[VideoOption]],
    theme: str = "",
    *,
    output_dir: Path | None = None,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CompositionResult:
    """Join the selected segment clips into the final video."""
    request = build_compile_request(segment_videos, theme)
    if not request.video_clips:
        raise ValueError("No segment videos selected to combine")
    logger.info("Combining %d segment videos", len(request.video_clips))

    available = availability.ensure_video_providers(client)
    errors: dict[str, str] = {}
    for spec in providers_of_kind("composition"):
        if spec.key not in CLIP_RENDERERS or spec.key not in available:
            continue
        try:
            with closing(build_composition_renderer(spec, client, sleep=sleep)) as renderer:
                return renderer.render(request)
        except Exception as exc:
            logger.error("%s compile failed: %s", spec.name, exc)
            errors[spec.name] = str(exc)
    if errors:
        logger.warning("All cloud compile attempts failed, writing composition metadata: %s", errors)

    path, composition = write_composition_metadata(request, output_dir)
    return CompositionResult(
        video_url=PLACEHOLDER_FINAL_VIDEO_URL,
        thumbnail_url=request.character_images[0] if request.character_images else PLACEHOLDER_THUMBNAIL_URL,
        duration=composition["metadata"]["duration"],
        provider="Composition Metadata",
        composition_path=str(path),
    )
