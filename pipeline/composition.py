"""Timeline helpers and the local composition writers.

Nothing in this module calls the network. The writers are the last stops of
the composition fallback chain: a character slideshow (JSON + HTML) and the
bare composition metadata file, both paired with a stock video URL so the
caller always gets something playable.
"""

from __future__ import annotations

import html
import json
import logging
import re
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Any

import config
from schemas.story import CharacterPhoto
from schemas.video import (
    PLACEHOLDER_THUMBNAIL_URL,
    CompositionRequest,
    CompositionResult,
    SubtitleSegment,
    VideoSegment,
)

logger = logging.getLogger(__name__)

_GTV_BASE = "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample"

STOCK_VIDEO_URLS = [
    f"{_GTV_BASE}/BigBuckBunny.mp4",
    f"{_GTV_BASE}/ElephantsDream.mp4",
    f"{_GTV_BASE}/ForBiggerBlazes.mp4",
    f"{_GTV_BASE}/WeAreGoingOnBullrun.mp4",
    f"{_GTV_BASE}/SubaruOutbackOnStreetAndDirt.mp4",
]

WORDS_PER_MINUTE = 150
MIN_SEGMENT_SECONDS = 2.0
MAX_SEGMENT_CHARS = 150
MAX_SUBTITLE_CHARS = 40

SLIDESHOW_OPTIONS = {
    "backgroundColor": "#000000",
    "transitionDuration": 0.5,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _videos_dir(output_dir: Path | None) -> Path:
    path = (output_dir or config.OUTPUT_DIR) / "videos"
    path.mkdir(parents=True, exist_ok=True)
    return path


# ---------------------------------------------------------------------------
# Timeline helpers
# ---------------------------------------------------------------------------

def calculate_segment_duration(text: str) -> float:
    word_count = len(str(text or "").split(" "))
    return max(word_count / WORDS_PER_MINUTE * 60, MIN_SEGMENT_SECONDS)


def split_script_into_segments(script: str) -> list[VideoSegment]:
    """Group sentences into segments of roughly 150 characters."""
    sentences = [s.strip() for s in re.split(r"[.!?]+", script or "") if s.strip()]
    segments: list[VideoSegment] = []
    current = ""
    for index, sentence in enumerate(sentences):
        current = f"{current}. {sentence}" if current else sentence
        if len(current) > MAX_SEGMENT_CHARS or index == len(sentences) - 1:
            segments.append(
                VideoSegment(
                    id=f"segment_{len(segments)}",
                    text=f"{current}.",
                    duration=calculate_segment_duration(current),
                )
            )
            current = ""
    return segments


def split_text_for_subtitles(text: str, max_chars: int = MAX_SUBTITLE_CHARS) -> list[str]:
    lines: list[str] = []
    current = ""
    for word in str(text or "").split(" "):
        if len(f"{current} {word}") <= max_chars:
            current = f"{current} {word}" if current else word
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def create_subtitle_segments(segments: list[VideoSegment], total_duration: float) -> list[SubtitleSegment]:
    """Stretch segment timings over `total_duration` and split them into caption lines.

    Cues never overlap; the last cue is extended so captions cover the whole
    voiceover.
    """
    subtitles: list[SubtitleSegment] = []
    segment_total = sum(seg.duration for seg in segments)
    if not segments or segment_total <= 0:
        return subtitles
    ratio = total_duration / segment_total

    current_time = 0.0
    for segment in segments:
        adjusted = segment.duration * ratio
        end_time = current_time + adjusted
        lines = split_text_for_subtitles(segment.text)
        if lines:
            share = adjusted / len(lines)
            for i, line in enumerate(lines):
                start = current_time + i * share
                subtitles.append(
                    SubtitleSegment(start_time=start, end_time=min(start + share, end_time), text=line)
                )
        current_time = end_time

    if subtitles and current_time < total_duration:
        subtitles[-1].end_time = total_duration
    logger.info("Created %d subtitle segments spanning %.1f seconds", len(subtitles), total_duration)
    return subtitles


def character_placeholder_url(index: int) -> str:
    return f"https://via.placeholder.com/1080x1920/6200ee/ffffff?text=Character+{index + 1}"


def select_images_for_video(photos: list[CharacterPhoto], count: int) -> list[str]:
    """One image per segment, cycling through the character photos."""
    if not photos:
        return [character_placeholder_url(i) for i in range(count)]
    images = []
    for i in range(count):
        photo_index = i % len(photos)
        images.append(photos[photo_index].photo_url or character_placeholder_url(photo_index))
    return images


def select_stock_video(theme: str, character_count: int) -> str:
    return STOCK_VIDEO_URLS[(len(theme or "") + character_count) % len(STOCK_VIDEO_URLS)]


def theme_hash(theme: str) -> int:
    """32-bit signed rolling hash (h * 31 + code point) used to vary stock picks."""
    value = 0
    for ch in str(theme or ""):
        value = ((value << 5) - value + ord(ch)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def build_composition_document(request: CompositionRequest) -> dict[str, Any]:
    opts = request.options
    style = opts.subtitle_style
    return {
        "metadata": {
            "width": opts.resolution.width,
            "height": opts.resolution.height,
            "fps": opts.fps,
            "duration": request.total_duration(),
            "theme": request.theme,
            "created": datetime.now().isoformat(),
            "characterImages": list(request.character_images),
            "videoClips": list(request.video_clips),
            "hasRealCharacters": bool(request.character_images),
        },
        "timeline": {
            "tracks": [
                {
                    "type": "video",
                    "clips": [
                        {
                            "asset": image_url,
                            "start": request.clip_start(index),
                            "length": request.clip_length(index),
                            "effect": {"type": "kenBurns", "zoom": "in"},
                            "characterIndex": index,
                        }
                        for index, image_url in enumerate(request.character_images)
                    ],
                },
                {
                    "type": "audio",
                    "clips": [
                        {
                            "asset": request.voiceover_url,
                            "start": 0,
                            "volume": opts.voice_options.volume or 1.0,
                        }
                    ],
                },
                {
                    "type": "subtitle",
                    "clips": [
                        {
                            "text": cue.text,
                            "start": cue.start_time,
                            "length": cue.end_time - cue.start_time,
                            "style": {
                                "fontSize": style.font_size,
                                "color": style.font_color,
                                "backgroundColor": style.background_color,
                                "position": style.position,
                            },
                        }
                        for cue in request.subtitles
                    ],
                },
            ]
        },
    }


def write_composition_metadata(
    request: CompositionRequest, output_dir: Path | None = None
) -> tuple[Path, dict[str, Any]]:
    """Persist the timeline as `videos/video_<ms>.json`."""
    logger.info(
        "Writing composition metadata: %d segments, %d images, %d subtitles, theme=%s",
        len(request.segments), len(request.character_images), len(request.subtitles), request.theme,
    )
    composition = build_composition_document(request)
    path = _videos_dir(output_dir) / f"video_{_now_ms()}.json"
    path.write_text(json.dumps(composition, indent=2), encoding="utf-8")
    logger.info("Video composition saved: %s", path)
    return path, composition


def compose_video_metadata_only(request: CompositionRequest, output_dir: Path | None = None) -> CompositionResult:
    """Last-resort composition: metadata file plus a stock video URL."""
    path, composition = write_composition_metadata(request, output_dir)
    video_url = select_stock_video(request.theme, len(request.character_images))
    logger.info("Using stock video URL: %s", video_url)
    return CompositionResult(
        video_url=video_url,
        thumbnail_url=(
            request.character_images[0]
            if request.character_images
            else "https://via.placeholder.com/1080x1920/6200ee/ffffff?text=Video+Thumbnail"
        ),
        duration=composition["metadata"]["duration"],
        subtitles=list(request.subtitles),
        provider="Composition Metadata",
        composition_path=str(path),
    )


def _slides(request: CompositionRequest) -> list[dict[str, Any]]:
    slides = []
    for index, image_url in enumerate(request.character_images):
        start = request.clip_start(index)
        end = request.clip_start(index + 1)
        segment = request.segments[index] if index < len(request.segments) else None
        slides.append(
            {
                "imageUrl": image_url,
                "duration": request.clip_length(index),
                "text": segment.text if segment else "",
                "subtitles": [
                    cue.model_dump() for cue in request.subtitles if start <= cue.start_time < end
                ],
            }
        )
    return slides


def render_slideshow_html(request: CompositionRequest) -> str:
    opts = request.options
    slides_json = json.dumps(_slides(request)).replace("</", "<\\/")
    title = html.escape(request.theme or "Story")
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Animato Video - {title}</title>
<style>
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ background: {SLIDESHOW_OPTIONS["backgroundColor"]}; font-family: Arial, sans-serif;
         display: flex; align-items: center; justify-content: center; height: 100vh; overflow: hidden; }}
  #stage {{ position: relative; aspect-ratio: {opts.resolution.width} / {opts.resolution.height}; height: 100vh; }}
  #stage img {{ position: absolute; inset: 0; width: 100%; height: 100%; object-fit: cover;
               opacity: 0; transition: opacity {SLIDESHOW_OPTIONS["transitionDuration"]}s; }}
  #stage img.active {{ opacity: 1; animation: kenburns 8s ease-in forwards; }}
  #caption {{ position: absolute; left: 5%; right: 5%; bottom: 10%; text-align: center;
             color: {opts.subtitle_style.font_color}; background: {opts.subtitle_style.background_color};
             font-size: {opts.subtitle_style.font_size / 2:.0f}px; padding: 8px; border-radius: 8px; }}
  @keyframes kenburns {{ from {{ transform: scale(1); }} to {{ transform: scale(1.1); }} }}
</style>
</head>
<body>
<div id="stage"><div id="caption"></div></div>
<script>
  const slides = {slides_json};
  const stage = document.getElementById("stage");
  const caption = document.getElementById("caption");
  const images = slides.map((slide) => {{
    const img = document.createElement("img");
    img.src = slide.imageUrl;
    stage.insertBefore(img, caption);
    return img;
  }});
  let index = 0;
  function show(i) {{
    images.forEach((img, j) => img.classList.toggle("active", j === i));
    const slide = slides[i];
    const cues = slide.subtitles.length ? slide.subtitles : [{{ text: slide.text, start_time: 0, end_time: slide.duration }}];
    const base = cues[0].start_time;
    cues.forEach((cue) => setTimeout(() => {{ caption.textContent = cue.text; }}, (cue.start_time - base) * 1000));
    setTimeout(() => show((i + 1) % slides.length), slide.duration * 1000);
  }}
  if (slides.length) show(index);
</script>
</body>
</html>
"""


def write_local_slideshow(request: CompositionRequest, output_dir: Path | None = None) -> CompositionResult:
    """Character slideshow: composition JSON plus a self-contained HTML player."""
    logger.info("Generating character slideshow with %d images", len(request.character_images))
    opts = request.options
    duration = request.total_duration()
    stamp = _now_ms()
    videos_dir = _videos_dir(output_dir)

    document = {
        "type": "character_slideshow",
        "theme": request.theme,
        "segments": [seg.model_dump() for seg in request.segments],
        "characterImages": list(request.character_images),
        "subtitles": [cue.model_dump() for cue in request.subtitles],
        "options": {
            "width": opts.resolution.width,
            "height": opts.resolution.height,
            "fps": opts.fps,
            **SLIDESHOW_OPTIONS,
        },
        "created": datetime.now().isoformat(),
        "duration": duration,
    }
    json_path = videos_dir / f"character_video_{stamp}.json"
    json_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    html_path = videos_dir / f"character_video_{stamp}.html"
    html_path.write_text(render_slideshow_html(request), encoding="utf-8")

    video_url = STOCK_VIDEO_URLS[(len(request.character_images) + len(request.theme or "")) % len(STOCK_VIDEO_URLS)]
    logger.info("Slideshow composition written to %s (%.1fs)", json_path, duration)
    return CompositionResult(
        video_url=video_url,
        thumbnail_url=request.character_images[0] if request.character_images else PLACEHOLDER_THUMBNAIL_URL,
        duration=duration,
        subtitles=list(request.subtitles),
        provider="Local Slideshow",
        composition_path=str(json_path),
    )


def cleanup_video_files(output_dir: Path | None = None) -> bool:
    videos_dir = (output_dir or config.OUTPUT_DIR) / "videos"
    if not videos_dir.exists():
        return False
    shutil.rmtree(videos_dir)
    logger.info("Removed %s", videos_dir)
    return True
