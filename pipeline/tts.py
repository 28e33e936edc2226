"""Speech synthesis for voiceovers.

`OpenAITTSProvider` writes real WAV audio. `EstimatedSpeechProvider` is the
offline stand-in: it writes a small JSON document under the audio file name
carrying the text, voice options and estimated duration, which is all the
composition writers need.
"""

from __future__ import annotations

import json
import logging
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Protocol

import config
from pipeline.provider_registry import is_usable_api_key
from schemas.video import TTSResult, VoiceOptions

logger = logging.getLogger(__name__)


def estimate_speech_duration(text: str, rate: float = 1.0) -> float:
    """Seconds of speech at 150 words per minute scaled by `rate`, at least 1."""
    words = len(str(text or "").split())
    rate = rate or 1.0
    return max(words / (150 * rate) * 60, 1.0)


def _audio_dir(output_dir: Path | None) -> Path:
    path = (output_dir or config.OUTPUT_DIR) / "audio"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _unique_path(directory: Path, prefix: str, suffix: str) -> Path:
    stamp = int(time.time() * 1000)
    path = directory / f"{prefix}_{stamp}{suffix}"
    while path.exists():
        stamp += 1
        path = directory / f"{prefix}_{stamp}{suffix}"
    return path


class SpeechProvider(Protocol):
    name: str

    def synthesize(self, text: str, options: VoiceOptions, output_path: Path) -> TTSResult:
        ...


class OpenAITTSProvider:
    """Real TTS provider using OpenAI audio speech."""

    name = "openai_tts"

    _ALLOWED_OPENAI_VOICES = {
        "alloy", "ash", "ballad", "coral", "echo", "fable", "nova", "onyx", "sage", "shimmer",
    }

    def __init__(self):
        if not is_usable_api_key(config.OPENAI_API_KEY):
            raise RuntimeError("OPENAI_API_KEY is required for real narration generation.")
        from openai import OpenAI

        self._client = OpenAI(api_key=config.OPENAI_API_KEY)

    @classmethod
    def _resolve_openai_voice(cls, voice: str) -> str:
        preset = str(voice or "").strip()
        if preset in cls._ALLOWED_OPENAI_VOICES:
            return preset
        low = preset.lower()
        if "female" in low:
            return "nova"
        if "male" in low:
            return "onyx"
        return "alloy"

    def synthesize(self, text: str, options: VoiceOptions, output_path: Path) -> TTSResult:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        response = self._client.audio.speech.create(
            model=config.OPENAI_TTS_MODEL,
            voice=self._resolve_openai_voice(options.voice),
            input=str(text or ""),
            response_format="wav",
            speed=max(0.25, min(4.0, float(options.rate or 1.0))),
        )
        if hasattr(response, "stream_to_file"):
            response.stream_to_file(str(output_path))
        else:
            content = getattr(response, "content", None)
            if content is None:
                content = bytes(response)
            output_path.write_bytes(content)
        return TTSResult(
            audio_uri=str(output_path),
            duration=estimate_speech_duration(text, options.rate),
            text=text,
            provider=self.name,
        )


class EstimatedSpeechProvider:
    """Writes speech metadata instead of audio."""

    name = "estimate"

    def synthesize(self, text: str, options: VoiceOptions, output_path: Path) -> TTSResult:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        duration = estimate_speech_duration(text, options.rate)
        payload = {
            "text": text,
            "options": options.model_dump(),
            "duration": duration,
            "created": datetime.now().isoformat(),
            "uri": str(output_path),
        }
        output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return TTSResult(audio_uri=str(output_path), duration=duration, text=text, provider=self.name)


def build_speech_provider() -> SpeechProvider:
    if config.FORCE_MOCK_GENERATION or not is_usable_api_key(config.OPENAI_API_KEY):
        return EstimatedSpeechProvider()
    try:
        return OpenAITTSProvider()
    except Exception as exc:
        logger.warning("OpenAI TTS unavailable; using estimated speech metadata: %s", exc)
        return EstimatedSpeechProvider()


def generate_speech_from_text(
    text: str,
    options: VoiceOptions | None = None,
    output_dir: Path | None = None,
    provider: SpeechProvider | None = None,
) -> TTSResult:
    options = options or VoiceOptions()
    provider = provider or build_speech_provider()
    target = _unique_path(_audio_dir(output_dir), "speech", ".wav")
    logger.info("Generating speech (%s) for %d characters", provider.name, len(text or ""))
    try:
        return provider.synthesize(text, options, target)
    except Exception as exc:
        if isinstance(provider, EstimatedSpeechProvider):
            raise
        logger.warning("%s speech synthesis failed; writing estimated metadata: %s", provider.name, exc)
        return EstimatedSpeechProvider().synthesize(text, options, target)


def generate_speech_for_segments(
    texts: list[str],
    options: VoiceOptions | None = None,
    delay_seconds: float | None = None,
    output_dir: Path | None = None,
) -> list[TTSResult]:
    """Synthesize one clip per text, one request at a time."""
    delay = config.SEQUENTIAL_REQUEST_DELAY_SECONDS if delay_seconds is None else delay_seconds
    provider = build_speech_provider()
    results: list[TTSResult] = []
    for index, text in enumerate(texts):
        results.append(generate_speech_from_text(text, options, output_dir, provider=provider))
        if delay > 0 and index < len(texts) - 1:
            time.sleep(delay)
    return results


def _local_path(uri: str) -> Path:
    raw = str(uri or "").strip()
    if raw.startswith("file://"):
        raw = raw[7:]
    return Path(raw)


def combine_audio_files(uris: list[str], output_dir: Path | None = None) -> str:
    if not uris:
        raise ValueError("No audio files to combine")
    combined_dir = _audio_dir(output_dir) / "combined"
    combined_dir.mkdir(parents=True, exist_ok=True)

    parts: list[str] = []
    for uri in uris:
        try:
            parts.append(_local_path(uri).read_text(encoding="utf-8", errors="replace") + " ")
        except OSError as exc:
            logger.warning("Skipping unreadable audio file %s: %s", uri, exc)

    target = _unique_path(combined_dir, "combined", ".txt")
    target.write_text("".join(parts), encoding="utf-8")
    logger.info("Combined %d audio files into %s", len(parts), target)
    return str(target)


def cleanup_audio_files(output_dir: Path | None = None) -> bool:
    audio_dir = (output_dir or config.OUTPUT_DIR) / "audio"
    if not audio_dir.exists():
        return False
    shutil.rmtree(audio_dir)
    logger.info("Removed %s", audio_dir)
    return True
