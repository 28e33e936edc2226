"""Video schemas: provider registry entries, composition timelines, generation results."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


ProviderKind = Literal["composition", "generative_video", "image", "speech", "text"]
AspectRatio = Literal["16:9", "9:16", "1:1"]
SubtitlePosition = Literal["bottom", "top", "center"]
GenerationStatus = Literal["processing", "completed", "failed"]

PLACEHOLDER_THUMBNAIL_URL = "https://via.placeholder.com/1080x1920"


# ---------------------------------------------------------------------------
# Provider registry
# ---------------------------------------------------------------------------

class ProviderSpec(BaseModel):
    key: str
    name: str
    kind: ProviderKind
    base_url: str
    api_key_env: str
    api_key: str = Field(default="", repr=False)
    auth_scheme: Literal["bearer", "x-api-key"] = "bearer"
    models: list[str] = Field(default_factory=list)
    supports_image_to_video: bool = False
    supports_text_to_video: bool = False
    max_duration_seconds: float = 0.0
    has_credentials: bool = False

    def auth_headers(self) -> dict[str, str]:
        if self.auth_scheme == "x-api-key":
            return {"x-api-key": self.api_key}
        return {"Authorization": f"Bearer {self.api_key}"}


class ProviderStatus(BaseModel):
    key: str
    name: str
    kind: ProviderKind
    has_credentials: bool
    available: bool
    checked_at: str
    detail: str = ""


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

class VoiceOptions(BaseModel):
    voice: str = "en-US-Standard-A"
    rate: float = 1.0
    pitch: float = 0.0
    volume: float = 1.0
    language: str = "en-US"


class SubtitleStyle(BaseModel):
    font_size: int = 48
    font_color: str = "#FFFFFF"
    background_color: str = "rgba(0, 0, 0, 0.7)"
    position: SubtitlePosition = "bottom"


class Resolution(BaseModel):
    width: int = 1080
    height: int = 1920


class VideoCompositionOptions(BaseModel):
    resolution: Resolution = Field(default_factory=Resolution)
    fps: int = 30
    voice_options: VoiceOptions = Field(default_factory=VoiceOptions)
    subtitle_style: SubtitleStyle = Field(default_factory=SubtitleStyle)


class VideoSegment(BaseModel):
    id: str
    text: str
    character_ids: list[str] = Field(default_factory=list)
    duration: float
    image_url: str | None = None
    audio_url: str | None = None


class SubtitleSegment(BaseModel):
    start_time: float
    end_time: float
    text: str


class CompositionRequest(BaseModel):
    segments: list[VideoSegment] = Field(default_factory=list)
    voiceover_url: str = ""
    character_images: list[str] = Field(default_factory=list)
    video_clips: list[str] = Field(default_factory=list)
    subtitles: list[SubtitleSegment] = Field(default_factory=list)
    options: VideoCompositionOptions = Field(default_factory=VideoCompositionOptions)
    theme: str = ""

    def total_duration(self) -> float:
        return sum(seg.duration for seg in self.segments)

    def clip_start(self, index: int) -> float:
        return sum(seg.duration for seg in self.segments[:index])

    def clip_length(self, index: int, default: float = 3.0) -> float:
        if index < len(self.segments):
            return self.segments[index].duration or default
        return default


class CompositionResult(BaseModel):
    video_url: str
    thumbnail_url: str
    duration: float
    subtitles: list[SubtitleSegment] = Field(default_factory=list)
    provider: str = ""
    composition_path: str | None = None


# ---------------------------------------------------------------------------
# Generative video
# ---------------------------------------------------------------------------

class AIVideoRequest(BaseModel):
    prompt: str
    character_image_url: str | None = None
    duration: float = 5
    aspect_ratio: AspectRatio = "9:16"
    style: str = "cinematic"
    theme: str = ""


class AIVideoResult(BaseModel):
    video_url: str
    thumbnail_url: str
    duration: float
    provider: str
    status: GenerationStatus = "completed"
    task_id: str | None = None


class VideoOption(BaseModel):
    id: str
    url: str
    selected: bool = False
    thumbnail_url: str = ""
    provider: str | None = None
    duration: float | None = None


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------

class TTSResult(BaseModel):
    audio_uri: str
    duration: float
    text: str
    provider: str = "estimate"
