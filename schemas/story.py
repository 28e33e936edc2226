"""Story wizard schemas: scripts, segments, characters, photos, project state."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from schemas.video import CompositionResult, VideoOption


WizardStep = Literal[
    "theme",
    "script",
    "segments",
    "characters",
    "photos",
    "segment_videos",
    "compiled",
]

WIZARD_STEPS: tuple[str, ...] = (
    "theme",
    "script",
    "segments",
    "characters",
    "photos",
    "segment_videos",
    "compiled",
)


class ScriptSegment(BaseModel):
    id: str
    title: str
    content: str = ""


class Character(BaseModel):
    id: str
    name: str
    description: str = ""
    traits: list[str] = Field(default_factory=list)
    role: str = "supporting"
    age: str = "adult"
    gender: str = "neutral"
    appearance: str = ""
    background: str = ""


class SegmentCharacter(BaseModel):
    """A character scoped to one script segment (no age/gender profile)."""

    id: str
    name: str
    description: str = ""
    traits: list[str] = Field(default_factory=list)
    role: str = "Supporting Character"
    image_url: str | None = None


class PhotoOption(BaseModel):
    id: str
    url: str
    selected: bool = False
    style: str = ""
    prompt: str = ""


class CharacterPhoto(BaseModel):
    character_id: str
    character_name: str
    photo_url: str | None = None
    style: str = ""


class ScriptTemplate(BaseModel):
    id: str
    title: str
    description: str
    content: str


class AIImageRequest(BaseModel):
    prompt: str
    style: str = "realistic"
    width: int = 512
    height: int = 512
    quality: str = "high"


class AIImageResponse(BaseModel):
    url: str
    prompt: str
    style: str
    service: str
    generated_at: str
    dimensions: str
    quality: str = "high"


class StoryProject(BaseModel):
    """Everything the wizard has produced so far for one video."""

    project_id: str
    created_at: str
    updated_at: str
    completed_steps: list[WizardStep] = Field(default_factory=list)

    theme: str = ""
    video_style: str = "realistic"
    prompt: str = ""
    script: str = ""
    segments: list[ScriptSegment] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    photo_options: dict[str, list[PhotoOption]] = Field(default_factory=dict)
    segment_videos: dict[str, list[VideoOption]] = Field(default_factory=dict)
    final_video: CompositionResult | None = None

    def selected_photos(self) -> list[CharacterPhoto]:
        photos: list[CharacterPhoto] = []
        for character in self.characters:
            options = self.photo_options.get(character.id, [])
            chosen = next((o for o in options if o.selected), options[0] if options else None)
            photos.append(
                CharacterPhoto(
                    character_id=character.id,
                    character_name=character.name,
                    photo_url=chosen.url if chosen else None,
                    style=chosen.style if chosen else "",
                )
            )
        return photos
