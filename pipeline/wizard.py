"""Step-by-step story wizard with JSON-persisted project state.

theme -> script -> segments -> characters -> photos -> segment_videos -> compiled

Each step requires the one before it. Re-running a step discards everything
produced by later steps so the project never mixes outputs from different
scripts or casts.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable

import httpx

import config
from pipeline.errors import WizardStepError
from pipeline.photos import generate_all_character_photos
from pipeline.segment_videos import combine_videos, generate_all_segment_videos
from pipeline.story import (
    enhance_characters,
    generate_characters_from_script,
    generate_script_with_fallback,
    segment_script,
)
from schemas.story import WIZARD_STEPS, StoryProject, WizardStep

logger = logging.getLogger(__name__)

# Project fields owned by each step, reset when an earlier step is re-run.
_STEP_FIELDS: dict[str, tuple[str, ...]] = {
    "theme": ("theme", "video_style", "prompt"),
    "script": ("script",),
    "segments": ("segments",),
    "characters": ("characters",),
    "photos": ("photo_options",),
    "segment_videos": ("segment_videos",),
    "compiled": ("final_video",),
}


def projects_dir(base: Path | None = None) -> Path:
    path = (base or config.OUTPUT_DIR) / "projects"
    path.mkdir(parents=True, exist_ok=True)
    return path


def list_projects(base: Path | None = None) -> list[str]:
    return sorted(p.stem for p in projects_dir(base).glob("*.json"))


class WizardSession:
    """One project moving through the wizard. State is saved after every step."""

    def __init__(
        self,
        project: StoryProject,
        *,
        output_dir: Path | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.project = project
        self.output_dir = output_dir
        self._client = client
        self._sleep = sleep

    # -- persistence -------------------------------------------------------

    @classmethod
    def create(cls, *, output_dir: Path | None = None, **kwargs) -> "WizardSession":
        now = datetime.now().isoformat()
        project = StoryProject(project_id=uuid.uuid4().hex[:12], created_at=now, updated_at=now)
        session = cls(project, output_dir=output_dir, **kwargs)
        session.save()
        logger.info("Created wizard project %s", project.project_id)
        return session

    @classmethod
    def load(cls, project_id: str, *, output_dir: Path | None = None, **kwargs) -> "WizardSession":
        path = projects_dir(output_dir) / f"{project_id}.json"
        if not path.exists():
            raise FileNotFoundError(f"Project not found: {project_id}")
        project = StoryProject.model_validate_json(path.read_text(encoding="utf-8"))
        return cls(project, output_dir=output_dir, **kwargs)

    @property
    def path(self) -> Path:
        return projects_dir(self.output_dir) / f"{self.project.project_id}.json"

    def save(self) -> Path:
        self.path.write_text(self.project.model_dump_json(indent=2), encoding="utf-8")
        return self.path

    # -- step bookkeeping --------------------------------------------------

    def is_complete(self, step: WizardStep) -> bool:
        return step in self.project.completed_steps

    def next_step(self) -> str | None:
        for step in WIZARD_STEPS:
            if not self.is_complete(step):
                return step
        return None

    def _require_previous(self, step: WizardStep) -> None:
        index = WIZARD_STEPS.index(step)
        if index == 0:
            return
        previous = WIZARD_STEPS[index - 1]
        if not self.is_complete(previous):
            raise WizardStepError(f"Complete the '{previous}' step before '{step}'.")

    def _reset_from(self, step: WizardStep) -> None:
        """Forget `step` and every later step, restoring their fields to defaults."""
        index = WIZARD_STEPS.index(step)
        later = WIZARD_STEPS[index:]
        defaults = StoryProject(project_id="_", created_at="", updated_at="")
        for name in later:
            for field in _STEP_FIELDS[name]:
                setattr(self.project, field, getattr(defaults, field))
        self.project.completed_steps = [s for s in self.project.completed_steps if s not in later]

    def _complete(self, step: WizardStep) -> StoryProject:
        self.project.completed_steps.append(step)
        self.project.updated_at = datetime.now().isoformat()
        self.save()
        logger.info("Project %s: step '%s' complete", self.project.project_id, step)
        return self.project

    # -- steps -------------------------------------------------------------

    def choose_theme(self, theme: str, video_style: str = "realistic", prompt: str = "") -> StoryProject:
        if not str(theme or "").strip():
            raise WizardStepError("Choose a theme first.")
        self._reset_from("theme")
        self.project.theme = theme.strip().lower()
        self.project.video_style = video_style or "realistic"
        self.project.prompt = prompt
        return self._complete("theme")

    def write_script(self, script: str | None = None) -> StoryProject:
        """Use `script` verbatim, or generate one for the chosen theme."""
        self._require_previous("script")
        self._reset_from("script")
        p = self.project
        if script and script.strip():
            p.script = script.strip()
        else:
            p.script = generate_script_with_fallback(p.theme, p.prompt, p.video_style, p.theme)
        return self._complete("script")

    def split_segments(self, number_of_segments: int = 3) -> StoryProject:
        self._require_previous("segments")
        self._reset_from("segments")
        self.project.segments = segment_script(self.project.script, number_of_segments)
        return self._complete("segments")

    def create_characters(self, number_of_characters: int = 3, *, enhance: bool = False) -> StoryProject:
        self._require_previous("characters")
        self._reset_from("characters")
        p = self.project
        characters = generate_characters_from_script(p.script, p.video_style, p.theme, number_of_characters)
        if enhance:
            characters = enhance_characters(characters, p.video_style, p.theme)
        p.characters = characters
        return self._complete("characters")

    def generate_photos(self, options_per_character: int = 3) -> StoryProject:
        self._require_previous("photos")
        self._reset_from("photos")
        p = self.project
        p.photo_options = generate_all_character_photos(
            p.characters,
            p.video_style,
            p.theme,
            options_per_character,
            client=self._client,
            output_dir=self.output_dir,
        )
        return self._complete("photos")

    def select_photo(self, character_id: str, photo_id: str) -> StoryProject:
        """Mark one photo option as the character's pick; later outputs are kept."""
        if not self.is_complete("photos"):
            raise WizardStepError("Generate photos before selecting one.")
        options = self.project.photo_options.get(character_id)
        if not options or not any(o.id == photo_id for o in options):
            raise KeyError(f"Unknown photo {photo_id!r} for character {character_id!r}")
        for option in options:
            option.selected = option.id == photo_id
        self.save()
        return self.project

    def generate_segment_videos(self) -> StoryProject:
        self._require_previous("segment_videos")
        self._reset_from("segment_videos")
        p = self.project
        p.segment_videos = generate_all_segment_videos(
            p.segments,
            p.characters,
            p.selected_photos(),
            p.theme,
            client=self._client,
            sleep=self._sleep,
        )
        return self._complete("segment_videos")

    def select_segment_video(self, segment_id: str, option_id: str) -> StoryProject:
        if not self.is_complete("segment_videos"):
            raise WizardStepError("Generate segment videos before selecting one.")
        options = self.project.segment_videos.get(segment_id)
        if not options or not any(o.id == option_id for o in options):
            raise KeyError(f"Unknown video {option_id!r} for segment {segment_id!r}")
        for option in options:
            option.selected = option.id == option_id
        self.save()
        return self.project

    def compile_video(self) -> StoryProject:
        self._require_previous("compiled")
        self._reset_from("compiled")
        p = self.project
        p.final_video = combine_videos(
            p.segment_videos,
            p.theme,
            output_dir=self.output_dir,
            client=self._client,
            sleep=self._sleep,
        )
        return self._complete("compiled")

    def run_all(
        self,
        theme: str,
        prompt: str = "",
        video_style: str = "realistic",
        *,
        script: str | None = None,
        number_of_segments: int = 3,
        number_of_characters: int = 3,
        options_per_character: int = 3,
    ) -> StoryProject:
        """Every step in order with default selections."""
        self.choose_theme(theme, video_style, prompt)
        self.write_script(script)
        self.split_segments(number_of_segments)
        self.create_characters(number_of_characters)
        self.generate_photos(options_per_character)
        self.generate_segment_videos()
        return self.compile_video()
