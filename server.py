"""Animato: web server.

FastAPI backend exposing provider status, the story wizard steps and
one-shot video composition. Wizard state lives in OUTPUT_DIR/projects.

Usage:
    python server.py
    # Then open http://localhost:8000/docs
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
from pipeline import availability
from pipeline.errors import AnimatoError, WizardStepError
from pipeline.fallback import create_video_from_script
from pipeline.llm import is_llm_configured
from pipeline.provider_registry import credential_report, get_registry
from pipeline.story import THEMES, VIDEO_STYLES, get_templates_for_theme
from pipeline.wizard import WizardSession, list_projects
from schemas.story import CharacterPhoto

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def _check_api_keys() -> list[str]:
    """Warnings for missing keys. Every missing provider has a fallback, so none are fatal."""
    warnings = []
    if not is_llm_configured(config.DEFAULT_TEXT_PROVIDER):
        warnings.append(
            f"DEFAULT_TEXT_PROVIDER is '{config.DEFAULT_TEXT_PROVIDER}' but its API key is not set; "
            "scripts and characters will use templates"
        )
    for spec in get_registry().values():
        if spec.kind in ("composition", "generative_video") and not spec.has_credentials:
            warnings.append(f"{spec.api_key_env} is not set ({spec.name} disabled)")
    return warnings


@asynccontextmanager
async def lifespan(app: FastAPI):
    key_warnings = _check_api_keys()
    if key_warnings:
        logger.warning("=" * 60)
        logger.warning("API KEY WARNINGS:")
        for w in key_warnings:
            logger.warning("  • %s", w)
        logger.warning("=" * 60)
    yield


app = FastAPI(title="Animato", lifespan=lifespan)


def _dump(model: BaseModel) -> dict:
    return json.loads(model.model_dump_json())


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ThemeRequest(BaseModel):
    theme: str
    video_style: str = "realistic"
    prompt: str = ""


class ScriptRequest(BaseModel):
    script: Optional[str] = None


class SegmentsRequest(BaseModel):
    count: int = 3


class CharactersRequest(BaseModel):
    count: int = 3
    enhance: bool = False


class PhotosRequest(BaseModel):
    options_per_character: int = 3


class SelectRequest(BaseModel):
    owner_id: str
    option_id: str


class ComposeRequest(BaseModel):
    script: str
    theme: str = "drama"
    character_images: list[str] = []


# ---------------------------------------------------------------------------
# Status routes
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def api_health():
    return {"status": "ok", "time": datetime.now().isoformat()}


@app.get("/api/providers")
async def api_providers(probe: bool = False):
    """Registry with credential flags; `probe=true` also checks composition APIs."""
    providers = [
        {
            "key": spec.key,
            "name": spec.name,
            "kind": spec.kind,
            "has_credentials": spec.has_credentials,
            "models": spec.models,
        }
        for spec in get_registry().values()
    ]
    body: dict[str, Any] = {
        "providers": providers,
        "credentials": credential_report(),
        "available_composition": availability.get_available_providers(),
    }
    if probe:
        loop = asyncio.get_event_loop()
        statuses = await loop.run_in_executor(None, availability.probe_all_providers)
        body["status"] = [_dump(s) for s in statuses]
    return body


@app.post("/api/providers/refresh")
async def api_refresh_providers():
    loop = asyncio.get_event_loop()
    available = await loop.run_in_executor(None, availability.initialize_video_providers)
    return {"available_composition": available}


@app.get("/api/themes")
async def api_themes():
    return {
        "themes": THEMES,
        "video_styles": VIDEO_STYLES,
        "templates": {theme: [_dump(t) for t in get_templates_for_theme(theme)] for theme in THEMES},
    }


# ---------------------------------------------------------------------------
# Wizard routes
# ---------------------------------------------------------------------------

@app.get("/api/projects")
async def api_list_projects():
    return {"projects": list_projects()}


@app.post("/api/projects")
async def api_create_project():
    session = WizardSession.create()
    return _dump(session.project)


@app.get("/api/projects/{project_id}")
async def api_get_project(project_id: str):
    try:
        session = WizardSession.load(project_id)
    except FileNotFoundError:
        return JSONResponse({"error": f"Project not found: {project_id}"}, status_code=404)
    body = _dump(session.project)
    body["next_step"] = session.next_step()
    return body


async def _run_step(project_id: str, method: str, *args, **kwargs):
    """Load the project, run one wizard method off the event loop, map errors to status codes."""
    try:
        session = WizardSession.load(project_id)
    except FileNotFoundError:
        return JSONResponse({"error": f"Project not found: {project_id}"}, status_code=404)

    loop = asyncio.get_event_loop()
    try:
        project = await loop.run_in_executor(None, lambda: getattr(session, method)(*args, **kwargs))
    except WizardStepError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    except KeyError as e:
        return JSONResponse({"error": str(e.args[0]) if e.args else "Not found"}, status_code=404)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except AnimatoError as e:
        logger.error("Project %s step %s failed: %s", project_id, method, e)
        return JSONResponse({"error": str(e)}, status_code=502)
    except Exception as e:
        logger.exception("Project %s step %s crashed", project_id, method)
        return JSONResponse({"error": str(e)}, status_code=500)
    return _dump(project)


@app.post("/api/projects/{project_id}/theme")
async def api_choose_theme(project_id: str, req: ThemeRequest):
    return await _run_step(project_id, "choose_theme", req.theme, req.video_style, req.prompt)


@app.post("/api/projects/{project_id}/script")
async def api_write_script(project_id: str, req: ScriptRequest):
    return await _run_step(project_id, "write_script", req.script)


@app.post("/api/projects/{project_id}/segments")
async def api_split_segments(project_id: str, req: SegmentsRequest):
    return await _run_step(project_id, "split_segments", req.count)


@app.post("/api/projects/{project_id}/characters")
async def api_create_characters(project_id: str, req: CharactersRequest):
    return await _run_step(project_id, "create_characters", req.count, enhance=req.enhance)


@app.post("/api/projects/{project_id}/photos")
async def api_generate_photos(project_id: str, req: PhotosRequest):
    return await _run_step(project_id, "generate_photos", req.options_per_character)


@app.post("/api/projects/{project_id}/photos/select")
async def api_select_photo(project_id: str, req: SelectRequest):
    return await _run_step(project_id, "select_photo", req.owner_id, req.option_id)


@app.post("/api/projects/{project_id}/segment-videos")
async def api_generate_segment_videos(project_id: str):
    return await _run_step(project_id, "generate_segment_videos")


@app.post("/api/projects/{project_id}/segment-videos/select")
async def api_select_segment_video(project_id: str, req: SelectRequest):
    return await _run_step(project_id, "select_segment_video", req.owner_id, req.option_id)


@app.post("/api/projects/{project_id}/compile")
async def api_compile(project_id: str):
    return await _run_step(project_id, "compile_video")


# ---------------------------------------------------------------------------
# One-shot composition
# ---------------------------------------------------------------------------

@app.post("/api/compose")
async def api_compose(req: ComposeRequest):
    if not req.script.strip():
        return JSONResponse({"error": "Script is required"}, status_code=400)
    photos = [
        CharacterPhoto(character_id=f"image-{i}", character_name=f"Character {i + 1}", photo_url=url)
        for i, url in enumerate(req.character_images)
    ]
    loop = asyncio.get_event_loop()
    try:
        result = await loop.run_in_executor(None, create_video_from_script, req.script, [], photos, req.theme)
    except AnimatoError as e:
        logger.error("Composition failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=502)
    return _dump(result)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    print("\n  Animato API")
    print("  http://localhost:8000/docs\n")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
