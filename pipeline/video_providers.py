"""Provider adapters for video acquisition (cloud renderers + generative video).

Composition renderers (Shotstack, Bannerbear, Creatomate) turn a timeline of
character images, a voiceover and subtitle cues into a rendered video.
Generators (Luma, RunwayML, Kling, AI/ML API) turn a prompt plus an optional
reference image into a short clip. Asynchronous providers are polled with
`pipeline.polling.poll_job`.

Every adapter takes an optional `httpx.Client` so tests can inject a
`MockTransport`; adapters raise `ProviderError` subclasses and never fall back
on their own.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Protocol

import httpx

import config
from pipeline.errors import ProviderError, ProviderJobFailed, ProviderUnavailable
from pipeline.polling import PollOutcome, poll_job
from schemas.video import (
    PLACEHOLDER_THUMBNAIL_URL,
    AIVideoRequest,
    AIVideoResult,
    CompositionRequest,
    CompositionResult,
    ProviderSpec,
)

logger = logging.getLogger(__name__)


class CompositionRenderer(Protocol):
    spec: ProviderSpec

    def render(self, request: CompositionRequest) -> CompositionResult:
        """Render the timeline and return the finished video."""

    def close(self) -> None:
        """Release the HTTP client if the renderer created it."""


class VideoGenerator(Protocol):
    spec: ProviderSpec

    def generate(self, request: AIVideoRequest) -> AIVideoResult:
        """Generate a clip from a prompt and optional reference image."""

    def close(self) -> None:
        """Release the HTTP client if the generator created it."""


def build_http_client() -> httpx.Client:
    return httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS, follow_redirects=True)


def download_video(url: str, target_path: Path, client: httpx.Client | None = None) -> Path:
    """Stream a finished video to `target_path`."""
    clean_url = str(url or "").strip()
    if not clean_url:
        raise ProviderError("Missing downloadable URL from provider output.")
    target_path.parent.mkdir(parents=True, exist_ok=True)
    http = client or httpx.Client(follow_redirects=True, timeout=300.0)
    try:
        with http.stream("GET", clean_url) as response:
            response.raise_for_status()
            with target_path.open("wb") as fh:
                for chunk in response.iter_bytes():
                    if chunk:
                        fh.write(chunk)
    finally:
        if client is None:
            http.close()
    return target_path


def _extract_video_url(payload: Any) -> str:
    """Best-effort extraction of a video URL from an unfamiliar response payload."""
    stack: list[Any] = [payload]
    seen: set[int] = set()
    while stack:
        node = stack.pop(0)
        if id(node) in seen:
            continue
        seen.add(id(node))
        if isinstance(node, dict):
            for key in ("video_url", "url"):
                direct = node.get(key)
                if isinstance(direct, str) and direct.strip().startswith("http"):
                    return direct.strip()
            video = node.get("video")
            if isinstance(video, dict):
                direct = str(video.get("url") or "").strip()
                if direct:
                    return direct
            stack.extend(node.values())
            continue
        if isinstance(node, list):
            stack.extend(node)
            continue
        if isinstance(node, str):
            value = node.strip()
            if value.startswith("https://") and (".mp4" in value or "/video" in value):
                return value
    return ""


class _ProviderAdapter:
    """Shared HTTP plumbing: auth headers, JSON submit, status fetch."""

    def __init__(
        self,
        spec: ProviderSpec,
        client: httpx.Client | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not spec.has_credentials:
            raise ProviderUnavailable(
                f"{spec.api_key_env} is not set. Add it to your .env file.",
                provider=spec.name,
            )
        self.spec = spec
        self._owns_client = client is None
        self._client = client or build_http_client()
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @property
    def name(self) -> str:
        return self.spec.name

    def _url(self, path: str) -> str:
        return f"{self.spec.base_url}/{path.lstrip('/')}"

    def _submit(self, path: str, payload: dict[str, Any], *, label: str = "") -> Any:
        headers = {"Content-Type": "application/json", **self.spec.auth_headers()}
        response = self._client.post(self._url(path), json=payload, headers=headers)
        if not response.is_success:
            raise ProviderError(
                f"{label or self.name} API error: {response.status_code} - {response.text}",
                provider=self.name,
                status_code=response.status_code,
            )
        return response.json()

    def _fetch_status(self, path: str, *, label: str = "") -> Any:
        response = self._client.get(self._url(path), headers=self.spec.auth_headers())
        if not response.is_success:
            raise ProviderError(
                f"{label or self.name} status check failed: {response.status_code}",
                provider=self.name,
                status_code=response.status_code,
            )
        return response.json()


# ---------------------------------------------------------------------------
# Composition renderers
# ---------------------------------------------------------------------------

def _composition_result(request: CompositionRequest, video_url: str, provider: str) -> CompositionResult:
    return CompositionResult(
        video_url=video_url,
        thumbnail_url=request.character_images[0] if request.character_images else PLACEHOLDER_THUMBNAIL_URL,
        duration=request.total_duration(),
        subtitles=list(request.subtitles),
        provider=provider,
    )


def build_shotstack_edit(request: CompositionRequest) -> dict[str, Any]:
    opts = request.options
    style = opts.subtitle_style
    image_clips = [
        {
            "asset": {"type": "image", "src": image_url},
            "start": request.clip_start(index),
            "length": request.clip_length(index),
            "effect": "zoomIn",
            "scale": 1.0,
            "position": "center",
            "transition": {"in": "fade", "out": "fade"},
        }
        for index, image_url in enumerate(request.character_images)
    ]
    if request.video_clips:
        # Pre-rendered segment clips are laid end to end instead of stills.
        image_clips = [
            {
                "asset": {"type": "video", "src": clip_url},
                "start": request.clip_start(index),
                "length": request.clip_length(index, default=5.0),
                "transition": {"in": "fade", "out": "fade"},
            }
            for index, clip_url in enumerate(request.video_clips)
        ]
    title_clips = [
        {
            "asset": {
                "type": "title",
                "text": cue.text,
                "style": "subtitle",
                "color": style.font_color,
                "size": "medium",
                "background": style.background_color,
            },
            "start": cue.start_time,
            "length": cue.end_time - cue.start_time,
            "position": style.position,
        }
        for cue in request.subtitles
    ]
    timeline: dict[str, Any] = {"tracks": [{"clips": image_clips}, {"clips": title_clips}]}
    if request.voiceover_url:
        timeline["soundtrack"] = {
            "src": request.voiceover_url,
            "effect": "fadeIn",
            "volume": opts.voice_options.volume or 1.0,
        }
    return {
        "timeline": timeline,
        "output": {
            "format": "mp4",
            "resolution": "hd",
            "aspectRatio": "9:16",
            "fps": opts.fps,
            "scaleTo": "preview",
        },
    }


def build_bannerbear_request(request: CompositionRequest, template_id: str) -> dict[str, Any]:
    return {
        "template": template_id,
        "modifications": [
            {
                "name": "background_image",
                "src": request.character_images[0] if request.character_images else PLACEHOLDER_THUMBNAIL_URL,
            },
            {
                "name": "subtitle_text",
                "text": request.subtitles[0].text if request.subtitles else "Generated Video",
            },
        ],
    }


def build_creatomate_composition(request: CompositionRequest) -> dict[str, Any]:
    opts = request.options
    style = opts.subtitle_style
    elements: list[dict[str, Any]] = [
        {
            "type": "image",
            "source": image_url,
            "x": "50%",
            "y": "50%",
            "width": "100%",
            "height": "100%",
            "time": request.clip_start(index),
            "duration": request.clip_length(index),
        }
        for index, image_url in enumerate(request.character_images)
    ]
    if request.video_clips:
        elements = [
            {
                "type": "video",
                "source": clip_url,
                "time": request.clip_start(index),
                "duration": request.clip_length(index, default=5.0),
            }
            for index, clip_url in enumerate(request.video_clips)
        ]
    if request.voiceover_url:
        elements.append(
            {
                "type": "audio",
                "source": request.voiceover_url,
                "time": 0,
                "volume": opts.voice_options.volume or 1.0,
            }
        )
    elements.extend(
        {
            "type": "text",
            "text": cue.text,
            "x": "50%",
            "y": "85%",
            "width": "90%",
            "height": "auto",
            "time": cue.start_time,
            "duration": cue.end_time - cue.start_time,
            "font_size": style.font_size,
            "color": style.font_color,
            "background_color": style.background_color,
            "text_align": "center",
        }
        for cue in request.subtitles
    )
    return {
        "output_format": "mp4",
        "width": opts.resolution.width,
        "height": opts.resolution.height,
        "frame_rate": opts.fps,
        "elements": elements,
    }


class _CloudRenderer(_ProviderAdapter):
    def _poll(self, job_id: str, fetch: Callable[[], PollOutcome]) -> str:
        return poll_job(
            fetch,
            provider=self.name,
            job_id=job_id,
            interval_seconds=config.RENDER_POLL_INTERVAL_SECONDS,
            max_attempts=config.RENDER_POLL_MAX_ATTEMPTS,
            error_interval_seconds=config.RENDER_POLL_ERROR_INTERVAL_SECONDS,
            tolerate_errors=True,
            sleep=self._sleep,
        )


class ShotstackRenderer(_CloudRenderer):
    """Shotstack Edit API: POST /render, poll GET /render/{id}."""

    def render(self, request: CompositionRequest) -> CompositionResult:
        logger.info("Generating video with Shotstack (%d clips)", len(request.character_images))
        result = self._submit("render", build_shotstack_edit(request))
        render_id = str(((result or {}).get("response") or {}).get("id") or "").strip()
        if not render_id:
            raise ProviderError("Shotstack response did not include a render id.", provider=self.name)
        logger.info("Shotstack render started with ID: %s", render_id)

        def fetch() -> PollOutcome:
            body = (self._fetch_status(f"render/{render_id}") or {}).get("response") or {}
            status = str(body.get("status") or "")
            if status == "done":
                return PollOutcome("done", url=str(body.get("url") or ""), raw_status=status)
            if status == "failed":
                return PollOutcome("failed", error=str(body.get("error") or ""), raw_status=status)
            return PollOutcome("pending", raw_status=status)

        return _composition_result(request, self._poll(render_id, fetch), self.name)


class BannerbearRenderer(_CloudRenderer):
    """Bannerbear template video: POST /videos, poll GET /videos/{uid}."""

    def render(self, request: CompositionRequest) -> CompositionResult:
        template_id = str(config.BANNERBEAR_TEMPLATE_ID or "").strip()
        if not template_id:
            raise ProviderError(
                "BANNERBEAR_TEMPLATE_ID is not set. Create a video template in Bannerbear first.",
                provider=self.name,
            )
        logger.info("Generating video with Bannerbear template %s", template_id)
        result = self._submit("videos", build_bannerbear_request(request, template_id))
        uid = str((result or {}).get("uid") or "").strip()
        if not uid:
            raise ProviderError("Bannerbear response did not include a video uid.", provider=self.name)

        def fetch() -> PollOutcome:
            body = self._fetch_status(f"videos/{uid}") or {}
            status = str(body.get("status") or "")
            if status == "completed":
                return PollOutcome("done", url=str(body.get("video_url") or ""), raw_status=status)
            if status == "failed":
                return PollOutcome("failed", raw_status=status)
            return PollOutcome("pending", raw_status=status)

        return _composition_result(request, self._poll(uid, fetch), self.name)


class CreatomateRenderer(_CloudRenderer):
    """Creatomate render: POST /renders, poll GET /renders/{id}."""

    def render(self, request: CompositionRequest) -> CompositionResult:
        logger.info("Generating video with Creatomate (%d images)", len(request.character_images))
        result = self._submit("renders", build_creatomate_composition(request))
        # The renders endpoint answers with one entry per output.
        if isinstance(result, list):
            result = result[0] if result else {}
        render_id = str((result or {}).get("id") or "").strip()
        if not render_id:
            raise ProviderError("Creatomate response did not include a render id.", provider=self.name)

        def fetch() -> PollOutcome:
            body = self._fetch_status(f"renders/{render_id}") or {}
            status = str(body.get("status") or "")
            if status == "succeeded":
                return PollOutcome("done", url=str(body.get("url") or ""), raw_status=status)
            if status == "failed":
                return PollOutcome("failed", error=str(body.get("error_message") or ""), raw_status=status)
            return PollOutcome("pending", raw_status=status)

        return _composition_result(request, self._poll(render_id, fetch), self.name)


# ---------------------------------------------------------------------------
# Generative video
# ---------------------------------------------------------------------------

class _Generator(_ProviderAdapter):
    def _poll(self, task_id: str, fetch: Callable[[], PollOutcome]) -> str:
        return poll_job(
            fetch,
            provider=self.name,
            job_id=task_id,
            interval_seconds=config.GENERATION_POLL_INTERVAL_SECONDS,
            max_attempts=config.GENERATION_POLL_MAX_ATTEMPTS,
            sleep_first=True,
            sleep=self._sleep,
        )

    def _result(self, request: AIVideoRequest, video_url: str, task_id: str | None) -> AIVideoResult:
        if not video_url:
            raise ProviderError(f"{self.name} finished without a video URL.", provider=self.name)
        return AIVideoResult(
            video_url=video_url,
            thumbnail_url=request.character_image_url or PLACEHOLDER_THUMBNAIL_URL,
            duration=request.duration or 5,
            provider=self.name,
            status="completed",
            task_id=task_id,
        )


class LumaGenerator(_Generator):
    """Luma Dream Machine: POST /generations, poll GET /generations/{id}."""

    def generate(self, request: AIVideoRequest) -> AIVideoResult:
        body: dict[str, Any] = {"prompt": request.prompt, "aspect_ratio": request.aspect_ratio}
        if request.character_image_url:
            body["keyframes"] = {"frame0": {"type": "image", "url": request.character_image_url}}
        data = self._submit("generations", body, label="Luma")
        task_id = str((data or {}).get("id") or "").strip()
        if not task_id:
            raise ProviderError("Luma response did not include a generation id.", provider=self.name)
        logger.info("Luma generation started: %s", task_id)

        def fetch() -> PollOutcome:
            status = self._fetch_status(f"generations/{task_id}", label="Luma generation") or {}
            state = str(status.get("state") or "")
            if state == "completed":
                url = ((status.get("video") or {}).get("url")) or ((status.get("assets") or {}).get("video")) or ""
                return PollOutcome("done", url=str(url), raw_status=state)
            if state == "failed":
                return PollOutcome("failed", error=str(status.get("failure_reason") or ""), raw_status=state)
            return PollOutcome("pending", raw_status=state)

        return self._result(request, self._poll(task_id, fetch), task_id)


class RunwayGenerator(_Generator):
    """RunwayML: POST /generations, poll GET /tasks/{id}."""

    def generate(self, request: AIVideoRequest) -> AIVideoResult:
        body: dict[str, Any] = {"model": config.RUNWAY_MODEL, "prompt": request.prompt}
        if request.character_image_url:
            body["image"] = request.character_image_url
        data = self._submit("generations", body, label="Runway")
        task_id = str((data or {}).get("id") or "").strip()
        if not task_id:
            raise ProviderError("Runway response did not include a task id.", provider=self.name)
        logger.info("Runway task started: %s", task_id)

        def fetch() -> PollOutcome:
            status = self._fetch_status(f"tasks/{task_id}", label="Runway generation") or {}
            state = str(status.get("status") or "")
            if state == "SUCCEEDED":
                output = status.get("output") or []
                return PollOutcome("done", url=str(output[0]) if output else "", raw_status=state)
            if state == "FAILED":
                return PollOutcome("failed", error=str(status.get("failure") or ""), raw_status=state)
            return PollOutcome("pending", raw_status=state)

        return self._result(request, self._poll(task_id, fetch), task_id)


class KlingGenerator(_Generator):
    """Kling AI is registered but has no integration yet; the chain moves past it."""

    def generate(self, request: AIVideoRequest) -> AIVideoResult:
        raise ProviderError("Kling AI integration not yet implemented", provider=self.name)


class AIMLGenerator(_Generator):
    """AI/ML API unified endpoint. Synchronous: the response carries the video."""

    def generate(self, request: AIVideoRequest) -> AIVideoResult:
        model = "luma/image-to-video" if request.character_image_url else "luma/text-to-video"
        body: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
        }
        if request.character_image_url:
            body["image_url"] = request.character_image_url
        data = self._submit("v1/video/generations", body, label="AI/ML API") or {}
        output = data.get("output") or []
        video_url = data.get("video_url") or (output[0] if isinstance(output, list) and output else "")
        if not video_url:
            video_url = _extract_video_url(data)
        task_id = data.get("id")
        return self._result(request, str(video_url or ""), str(task_id) if task_id else None)


_RENDERERS: dict[str, type[_CloudRenderer]] = {
    "shotstack": ShotstackRenderer,
    "bannerbear": BannerbearRenderer,
    "creatomate": CreatomateRenderer,
}

_GENERATORS: dict[str, type[_Generator]] = {
    "luma": LumaGenerator,
    "runway": RunwayGenerator,
    "kling": KlingGenerator,
    "aiml": AIMLGenerator,
}


def build_composition_renderer(
    spec: ProviderSpec,
    client: httpx.Client | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> CompositionRenderer:
    renderer_cls = _RENDERERS.get(spec.key)
    if renderer_cls is None:
        raise ProviderError(f"Unsupported composition provider: {spec.name}", provider=spec.name)
    return renderer_cls(spec, client, sleep=sleep)


def build_video_generator(
    spec: ProviderSpec,
    client: httpx.Client | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> VideoGenerator:
    generator_cls = _GENERATORS.get(spec.key)
    if generator_cls is None:
        raise ProviderError(f"Unsupported provider: {spec.name}", provider=spec.name)
    return generator_cls(spec, client, sleep=sleep)


__all__ = [
    "AIMLGenerator",
    "BannerbearRenderer",
    "CompositionRenderer",
    "CreatomateRenderer",
    "KlingGenerator",
    "LumaGenerator",
    "ProviderJobFailed",
    "RunwayGenerator",
    "ShotstackRenderer",
    "VideoGenerator",
    "build_composition_renderer",
    "build_http_client",
    "build_shotstack_edit",
    "build_video_generator",
    "download_video",
]
