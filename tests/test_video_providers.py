from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

import config
from pipeline.errors import ProviderError, ProviderJobFailed, ProviderUnavailable
from pipeline.provider_registry import get_provider
from pipeline.video_providers import (
    AIMLGenerator,
    BannerbearRenderer,
    CreatomateRenderer,
    KlingGenerator,
    LumaGenerator,
    RunwayGenerator,
    ShotstackRenderer,
    build_composition_renderer,
    build_shotstack_edit,
    build_video_generator,
    download_video,
)
from schemas.video import AIVideoRequest, CompositionRequest, SubtitleSegment, VideoSegment


class _Recorder:
    """MockTransport handler answering from a list of (method, url fragment, response) rules."""

    def __init__(self, rules):
        self.rules = list(rules)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for index, (method, fragment, response) in enumerate(self.rules):
            if request.method == method and str(request.url).endswith(fragment):
                self.rules.pop(index)
                return response
        return httpx.Response(404, text="no rule")

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


def _request() -> CompositionRequest:
    return CompositionRequest(
        segments=[
            VideoSegment(id="segment_0", text="Hello there.", duration=3),
            VideoSegment(id="segment_1", text="General Kenobi.", duration=4),
        ],
        voiceover_url="/tmp/speech.wav",
        character_images=["https://img.example/a.jpg", "https://img.example/b.jpg"],
        subtitles=[SubtitleSegment(start_time=0, end_time=3, text="Hello there.")],
        theme="drama",
    )


class _KeysMixin:
    def _keys(self, **values):
        names = (
            "SHOTSTACK_API_KEY", "BANNERBEAR_API_KEY", "CREATOMATE_API_KEY",
            "LUMA_API_KEY", "RUNWAY_API_KEY", "KLING_API_KEY", "AIML_API_KEY",
        )
        for name in names:
            patcher = patch.object(config, name, values.get(name, "test-key"))
            patcher.start()
            self.addCleanup(patcher.stop)


class CompositionRendererTests(_KeysMixin, unittest.TestCase):
    def setUp(self):
        self._keys()
        self.sleeps: list[float] = []

    def test_shotstack_submits_timeline_and_polls(self):
        rec = _Recorder([
            ("POST", "/stage/render", httpx.Response(201, json={"response": {"id": "r-1"}})),
            ("GET", "/stage/render/r-1", httpx.Response(200, json={"response": {"status": "rendering"}})),
            ("GET", "/stage/render/r-1", httpx.Response(
                200, json={"response": {"status": "done", "url": "https://cdn.shotstack/r-1.mp4"}}
            )),
        ])
        renderer = ShotstackRenderer(get_provider("shotstack"), rec.client(), sleep=self.sleeps.append)
        result = renderer.render(_request())

        self.assertEqual(result.video_url, "https://cdn.shotstack/r-1.mp4")
        self.assertEqual(result.provider, "Shotstack")
        self.assertEqual(result.thumbnail_url, "https://img.example/a.jpg")
        self.assertEqual(result.duration, 7)
        self.assertEqual(len(result.subtitles), 1)
        self.assertEqual(self.sleeps, [config.RENDER_POLL_INTERVAL_SECONDS])

        edit = rec.body(0)
        clips = edit["timeline"]["tracks"][0]["clips"]
        self.assertEqual([c["start"] for c in clips], [0, 3])
        self.assertEqual([c["length"] for c in clips], [3, 4])
        self.assertEqual(edit["timeline"]["soundtrack"]["src"], "/tmp/speech.wav")
        self.assertEqual(edit["output"]["aspectRatio"], "9:16")
        self.assertEqual(rec.requests[0].headers["x-api-key"], "test-key")

    def test_shotstack_failed_render_raises(self):
        rec = _Recorder([
            ("POST", "/stage/render", httpx.Response(201, json={"response": {"id": "r-2"}})),
            ("GET", "/stage/render/r-2", httpx.Response(
                200, json={"response": {"status": "failed", "error": "asset 404"}}
            )),
        ])
        renderer = ShotstackRenderer(get_provider("shotstack"), rec.client(), sleep=self.sleeps.append)
        with self.assertRaises(ProviderJobFailed) as ctx:
            renderer.render(_request())
        self.assertIn("asset 404", str(ctx.exception))

    def test_submit_error_carries_status_code(self):
        rec = _Recorder([("POST", "/stage/render", httpx.Response(500, text="internal"))])
        renderer = ShotstackRenderer(get_provider("shotstack"), rec.client(), sleep=self.sleeps.append)
        with self.assertRaises(ProviderError) as ctx:
            renderer.render(_request())
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(str(ctx.exception), "Shotstack API error: 500 - internal")

    def test_status_check_errors_are_retried_until_done(self):
        rec = _Recorder([
            ("POST", "/stage/render", httpx.Response(201, json={"response": {"id": "r-3"}})),
            ("GET", "/stage/render/r-3", httpx.Response(503, text="busy")),
            ("GET", "/stage/render/r-3", httpx.Response(
                200, json={"response": {"status": "done", "url": "https://cdn.shotstack/r-3.mp4"}}
            )),
        ])
        renderer = ShotstackRenderer(get_provider("shotstack"), rec.client(), sleep=self.sleeps.append)
        self.assertEqual(renderer.render(_request()).video_url, "https://cdn.shotstack/r-3.mp4")
        self.assertEqual(self.sleeps, [config.RENDER_POLL_ERROR_INTERVAL_SECONDS])

    def test_bannerbear_requires_template(self):
        with patch.object(config, "BANNERBEAR_TEMPLATE_ID", ""):
            renderer = BannerbearRenderer(get_provider("bannerbear"), _Recorder([]).client())
            with self.assertRaises(ProviderError) as ctx:
                renderer.render(_request())
        self.assertIn("BANNERBEAR_TEMPLATE_ID", str(ctx.exception))

    def test_bannerbear_template_video(self):
        rec = _Recorder([
            ("POST", "/v2/videos", httpx.Response(202, json={"uid": "bb-1"})),
            ("GET", "/v2/videos/bb-1", httpx.Response(
                200, json={"status": "completed", "video_url": "https://cdn.bannerbear/bb-1.mp4"}
            )),
        ])
        with patch.object(config, "BANNERBEAR_TEMPLATE_ID", "tmpl-9"):
            renderer = BannerbearRenderer(get_provider("bannerbear"), rec.client(), sleep=self.sleeps.append)
            result = renderer.render(_request())
        self.assertEqual(result.video_url, "https://cdn.bannerbear/bb-1.mp4")
        body = rec.body(0)
        self.assertEqual(body["template"], "tmpl-9")
        self.assertEqual(body["modifications"][0]["src"], "https://img.example/a.jpg")
        self.assertEqual(body["modifications"][1]["text"], "Hello there.")

    def test_creatomate_accepts_list_response(self):
        rec = _Recorder([
            ("POST", "/v1/renders", httpx.Response(202, json=[{"id": "cm-1", "status": "planned"}])),
            ("GET", "/v1/renders/cm-1", httpx.Response(
                200, json={"status": "succeeded", "url": "https://cdn.creatomate/cm-1.mp4"}
            )),
        ])
        renderer = CreatomateRenderer(get_provider("creatomate"), rec.client(), sleep=self.sleeps.append)
        result = renderer.render(_request())
        self.assertEqual(result.video_url, "https://cdn.creatomate/cm-1.mp4")
        self.assertEqual(result.provider, "Creatomate")
        types = [e["type"] for e in rec.body(0)["elements"]]
        self.assertEqual(types, ["image", "image", "audio", "text"])

    def test_missing_credentials_raise_unavailable(self):
        with patch.object(config, "SHOTSTACK_API_KEY", ""):
            with self.assertRaises(ProviderUnavailable):
                build_composition_renderer(get_provider("shotstack"))

    def test_video_clips_replace_images_and_skip_empty_soundtrack(self):
        request = CompositionRequest(
            segments=[VideoSegment(id="s0", text="", duration=5), VideoSegment(id="s1", text="", duration=6)],
            video_clips=["https://v.example/0.mp4", "https://v.example/1.mp4"],
            character_images=["https://img.example/a.jpg"],
        )
        edit = build_shotstack_edit(request)
        clips = edit["timeline"]["tracks"][0]["clips"]
        self.assertEqual([c["asset"]["type"] for c in clips], ["video", "video"])
        self.assertEqual([c["start"] for c in clips], [0, 5])
        self.assertNotIn("soundtrack", edit["timeline"])


class GeneratorTests(_KeysMixin, unittest.TestCase):
    def setUp(self):
        self._keys()
        self.sleeps: list[float] = []

    def test_luma_image_to_video(self):
        rec = _Recorder([
            ("POST", "/dream-machine/v1/generations", httpx.Response(201, json={"id": "lu-1"})),
            ("GET", "/generations/lu-1", httpx.Response(200, json={"state": "dreaming"})),
            ("GET", "/generations/lu-1", httpx.Response(
                200, json={"state": "completed", "assets": {"video": "https://cdn.luma/lu-1.mp4"}}
            )),
        ])
        generator = LumaGenerator(get_provider("luma"), rec.client(), sleep=self.sleeps.append)
        result = generator.generate(
            AIVideoRequest(prompt="A hero walks", character_image_url="https://img.example/a.jpg", duration=5)
        )
        self.assertEqual(result.video_url, "https://cdn.luma/lu-1.mp4")
        self.assertEqual(result.thumbnail_url, "https://img.example/a.jpg")
        self.assertEqual(result.task_id, "lu-1")
        self.assertEqual(result.provider, "Luma Dream Machine")
        self.assertEqual(rec.body(0)["keyframes"]["frame0"]["url"], "https://img.example/a.jpg")
        self.assertEqual(self.sleeps, [config.GENERATION_POLL_INTERVAL_SECONDS] * 2)

    def test_luma_failure_reason(self):
        rec = _Recorder([
            ("POST", "/generations", httpx.Response(201, json={"id": "lu-2"})),
            ("GET", "/generations/lu-2", httpx.Response(200, json={"state": "failed", "failure_reason": "nsfw"})),
        ])
        generator = LumaGenerator(get_provider("luma"), rec.client(), sleep=self.sleeps.append)
        with self.assertRaises(ProviderJobFailed) as ctx:
            generator.generate(AIVideoRequest(prompt="x"))
        self.assertIn("nsfw", str(ctx.exception))

    def test_runway_task(self):
        rec = _Recorder([
            ("POST", "/v1/generations", httpx.Response(200, json={"id": "rw-1"})),
            ("GET", "/v1/tasks/rw-1", httpx.Response(
                200, json={"status": "SUCCEEDED", "output": ["https://cdn.runway/rw-1.mp4"]}
            )),
        ])
        generator = RunwayGenerator(get_provider("runway"), rec.client(), sleep=self.sleeps.append)
        result = generator.generate(AIVideoRequest(prompt="city at night", duration=10))
        self.assertEqual(result.video_url, "https://cdn.runway/rw-1.mp4")
        self.assertEqual(result.duration, 10)
        self.assertEqual(rec.body(0)["model"], config.RUNWAY_MODEL)
        self.assertEqual(rec.requests[0].headers["authorization"], "Bearer test-key")

    def test_submit_without_id_does_not_poll(self):
        cases = (
            (LumaGenerator, "luma", "/dream-machine/v1/generations", "generation id"),
            (RunwayGenerator, "runway", "/v1/generations", "task id"),
        )
        for generator_cls, key, path, message in cases:
            with self.subTest(provider=key):
                rec = _Recorder([("POST", path, httpx.Response(200, json={"state": "queued"}))])
                generator = generator_cls(get_provider(key), rec.client(), sleep=self.sleeps.append)
                with self.assertRaises(ProviderError) as ctx:
                    generator.generate(AIVideoRequest(prompt="x"))
                self.assertIn(message, str(ctx.exception))
                self.assertEqual(len(rec.requests), 1)
        self.assertEqual(self.sleeps, [])

    def test_kling_is_not_integrated(self):
        generator = KlingGenerator(get_provider("kling"), _Recorder([]).client())
        with self.assertRaises(ProviderError) as ctx:
            generator.generate(AIVideoRequest(prompt="x"))
        self.assertIn("not yet implemented", str(ctx.exception))

    def test_aiml_text_to_video_is_synchronous(self):
        rec = _Recorder([
            ("POST", "/v1/video/generations", httpx.Response(
                200, json={"id": "am-1", "data": [{"video": {"url": "https://cdn.aiml/am-1.mp4"}}]}
            )),
        ])
        generator = AIMLGenerator(get_provider("aiml"), rec.client(), sleep=self.sleeps.append)
        result = generator.generate(AIVideoRequest(prompt="ocean"))
        self.assertEqual(result.video_url, "https://cdn.aiml/am-1.mp4")
        self.assertEqual(rec.body(0)["model"], "luma/text-to-video")
        self.assertEqual(self.sleeps, [])

    def test_empty_video_url_is_an_error(self):
        rec = _Recorder([("POST", "/v1/video/generations", httpx.Response(200, json={"id": "am-2"}))])
        generator = AIMLGenerator(get_provider("aiml"), rec.client())
        with self.assertRaises(ProviderError):
            generator.generate(AIVideoRequest(prompt="ocean", character_image_url="https://img.example/a.jpg"))
        self.assertEqual(rec.body(0)["model"], "luma/image-to-video")

    def test_unsupported_generator(self):
        with self.assertRaises(ProviderError):
            build_video_generator(get_provider("shotstack"))


class DownloadTests(unittest.TestCase):
    def test_streams_to_target(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x00\x01mp4-bytes")

        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "nested" / "final.mp4"
            client = httpx.Client(transport=httpx.MockTransport(handler))
            path = download_video("https://cdn.example/final.mp4", target, client)
            self.assertEqual(path.read_bytes(), b"\x00\x01mp4-bytes")

    def test_blank_url_raises(self):
        with self.assertRaises(ProviderError):
            download_video("  ", Path("unused.mp4"))


if __name__ == "__main__":
    unittest.main()
