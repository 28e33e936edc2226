from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

import config
from pipeline import availability
from pipeline.composition import STOCK_VIDEO_URLS, theme_hash
from pipeline.segment_videos import (
    PLACEHOLDER_FINAL_VIDEO_URL,
    combine_videos,
    generate_all_segment_videos,
    generate_fallback_segment_options,
    generate_segment_video,
    selected_clips,
)
from schemas.story import CharacterPhoto, ScriptSegment
from schemas.video import VideoOption

SEGMENT = ScriptSegment(id="segment-0-1700000000000-abc1234", title="Part 1", content="MAYA: Did you eat my cake?")
PHOTOS = [CharacterPhoto(character_id="c1", character_name="Maya", photo_url="https://img.example/maya.jpg")]


def _options(segment_id: str, selected: int = 0) -> list[VideoOption]:
    return [
        VideoOption(
            id=f"{segment_id}-ai-video-{i}",
            url=f"https://cdn.example/{segment_id}-{i}.mp4",
            selected=i == selected,
            thumbnail_url=f"https://img.example/{segment_id}-{i}.jpg",
            duration=5 + i,
        )
        for i in range(3)
    ]


class SegmentVideoTests(unittest.TestCase):
    def setUp(self):
        for name in ("FORCE_MOCK_GENERATION",):
            patcher = patch.object(config, name, True)
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_three_options_first_selected(self):
        options = generate_segment_video(SEGMENT, [], PHOTOS, "comedy")
        self.assertEqual(
            [o.id for o in options],
            [f"{SEGMENT.id}-ai-video-{i}" for i in range(3)],
        )
        self.assertEqual([o.selected for o in options], [True, False, False])
        self.assertTrue(all(o.provider == "Enhanced Mock" for o in options))

    def test_character_based_fallback_on_registry_error(self):
        with patch.object(config, "FORCE_MOCK_GENERATION", False), patch(
            "pipeline.availability.providers_of_kind", side_effect=ValueError("bad provider table")
        ):
            options = generate_segment_video(SEGMENT, [], PHOTOS, "comedy")
        base = len(PHOTOS) + theme_hash("comedy")
        self.assertEqual(
            [o.url for o in options],
            [STOCK_VIDEO_URLS[abs(base + i) % 5] for i in range(3)],
        )
        self.assertEqual(options[0].id, f"{SEGMENT.id}-video-0")
        self.assertEqual(options[0].thumbnail_url, "https://img.example/maya.jpg")
        self.assertEqual(options[0].duration, 30)

    def test_fallback_thumbnail_without_photos(self):
        options = generate_fallback_segment_options(SEGMENT, [], "drama", 1)
        self.assertEqual(
            options[0].thumbnail_url,
            "https://picsum.photos/seed/segment01700000000000abc1234-video-0/400/225",
        )

    def test_failed_segment_gets_placeholder_clips(self):
        other = ScriptSegment(id="segment-1", title="Part 2", content="")
        real = generate_segment_video

        def flaky(segment, *args, **kwargs):
            if segment.id == "segment-1":
                raise RuntimeError("boom")
            return real(segment, *args, **kwargs)

        with patch("pipeline.segment_videos.generate_segment_video", side_effect=flaky):
            videos = generate_all_segment_videos([SEGMENT, other], [], PHOTOS, "comedy")
        self.assertEqual(list(videos), [SEGMENT.id, "segment-1"])
        self.assertTrue(all(o.url == PLACEHOLDER_FINAL_VIDEO_URL for o in videos["segment-1"]))
        self.assertEqual(videos["segment-1"][2].thumbnail_url, "https://picsum.photos/seed/fallbacksegment12/400/225")

    def test_selected_clips_default_to_first(self):
        options = _options("s0")
        for option in options:
            option.selected = False
        clips = selected_clips({"s0": options, "s1": _options("s1", selected=2), "s2": []})
        self.assertEqual([(sid, o.id) for sid, o in clips], [("s0", "s0-ai-video-0"), ("s1", "s1-ai-video-2")])


class CombineVideoTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.root = Path(self.tmpdir.name)
        for name in ("SHOTSTACK_API_KEY", "BANNERBEAR_API_KEY", "CREATOMATE_API_KEY"):
            patcher = patch.object(config, name, "")
            patcher.start()
            self.addCleanup(patcher.stop)
        availability.reset_availability_cache()
        self.addCleanup(availability.reset_availability_cache)
        self.segment_videos = {"s0": _options("s0"), "s1": _options("s1", selected=1)}

    def test_metadata_when_no_renderer(self):
        result = combine_videos(self.segment_videos, "comedy", output_dir=self.root)
        self.assertEqual(result.video_url, PLACEHOLDER_FINAL_VIDEO_URL)
        self.assertEqual(result.provider, "Composition Metadata")
        self.assertEqual(result.duration, 11)
        self.assertEqual(result.thumbnail_url, "https://img.example/s0-0.jpg")
        doc = json.loads(Path(result.composition_path).read_text(encoding="utf-8"))
        self.assertEqual(
            doc["metadata"]["videoClips"],
            ["https://cdn.example/s0-0.mp4", "https://cdn.example/s1-1.mp4"],
        )

    def test_cloud_compile_with_creatomate(self):
        requests: list[httpx.Request] = []

        def handler(request):
            requests.append(request)
            url = str(request.url)
            if url.endswith("/templates"):
                return httpx.Response(200, json=[])
            if request.method == "POST":
                return httpx.Response(202, json=[{"id": "final-1"}])
            return httpx.Response(200, json={"status": "succeeded", "url": "https://cdn.creatomate/final-1.mp4"})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with patch.object(config, "CREATOMATE_API_KEY", "cm"):
            result = combine_videos(
                self.segment_videos, "comedy", output_dir=self.root, client=client, sleep=lambda s: None
            )

        self.assertEqual(result.video_url, "https://cdn.creatomate/final-1.mp4")
        self.assertEqual(result.provider, "Creatomate")
        body = json.loads(requests[1].content)
        videos = [e for e in body["elements"] if e["type"] == "video"]
        self.assertEqual([v["source"] for v in videos], ["https://cdn.example/s0-0.mp4", "https://cdn.example/s1-1.mp4"])
        self.assertEqual([v["time"] for v in videos], [0, 5])
        self.assertFalse(any(e["type"] == "audio" for e in body["elements"]))

    def test_nothing_to_combine(self):
        with self.assertRaises(ValueError):
            combine_videos({"s0": []}, output_dir=self.root)


if __name__ == "__main__":
    unittest.main()
