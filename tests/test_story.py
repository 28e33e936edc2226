from __future__ import annotations

import unittest
from unittest.mock import patch

import config
from pipeline import llm
from pipeline.llm import LLMError
from pipeline.story import (
    SCRIPT_TEMPLATES,
    character_summary,
    enhance_characters,
    extract_characters_from_segment,
    extract_characters_manually,
    generate_character_relationships,
    generate_characters_from_script,
    generate_fallback_characters,
    generate_script_with_fallback,
    generate_single_character,
    get_templates_for_theme,
    segment_script,
    validate_character,
)
from schemas.story import Character

SCRIPT = """SCENE 1: A kitchen at dawn.
MAYA: Did you eat my cake?
LEO: Define "eat".
MAYA: Leo!
GRANDMA ROSE: Children, please.
LEO: It was self defense."""


class ScriptTests(unittest.TestCase):
    def setUp(self):
        patcher = patch.object(config, "FORCE_MOCK_GENERATION", True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_template_when_text_model_unavailable(self):
        script = generate_script_with_fallback("comedy", "a wedding", "realistic", "comedy")
        self.assertEqual(script, SCRIPT_TEMPLATES["comedy"].content)

    def test_generated_script_is_trimmed(self):
        with patch("pipeline.story.call_llm", return_value="\n  FADE IN.\nMAYA: Hi.  \n") as mock_llm:
            script = generate_script_with_fallback("drama", "siblings", "noir", "drama")
        self.assertEqual(script, "FADE IN.\nMAYA: Hi.")
        user_prompt = mock_llm.call_args[0][1]
        self.assertIn("User Request: siblings", user_prompt)
        self.assertIn("noir", user_prompt)

    def test_empty_generation_uses_template(self):
        with patch("pipeline.story.call_llm", return_value="   "):
            script = generate_script_with_fallback("horror", "", "realistic", "horror")
        self.assertEqual(script, SCRIPT_TEMPLATES["horror"].content)

    def test_unknown_theme_gets_drama_template(self):
        self.assertEqual(get_templates_for_theme("western"), [SCRIPT_TEMPLATES["drama"]])
        self.assertEqual(get_templates_for_theme("COMEDY"), [SCRIPT_TEMPLATES["comedy"]])


class SegmentTests(unittest.TestCase):
    def test_lines_are_distributed_evenly(self):
        script = "\n".join(f"Line {i}" for i in range(9))
        segments = segment_script(script, 3)
        self.assertEqual([s.title for s in segments], ["Part 1", "Part 2", "Part 3"])
        self.assertEqual(segments[1].content, "Line 3\nLine 4\nLine 5")
        self.assertEqual(len({s.id for s in segments}), 3)

    def test_blank_lines_are_ignored(self):
        segments = segment_script("A\n\nB\n\nC\n\n\nD\nE\nF", 2)
        self.assertEqual(segments[0].content, "A\nB\nC")
        self.assertEqual(segments[1].content, "D\nE\nF")

    def test_thin_segments_get_sample_content(self):
        segments = segment_script("Only one line", 2)
        self.assertEqual(len(segments), 2)
        self.assertIn("Part 1", segments[0].content)
        self.assertIn("Part 2", segments[1].content)

    def test_invalid_input(self):
        with self.assertRaises(ValueError):
            segment_script("   ", 3)
        with self.assertRaises(ValueError):
            segment_script("text", 0)


class CharacterTests(unittest.TestCase):
    def setUp(self):
        patcher = patch.object(config, "FORCE_MOCK_GENERATION", True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_dialogue_names_in_order(self):
        self.assertEqual(extract_characters_manually(SCRIPT), ["MAYA", "LEO", "GRANDMA ROSE"])

    def test_fallback_characters_pad_with_generic_names(self):
        characters = generate_fallback_characters("MAYA: hi", 3)
        self.assertEqual([c.name for c in characters], ["MAYA", "Character 2", "Character 3"])
        self.assertEqual(characters[0].role, "protagonist")
        self.assertEqual(characters[1].role, "supporting")
        self.assertTrue(all(validate_character(c) for c in characters))

    def test_llm_characters(self):
        payload = {
            "characters": [
                {"name": "Maya", "description": "Baker", "traits": ["proud"], "gender": "female", "age": "young"},
                {"name": "Leo", "description": "Brother"},
                "garbage",
            ]
        }
        with patch("pipeline.story.call_llm_json", return_value=payload):
            characters = generate_characters_from_script(SCRIPT, "anime", "comedy", 2)
        self.assertEqual([c.name for c in characters], ["Maya", "Leo"])
        self.assertEqual(characters[0].gender, "female")
        self.assertEqual(characters[1].traits, ["intelligent", "determined", "charismatic"])
        self.assertNotEqual(characters[0].id, characters[1].id)

    def test_llm_failure_uses_script_names(self):
        characters = generate_characters_from_script(SCRIPT, "anime", "comedy", 2)
        self.assertEqual([c.name for c in characters], ["MAYA", "LEO"])

    def test_single_character_requires_object(self):
        with patch("pipeline.story.call_llm_json", return_value=[{"name": "x"}]):
            with self.assertRaises(LLMError):
                generate_single_character("a pirate", "fantasy", "adventure")
        with patch("pipeline.story.call_llm_json", return_value={"name": "Captain Reed"}):
            self.assertEqual(generate_single_character("a pirate", "fantasy", "adventure").name, "Captain Reed")

    def test_enhancement_keeps_original_on_failure(self):
        maya = Character(id="c1", name="Maya", description="Baker", traits=["proud"])
        leo = Character(id="c2", name="Leo", description="Brother", traits=["sly"])
        responses = [{"description": "A baker with a secret", "traits": ["proud", "secretive"]}, LLMError("down")]
        with patch("pipeline.story.call_llm_json", side_effect=responses):
            enhanced = enhance_characters([maya, leo], "noir", "mystery")
        self.assertEqual(enhanced[0].description, "A baker with a secret")
        self.assertEqual(enhanced[0].id, "c1")
        self.assertEqual(enhanced[1], leo)

    def test_relationships(self):
        maya = Character(id="c1", name="Maya", description="Baker")
        with patch("pipeline.story.call_llm_json", return_value={"Maya": "Leo's sister"}):
            self.assertEqual(generate_character_relationships([maya], "drama"), {"Maya": ["Leo's sister"]})
        self.assertEqual(generate_character_relationships([maya], "drama"), {})

    def test_summary(self):
        maya = Character(id="c1", name="Maya", role="protagonist", traits=["a", "b", "c", "d"])
        self.assertEqual(character_summary(maya), "Maya - protagonist - a, b, c")
        self.assertFalse(validate_character(maya))


class SegmentCharacterTests(unittest.TestCase):
    def setUp(self):
        patcher = patch.object(config, "FORCE_MOCK_GENERATION", True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_fallback_names_follow_theme(self):
        characters = extract_characters_from_segment("content", "Launch", "scifi")
        self.assertEqual([c.name for c in characters], ["Captain Nova", "Engineer Zeta"])
        self.assertIn('"Launch"', characters[0].description)

    def test_llm_segment_characters(self):
        rows = [{"name": "Maya", "traits": ["a", "b", "c", "d", "e", "f"], "role": "Protagonist"}]
        with patch("pipeline.story.call_llm_json", return_value=rows):
            characters = extract_characters_from_segment("MAYA: hi", "Intro", "comedy")
        self.assertEqual(characters[0].name, "Maya")
        self.assertEqual(len(characters[0].traits), 5)
        self.assertEqual(characters[0].description, "A character suitable for a comedy theme video")


class TextServiceDownTests(unittest.TestCase):
    """A text model that keeps failing with connection errors still yields fallbacks."""

    def setUp(self):
        def unreachable(*args):
            raise ConnectionError("network unreachable")

        patchers = (
            patch.object(config, "FORCE_MOCK_GENERATION", False),
            patch.object(config, "DEFAULT_TEXT_PROVIDER", "google"),
            patch.object(config, "GOOGLE_API_KEY", "AIza-real-looking-key"),
            patch.dict(llm._PROVIDERS, {"google": unreachable}),
            patch.object(llm._call_with_retry.retry, "sleep", lambda seconds: None),
        )
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_script_uses_template(self):
        script = generate_script_with_fallback("comedy", "a wedding", "realistic", "comedy")
        self.assertEqual(script, SCRIPT_TEMPLATES["comedy"].content)

    def test_characters_use_dialogue_names(self):
        characters = generate_characters_from_script(SCRIPT, "realistic", "comedy", 2)
        self.assertEqual([c.name for c in characters], ["MAYA", "LEO"])

    def test_segment_characters_use_theme_defaults(self):
        characters = extract_characters_from_segment("They run.", "Part 1", "scifi")
        self.assertEqual([c.name for c in characters], ["Captain Nova", "Engineer Zeta"])

    def test_relationships_are_empty(self):
        characters = [Character(id="c1", name="Maya", description="A baker")]
        self.assertEqual(generate_character_relationships(characters, "comedy"), {})


if __name__ == "__main__":
    unittest.main()
