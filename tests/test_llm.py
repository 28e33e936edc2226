from __future__ import annotations

import unittest
from unittest.mock import patch

import config
from pipeline import llm
from pipeline.llm import LLMError, call_llm, call_llm_json, is_llm_configured, parse_json_payload, strip_code_fences


class ParseJsonTests(unittest.TestCase):
    def test_strips_markdown_fences(self):
        self.assertEqual(strip_code_fences('```json\n[{"a": 1}]\n```'), '[{"a": 1}]')

    def test_plain_json(self):
        self.assertEqual(parse_json_payload('{"name": "Jenny"}'), {"name": "Jenny"})

    def test_trailing_commas_are_repaired(self):
        self.assertEqual(parse_json_payload('[{"name": "Jenny", "traits": ["brave",],},]'), [
            {"name": "Jenny", "traits": ["brave"]}
        ])

    def test_prose_around_payload(self):
        raw = 'Here are your characters:\n[{"name": "Max"}]\nEnjoy!'
        self.assertEqual(parse_json_payload(raw), [{"name": "Max"}])

    def test_unparseable_raises_value_error(self):
        with self.assertRaises(ValueError):
            parse_json_payload("no json here")


class CallLlmTests(unittest.TestCase):
    def setUp(self):
        for name, value in (("FORCE_MOCK_GENERATION", False), ("DEFAULT_TEXT_PROVIDER", "google")):
            patcher = patch.object(config, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_dispatches_to_provider(self):
        calls = []

        def fake(system_prompt, user_prompt, model, temperature, max_tokens):
            calls.append((model, temperature, max_tokens))
            return "scripted reply"

        with patch.dict(llm._PROVIDERS, {"google": fake}):
            self.assertEqual(call_llm("sys", "user", temperature=0.2, max_tokens=99), "scripted reply")
        self.assertEqual(calls, [(config.GOOGLE_TEXT_MODEL, 0.2, 99)])

    def test_force_mock_disables_text_generation(self):
        with patch.object(config, "FORCE_MOCK_GENERATION", True):
            with self.assertRaises(LLMError):
                call_llm("sys", "user")
            self.assertFalse(is_llm_configured("google"))

    def test_unknown_provider(self):
        with self.assertRaises(LLMError) as ctx:
            call_llm("sys", "user", provider="mystery")
        self.assertIn("Unknown provider", str(ctx.exception))

    def test_missing_key_is_llm_error(self):
        with patch.object(config, "GOOGLE_API_KEY", ""):
            self.assertFalse(is_llm_configured("google"))
            with self.assertRaises(LLMError):
                call_llm("sys", "user")

    def test_non_retryable_error_is_wrapped(self):
        def fake(*args):
            raise ValueError("malformed request")

        with patch.dict(llm._PROVIDERS, {"google": fake}):
            with self.assertRaises(LLMError) as ctx:
                call_llm("sys", "user")
        self.assertIn("malformed request", str(ctx.exception))
        self.assertIsInstance(ctx.exception.cause, ValueError)

    def test_transient_error_after_retries_is_llm_error(self):
        attempts = []

        def unreachable(*args):
            attempts.append(args)
            raise ConnectionError("network unreachable")

        with patch.dict(llm._PROVIDERS, {"google": unreachable}), patch.object(
            llm._call_with_retry.retry, "sleep", lambda seconds: None
        ):
            with self.assertRaises(LLMError) as ctx:
                call_llm("sys", "user")
        self.assertEqual(len(attempts), 3)
        self.assertIn("network unreachable", str(ctx.exception))
        self.assertIsInstance(ctx.exception.cause, ConnectionError)

    def test_call_llm_json(self):
        with patch.dict(llm._PROVIDERS, {"google": lambda *a: '```json\n{"ok": true}\n```'}):
            self.assertEqual(call_llm_json("sys", "user"), {"ok": True})
        with patch.dict(llm._PROVIDERS, {"google": lambda *a: "sorry, I cannot"}):
            with self.assertRaises(LLMError):
                call_llm_json("sys", "user")

    def test_connection_check(self):
        with patch.object(llm, "call_llm", return_value="Connection successful"):
            self.assertTrue(llm.test_llm_connection()["success"])
        with patch.object(llm, "call_llm", side_effect=LLMError("no key")):
            result = llm.test_llm_connection()
        self.assertFalse(result["success"])
        self.assertIn("no key", result["message"])


if __name__ == "__main__":
    unittest.main()
