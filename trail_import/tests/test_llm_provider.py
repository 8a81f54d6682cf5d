import asyncio
import unittest
from unittest.mock import patch

import httpx

from trail_import import llm_provider


def _status_error(status_code, body):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status_code, json=body, request=request)
    return httpx.HTTPStatusError("request failed", request=request, response=response)


class TestAnthropicResponseParsing(unittest.TestCase):
    def test_collects_text_parts_only(self):
        payload = {
            "content": [
                {"type": "text", "text": "Part 1 "},
                {"type": "tool_use", "text": "ignored"},
                {"type": "text", "text": "Part 2"},
            ]
        }

        text = llm_provider._collect_anthropic_text(payload)

        self.assertEqual(text, "Part 1 Part 2")

    def test_missing_content(self):
        self.assertIsNone(llm_provider._collect_anthropic_text({"content": []}))


class TestGenerateTextWithAnthropic(unittest.IsolatedAsyncioTestCase):
    async def _generate(self, **overrides):
        arguments = {
            "api_key": "test-key",
            "model": "claude-test",
            "system_prompt": "Return JSON",
            "user_prompt": "Parse this",
            "max_output_tokens": 100,
            "timeout_seconds": 5,
        }
        arguments.update(overrides)
        return await llm_provider.generate_text_with_anthropic(**arguments)

    async def test_success_keeps_stop_reason_and_usage(self):
        payload = {
            "content": [{"type": "text", "text": '{"trails": []}'}],
            "stop_reason": "end_turn",
            "model": "claude-test-2",
            "usage": {"output_tokens": 12},
        }

        with patch("trail_import.llm_provider._post_json", return_value=payload) as post:
            result = await self._generate()

        self.assertEqual(result.status, "success")
        self.assertEqual(result.raw_response, '{"trails": []}')
        self.assertEqual(result.model, "claude-test-2")
        self.assertEqual(result.usage, {"output_tokens": 12})
        self.assertFalse(result.truncated)
        sent_payload = post.call_args.args[1]
        headers = post.call_args.args[2]
        self.assertEqual(sent_payload["system"], "Return JSON")
        self.assertEqual(sent_payload["max_tokens"], 100)
        self.assertEqual(headers["x-api-key"], "test-key")

    async def test_system_prompt_is_optional(self):
        payload = {"content": [{"type": "text", "text": "ok"}]}

        with patch("trail_import.llm_provider._post_json", return_value=payload) as post:
            await self._generate(system_prompt=None)

        self.assertNotIn("system", post.call_args.args[1])

    async def test_max_tokens_stop_reason_marks_truncation(self):
        payload = {"content": [{"type": "text", "text": '{"trails": ['}], "stop_reason": "max_tokens"}

        with patch("trail_import.llm_provider._post_json", return_value=payload):
            result = await self._generate()

        self.assertEqual(result.status, "success")
        self.assertTrue(result.truncated)

    async def test_empty_content_is_reported(self):
        with patch("trail_import.llm_provider._post_json", return_value={"content": []}):
            result = await self._generate()

        self.assertEqual(result.status, "error")
        self.assertEqual(result.error_kind, "empty")
        self.assertIn("did not contain text content", result.warnings[0])

    async def test_http_error_includes_api_message(self):
        error = _status_error(401, {"error": {"message": "invalid x-api-key"}})

        with patch("trail_import.llm_provider._post_json", side_effect=error):
            result = await self._generate()

        self.assertEqual(result.status, "error")
        self.assertEqual(result.error_kind, "http")
        self.assertEqual(result.warnings, ["Anthropic request failed with HTTP 401: invalid x-api-key"])

    async def test_timeout(self):
        with patch("trail_import.llm_provider._post_json", side_effect=asyncio.TimeoutError()):
            result = await self._generate()

        self.assertEqual(result.error_kind, "timeout")
        self.assertEqual(result.warnings, ["Anthropic did not respond within 5 seconds."])

    async def test_connection_failures_are_classified(self):
        cases = [
            ("[Errno -2] Name or service not known", "dns"),
            ("[Errno 111] Connection refused", "connection_refused"),
            ("unreachable", "network"),
        ]
        for message, expected_kind in cases:
            with self.subTest(message=message):
                with patch("trail_import.llm_provider._post_json", side_effect=httpx.ConnectError(message)):
                    result = await self._generate()

                self.assertEqual(result.status, "error")
                self.assertEqual(result.error_kind, expected_kind)


if __name__ == "__main__":
    unittest.main()
