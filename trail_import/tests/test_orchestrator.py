import unittest
from unittest.mock import patch

from trail_import.config import AILimits, AIParserConfig, ImportThresholds
from trail_import.observer import CollectingObserver
from trail_import.orchestrator import (
    SmartImportOptions,
    hybrid_import,
    merge_trails,
    parse_with_code,
    smart_import,
)
from trail_import.schema_models import ParsedModule, ParsedTrail, ParseResult, failed_result

AI_CONFIG = AIParserConfig(enabled=True, api_key="key")
NO_AI = AIParserConfig(enabled=False)

TWO_TRAILS = """=== TRAIL ===
title: First Course
=== MODULE ===
title: Intro
---
Hello
=== QUESTIONS ===
Q: Ready?
- Yes*
- No
=== TRAIL ===
title: Second Course
=== MODULE ===
title: Deep Dive
---
World
=== QUESTIONS ===
Q: Done?
- Yes*
- No"""

PLAIN_TEXT = "hello world\nsome plain text here"


def _ai_success(*titles):
    trails = [ParsedTrail(title=title, slug=title.lower().replace(" ", "-")) for title in titles]
    return ParseResult(success=True, trails=trails, parse_method="ai")


def _options(**overrides):
    values = {
        "use_ai": True,
        "ai_config": AI_CONFIG,
        "thresholds": ImportThresholds(),
        "limits": AILimits(),
        "observer": CollectingObserver(),
    }
    values.update(overrides)
    return SmartImportOptions(**values)


class TestSmartImport(unittest.IsolatedAsyncioTestCase):
    async def test_structured_text_skips_ai(self):
        with patch("trail_import.orchestrator.parse_with_ai") as ai:
            result = await smart_import(TWO_TRAILS, "course.txt", _options())

        ai.assert_not_called()
        self.assertTrue(result.success)
        self.assertEqual(result.parse_method, "code")
        self.assertEqual(result.detected_format, "txt")
        self.assertEqual(result.structure_confidence, 80)
        self.assertEqual([trail.title for trail in result.trails], ["First Course", "Second Course"])

    async def test_repeated_titles_get_unique_slugs(self):
        text = TWO_TRAILS.replace("Second Course", "First Course").replace("Deep Dive", "Intro")

        with patch("trail_import.orchestrator.parse_with_ai") as ai:
            result = await smart_import(text, "course.txt", _options())

        ai.assert_not_called()
        self.assertEqual([trail.slug for trail in result.trails], ["first-course", "first-course-2"])
        self.assertEqual(
            [module.slug for trail in result.trails for module in trail.modules],
            ["intro", "intro-2"],
        )

    async def test_low_confidence_text_goes_to_ai(self):
        observer = CollectingObserver()

        with patch("trail_import.orchestrator.parse_with_ai", return_value=_ai_success("Hello World")) as ai:
            result = await smart_import(PLAIN_TEXT, "notes.txt", _options(observer=observer))

        ai.assert_awaited_once()
        self.assertEqual(result.parse_method, "ai")
        self.assertEqual(result.trails[0].slug, "hello-world")
        self.assertEqual(result.structure_confidence, 0)
        self.assertIsNotNone(result.confidence_details)
        self.assertEqual(observer.names()[0], "import_started")

    async def test_ai_failure_falls_back_to_code(self):
        observer = CollectingObserver()
        failure = failed_result("AI returned invalid JSON.", parse_method="ai")

        with patch("trail_import.orchestrator.parse_with_ai", return_value=failure):
            result = await smart_import(PLAIN_TEXT, "notes.txt", _options(observer=observer))

        self.assertTrue(result.success)
        self.assertEqual(result.parse_method, "code")
        self.assertIn("AI parser failed (AI returned invalid JSON.); the code parser was used.", result.warnings)
        self.assertIn("ai_fallback", observer.names())
        self.assertEqual(observer.names()[-1], "import_finished")

    async def test_ai_is_retried_when_code_parser_fails(self):
        failure = failed_result("AI request failed.", parse_method="ai")

        with patch(
            "trail_import.orchestrator.parse_with_ai",
            side_effect=[failure, _ai_success("Recovered")],
        ) as ai:
            result = await smart_import("<root><nothing/></root>", "data.xml", _options())

        self.assertEqual(ai.call_count, 2)
        self.assertTrue(result.success)
        self.assertEqual(result.detected_format, "xml")
        self.assertEqual(result.trails[0].title, "Recovered")
        self.assertIn("The code parser failed; the AI parser was used.", result.warnings)

    async def test_use_ai_false_keeps_code_parser(self):
        with patch("trail_import.orchestrator.parse_with_ai") as ai:
            result = await smart_import(PLAIN_TEXT, "notes.txt", _options(use_ai=False))

        ai.assert_not_called()
        self.assertEqual(result.parse_method, "code")
        self.assertEqual(result.trails[0].title, "hello world")

    async def test_long_text_is_routed_to_chunked_parser(self):
        observer = CollectingObserver()

        with patch("trail_import.orchestrator.parse_with_ai") as ai, patch(
            "trail_import.orchestrator.parse_with_ai_chunked", return_value=_ai_success("Big Course")
        ) as chunked:
            result = await smart_import(
                PLAIN_TEXT, "notes.txt", _options(limits=AILimits(chunk_threshold_chars=10), observer=observer)
            )

        ai.assert_not_called()
        chunked.assert_awaited_once()
        self.assertEqual(result.trails[0].title, "Big Course")
        self.assertIn("chunked_routing", observer.names())

    async def test_ai_exception_is_contained(self):
        with patch("trail_import.orchestrator.parse_with_ai", side_effect=RuntimeError("socket closed")):
            result = await smart_import(PLAIN_TEXT, "notes.txt", _options())

        self.assertTrue(result.success)
        self.assertIn("AI parser failed (AI parsing failed: socket closed); the code parser was used.", result.warnings)


class TestUploadGuards(unittest.IsolatedAsyncioTestCase):
    async def test_empty_file(self):
        observer = CollectingObserver()

        result = await smart_import(b"", "empty.txt", _options(observer=observer))

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["File is empty; nothing to import."])
        self.assertEqual(observer.names(), ["import_rejected"])

    async def test_pdf_without_ai(self):
        result = await smart_import(b"%PDF-1.4\n%binary", "slides.pdf", _options(ai_config=NO_AI))

        self.assertFalse(result.success)
        self.assertEqual(result.detected_format, "pdf")
        self.assertIn("AI parser", result.errors[0])

    async def test_ai_only_format_without_ai_uses_text_parser(self):
        result = await smart_import(
            "title: Config Course\nSome description of the course goes here.", "course.yml", _options(ai_config=NO_AI)
        )

        self.assertEqual(result.detected_format, "yml")
        self.assertEqual(result.parse_method, "code")
        self.assertIn("Format yml needs the AI parser, which is not available; the text parser was used.", result.warnings)

    async def test_ai_only_format_ignores_use_ai_flag(self):
        with patch("trail_import.orchestrator.parse_with_ai", return_value=_ai_success("From Yaml")) as ai:
            result = await smart_import("title: x\nbody: y", "course.yaml", _options(use_ai=False))

        ai.assert_awaited_once()
        self.assertEqual(result.parse_method, "ai")


class TestHybridImport(unittest.IsolatedAsyncioTestCase):
    async def _hybrid(self, content, filename="notes.txt", config=AI_CONFIG, observer=None):
        return await hybrid_import(
            content,
            filename,
            config,
            thresholds=ImportThresholds(),
            limits=AILimits(),
            observer=observer or CollectingObserver(),
        )

    async def test_confident_code_result_is_kept(self):
        with patch("trail_import.orchestrator.parse_with_ai") as ai, patch(
            "trail_import.orchestrator.parse_with_ai_chunked"
        ) as chunked:
            result = await self._hybrid(TWO_TRAILS, "course.txt")

        ai.assert_not_called()
        chunked.assert_not_called()
        self.assertEqual(result.parse_method, "code")
        self.assertEqual(len(result.trails), 2)

    async def test_ai_with_more_trails_wins(self):
        with patch("trail_import.orchestrator.parse_with_ai", return_value=_ai_success("One", "Two")):
            result = await self._hybrid(PLAIN_TEXT)

        self.assertEqual(result.parse_method, "hybrid")
        self.assertEqual([trail.slug for trail in result.trails], ["one", "two"])

    async def test_equal_counts_are_merged_by_slug(self):
        observer = CollectingObserver()

        with patch("trail_import.orchestrator.parse_with_ai", return_value=_ai_success("Other")):
            result = await self._hybrid(PLAIN_TEXT, observer=observer)

        self.assertTrue(result.success)
        self.assertEqual(result.parse_method, "hybrid")
        self.assertEqual([trail.slug for trail in result.trails], ["hello-world", "other"])
        self.assertIn("trails_merged", observer.names())

    async def test_ai_failure_keeps_code_result(self):
        with patch("trail_import.orchestrator.parse_with_ai", return_value=failed_result("boom", parse_method="ai")):
            result = await self._hybrid(PLAIN_TEXT)

        self.assertEqual(result.parse_method, "code")
        self.assertIn("AI parser failed (boom); the code parser result was kept.", result.warnings)

    async def test_without_ai_returns_code_result(self):
        with patch("trail_import.orchestrator.parse_with_ai") as ai:
            result = await self._hybrid(PLAIN_TEXT, config=NO_AI)

        ai.assert_not_called()
        self.assertTrue(result.success)
        self.assertEqual(result.parse_method, "code")


class TestHelpers(unittest.TestCase):
    def test_merge_trails_prefers_code_trails(self):
        code = [ParsedTrail(title="A", slug="a"), ParsedTrail(title="B", slug="b")]
        ai = [ParsedTrail(title="B from AI", slug="b"), ParsedTrail(title="C", slug="c")]

        merged = merge_trails(code, ai)

        self.assertEqual([trail.title for trail in merged], ["A", "B", "C"])

    def test_merge_trails_makes_every_slug_unique(self):
        code = [
            ParsedTrail(title="Same", slug="same", modules=[ParsedModule(title="Intro", slug="intro")]),
            ParsedTrail(title="Same", slug="same", modules=[ParsedModule(title="Intro", slug="intro")]),
        ]
        ai = [ParsedTrail(title="Other", slug="other", modules=[ParsedModule(title="Intro", slug="intro")])]

        merged = merge_trails(code, ai)

        self.assertEqual([trail.slug for trail in merged], ["same", "same-2", "other"])
        self.assertEqual([trail.modules[0].slug for trail in merged], ["intro", "intro-2", "intro-3"])
        self.assertEqual(code[1].slug, "same")

    def test_parser_exception_becomes_failed_result(self):
        def broken(_text):
            raise ValueError("bad")

        with patch.dict("trail_import.orchestrator.TEXT_PARSERS", {"json": broken}):
            result = parse_with_code("{}", "json")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["JSON parser failed: bad"])

    def test_unknown_format_uses_text_parser(self):
        result = parse_with_code(PLAIN_TEXT.encode("utf-8"), "unknown", ImportThresholds())

        self.assertTrue(result.success)
        self.assertEqual(result.trails[0].title, "hello world")


if __name__ == "__main__":
    unittest.main()
