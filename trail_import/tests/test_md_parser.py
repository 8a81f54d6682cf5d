import unittest

from trail_import.parsers.md_parser import build_section_tree, extract_metadata, parse_md
from trail_import.samples import SAMPLE_MD
from trail_import.text_utils import detect_color


class TestParseMarkdown(unittest.TestCase):
    def test_sample_document(self):
        result = parse_md(SAMPLE_MD)

        self.assertTrue(result.success)
        trail = result.trails[0]
        self.assertEqual(trail.title, "Vibe Coding")
        self.assertEqual(trail.subtitle, "Научись кодить с AI")
        self.assertEqual(trail.color, "#6366f1")
        self.assertEqual(len(trail.modules), 1)

        module = trail.modules[0]
        self.assertEqual(module.title, "Введение в Vibe Coding")
        self.assertEqual(module.type, "PRACTICE")
        self.assertEqual(module.description, "Основы работы с AI-ассистентами")
        self.assertIn("### Добро пожаловать!", module.content)
        self.assertNotIn("В: Что такое", module.content)
        self.assertEqual(len(module.questions), 1)
        self.assertEqual(module.questions[0].correct_answer, 1)

    def test_frontmatter_overrides_trail_fields(self):
        text = "---\ntitle: Custom\nslug: custom-course\n---\n# Heading\n\n## Module\n\nBody"

        result = parse_md(text)

        trail = result.trails[0]
        self.assertEqual(trail.title, "Custom")
        self.assertEqual(trail.slug, "custom-course")
        self.assertEqual(trail.modules[0].content, "Body")

    def test_frontmatter_color_must_be_hex(self):
        valid = parse_md("---\ncolor: #112233\n---\n# Heading\n\n## Module\n\nBody").trails[0]
        invalid = parse_md("---\ncolor: red\n---\n# Heading\n\n## Module\n\nBody").trails[0]

        self.assertEqual(valid.color, "#112233")
        self.assertEqual(invalid.color, detect_color("Heading"))

    def test_module_comment_metadata(self):
        text = "# Course\n\n## Final work\n<!-- type: project\npoints: 150 -->\nShip it."

        result = parse_md(text)

        module = result.trails[0].modules[0]
        self.assertEqual(module.type, "PROJECT")
        self.assertEqual(module.points, 150)
        self.assertTrue(module.requires_submission)
        self.assertEqual(module.content, "Ship it.")

    def test_sections_without_h1(self):
        result = parse_md("## Lesson A\nText A\n\n## Lesson B\nText B")

        self.assertTrue(result.success)
        self.assertEqual(len(result.trails), 1)
        self.assertEqual(result.trails[0].title, "Lesson A")
        self.assertEqual([module.title for module in result.trails[0].modules], ["Lesson A", "Lesson B"])
        self.assertIn('No H1 heading; trail built from section "Lesson A".', result.warnings)

    def test_h1_without_subsections_gets_intro_module(self):
        result = parse_md("# Lonely Course\n\nOnly an introduction here.")

        trail = result.trails[0]
        self.assertEqual(len(trail.modules), 1)
        self.assertEqual(trail.modules[0].title, "Введение")
        self.assertEqual(trail.modules[0].slug, "lonely-course-intro")

    def test_headings_inside_code_fences_are_content(self):
        text = "# Course\n\n## Module\n\n```\n# not a heading\n```\n"

        result = parse_md(text)

        self.assertEqual(len(result.trails), 1)
        self.assertIn("# not a heading", result.trails[0].modules[0].content)

    def test_text_without_headings_uses_smart_parsing(self):
        result = parse_md("Just a paragraph without any headings in it.")

        self.assertTrue(result.success)
        self.assertIn("No Markdown headings found; smart parsing was used.", result.warnings)

    def test_empty_document(self):
        result = parse_md("")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Markdown document is empty."])


class TestSectionTree(unittest.TestCase):
    def test_nesting_follows_heading_levels(self):
        preamble, roots = build_section_tree("intro\n# A\n## B\n### C\n## D")

        self.assertEqual(preamble, ["intro"])
        self.assertEqual([root.title for root in roots], ["A"])
        self.assertEqual([child.title for child in roots[0].children], ["B", "D"])
        self.assertEqual(roots[0].children[0].children[0].title, "C")

    def test_metadata_values_are_typed(self):
        metadata, remaining = extract_metadata(["---", "points: 80", "type: практика", "---", "Body"])

        self.assertEqual(metadata, {"points": 80, "type": "PRACTICE"})
        self.assertEqual(remaining, ["Body"])

    def test_russian_metadata_keys_are_normalized(self):
        metadata, _ = extract_metadata(["---", "название: Свой курс", "требует отправки: да", "---"])

        self.assertEqual(metadata, {"title": "Свой курс", "requires_submission": "да"})


if __name__ == "__main__":
    unittest.main()
