import unittest

from trail_import.parsers.xml_parser import IMPORTED_TRAIL_TITLE, parse_xml, parse_xml_lenient
from trail_import.samples import SAMPLE_XML


class TestParseXml(unittest.TestCase):
    def test_sample_document(self):
        result = parse_xml(SAMPLE_XML)

        self.assertTrue(result.success)
        trail = result.trails[0]
        self.assertEqual(trail.title, "Vibe Coding")
        self.assertEqual(trail.slug, "vibe-coding")
        self.assertEqual(trail.icon, "💻")

        module = trail.modules[0]
        self.assertEqual(module.slug, "intro-vibe-coding")
        self.assertEqual(module.type, "THEORY")
        self.assertIn("Добро пожаловать", module.content)
        self.assertEqual(module.questions[0].question, "Что такое Vibe Coding?")
        self.assertEqual(module.questions[0].correct_answer, 1)

    def test_russian_tags(self):
        markup = (
            "<курс><название>Дизайн</название>"
            "<модули><модуль><название>Цвет</название><тип>теория</тип></модуль></модули>"
            "</курс>"
        )

        result = parse_xml(markup)

        trail = result.trails[0]
        self.assertEqual(trail.title, "Дизайн")
        self.assertEqual(trail.color, "#ec4899")
        self.assertEqual(trail.modules[0].title, "Цвет")

    def test_attributes_and_correct_index(self):
        markup = (
            '<trail title="Attr Course" slug="attr">'
            '<module title="First"><question><text>Which?</text>'
            "<option>one</option><option>two</option><correct>1</correct>"
            "</question></module></trail>"
        )

        result = parse_xml(markup)

        trail = result.trails[0]
        self.assertEqual(trail.slug, "attr")
        self.assertEqual(trail.modules[0].title, "First")
        self.assertEqual(trail.modules[0].type, "PRACTICE")
        self.assertEqual(trail.modules[0].questions[0].options, ["one", "two"])
        self.assertEqual(trail.modules[0].questions[0].correct_answer, 1)

    def test_malformed_markup_uses_lenient_reader(self):
        markup = "<trail><title>Broken</title><module><title>M1</title><content>text</module>"

        result = parse_xml(markup)

        self.assertTrue(result.success)
        self.assertTrue(any("lenient" in warning for warning in result.warnings))
        self.assertEqual(result.trails[0].title, "Broken")
        self.assertEqual(result.trails[0].modules[0].title, "M1")

    def test_modules_without_trail(self):
        result = parse_xml("<modules><module><title>Solo</title></module></modules>")

        self.assertTrue(result.success)
        self.assertEqual(result.trails[0].title, IMPORTED_TRAIL_TITLE)
        self.assertEqual(result.trails[0].modules[0].title, "Solo")
        self.assertIn("No trail elements found; a trail was created from the module elements.", result.warnings)

    def test_no_course_elements(self):
        result = parse_xml("<root><item>nothing</item></root>")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["No trail or module elements found in XML document."])

    def test_empty_document(self):
        result = parse_xml("  ")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["XML document is empty."])


class TestLenientReader(unittest.TestCase):
    def test_cdata_and_self_closing_tags(self):
        root = parse_xml_lenient("<trail><br/><content><![CDATA[a < b]]></content></trail>")

        trail = root.children[0]
        self.assertEqual([child.tag for child in trail.children], ["br", "content"])
        self.assertEqual(trail.children[1].text, "a < b")


if __name__ == "__main__":
    unittest.main()
