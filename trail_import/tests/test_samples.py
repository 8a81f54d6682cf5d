import json
import unittest

from trail_import.format_detection import detect_format
from trail_import.samples import SAMPLE_FORMATS, SAMPLE_JSON, generate_sample_format
from trail_import.schema_models import TrailImportError


class TestSamples(unittest.TestCase):
    def test_every_sample_format_has_a_document(self):
        for fmt in SAMPLE_FORMATS:
            with self.subTest(fmt=fmt):
                self.assertTrue(generate_sample_format(fmt).strip())

    def test_json_sample_is_pretty_printed(self):
        text = generate_sample_format("JSON")

        self.assertEqual(json.loads(text), SAMPLE_JSON)
        self.assertIn("Vibe Coding", text)
        self.assertIn("\n  ", text)

    def test_aliases(self):
        self.assertEqual(generate_sample_format(".md"), generate_sample_format("markdown"))
        self.assertEqual(generate_sample_format("text"), generate_sample_format("txt"))

    def test_samples_are_detected_without_a_filename(self):
        for fmt in ("json", "xml", "md"):
            with self.subTest(fmt=fmt):
                self.assertEqual(detect_format(None, generate_sample_format(fmt)), fmt)

    def test_unknown_format(self):
        with self.assertRaises(TrailImportError):
            generate_sample_format("pdf")


if __name__ == "__main__":
    unittest.main()
