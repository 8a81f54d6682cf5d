import unittest

from trail_import.containers import OLE_SIGNATURE
from trail_import.parsers.doc_parser import extract_readable_text, extract_text_from_ole, parse_doc, rtf_to_text

RTF_COURSE = (
    rb"{\rtf1\ansi{\fonttbl{\f0 Arial;}}\f0 # Course Title\par "
    rb"## Module One\par Some text here for the module.\par}"
)

OLE_TEXT = (
    "ВВЕДЕНИЕ В ПРОГРАММИРОВАНИЕ\n"
    "Модуль 1: Основы синтаксиса\n"
    "Переменные хранят данные и бывают разных типов. Функции помогают переиспользовать код."
)


def _unicode_escape(char):
    return "\\" + f"u{ord(char)}"


class TestRtf(unittest.TestCase):
    def test_control_words_and_destinations(self):
        text = rtf_to_text(RTF_COURSE.decode("latin-1"))

        self.assertEqual(text, "# Course Title\n## Module One\nSome text here for the module.")

    def test_hex_escapes_are_cp1251(self):
        self.assertEqual(rtf_to_text(r"{\rtf1 \'cf\'f0\'e8\'e2\'e5\'f2}"), "Привет")

    def test_unicode_escapes_skip_fallback_characters(self):
        cyrillic = "".join(_unicode_escape(char) + fallback for char, fallback in zip("При", ("\\'cf", "\\'f0", "\\'e8")))

        self.assertEqual(rtf_to_text("{\\rtf1\\ansi\\uc1" + cyrillic + " ok\\par}"), "При ok")
        self.assertEqual(rtf_to_text("{\\rtf1" + _unicode_escape("Д") + "?" + _unicode_escape("а") + "?}"), "Да")
        self.assertEqual(
            rtf_to_text("{\\rtf1\\uc2" + _unicode_escape("Д") + "??\\uc0" + _unicode_escape("а") + " x}"),
            "Даx",
        )

    def test_fallback_count_is_scoped_to_group(self):
        text = "{\\rtf1{\\uc0" + _unicode_escape("Д") + "}" + _unicode_escape("а") + "?}"

        self.assertEqual(rtf_to_text(text), "Да")

    def test_rtf_bytes_are_parsed_as_text(self):
        result = parse_doc(RTF_COURSE)

        self.assertTrue(result.success)
        self.assertIn("File is RTF; it was processed as text.", result.warnings)
        trail = result.trails[0]
        self.assertEqual(trail.title, "Course Title")
        self.assertEqual(trail.modules[0].title, "Module One")
        self.assertEqual(trail.modules[0].content, "Some text here for the module.")


class TestOleDocuments(unittest.TestCase):
    def _ole(self, text):
        return OLE_SIGNATURE + b"\x00" * 504 + text.encode("utf-16-le") + b"\x00" * 64

    def test_utf16_text_is_recovered(self):
        text = extract_text_from_ole(self._ole(OLE_TEXT))

        self.assertIn("ВВЕДЕНИЕ В ПРОГРАММИРОВАНИЕ", text)
        self.assertIn("Функции помогают", text)

    def test_caps_title_and_module_label(self):
        result = parse_doc(self._ole(OLE_TEXT))

        self.assertTrue(result.success)
        trail = result.trails[0]
        self.assertEqual(trail.title, "ВВЕДЕНИЕ В ПРОГРАММИРОВАНИЕ")
        self.assertEqual(trail.modules[0].title, "Модуль 1: Основы синтаксиса")
        self.assertIn("Переменные хранят данные", trail.modules[0].content)

    def test_bad_signature(self):
        result = parse_doc(b"plain bytes that are not a word file")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Not a valid DOC file: OLE signature not found."])

    def test_signature_without_text(self):
        result = parse_doc(OLE_SIGNATURE + b"\x00" * 512)

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Could not extract text from the DOC file."])


class TestReadableText(unittest.TestCase):
    def test_keeps_runs_of_words(self):
        noisy = "\x00\x01 a1 \x02 This is readable prose here \x03 x1 zz"

        self.assertEqual(extract_readable_text(noisy), "This is readable prose here")


if __name__ == "__main__":
    unittest.main()
