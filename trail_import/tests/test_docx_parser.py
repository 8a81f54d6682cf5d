import io
import unittest
import zipfile

from trail_import.containers import extract_named_entry
from trail_import.parsers.docx_parser import DOCUMENT_ENTRY, extract_paragraphs, paragraphs_to_markdown, parse_docx

W = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


def _paragraph(text, style=None, bold=False):
    properties = f'<w:pPr><w:pStyle w:val="{style}"/></w:pPr>' if style else ""
    run_properties = "<w:rPr><w:b/></w:rPr>" if bold else ""
    return f"<w:p>{properties}<w:r>{run_properties}<w:t>{text}</w:t></w:r></w:p>"


def _document(*paragraphs):
    return f'<w:document xmlns:w="{W}"><w:body>{"".join(paragraphs)}</w:body></w:document>'


def _docx(document_xml, *, include_document=True):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        if include_document:
            archive.writestr(DOCUMENT_ENTRY, document_xml)
    return buffer.getvalue()


COURSE_XML = _document(
    _paragraph("Python Basics", "Heading1"),
    _paragraph("Short course intro"),
    _paragraph("Variables", "Heading2"),
    _paragraph("Variables hold values."),
    _paragraph("Loops", "Heading3"),
    _paragraph("Loops repeat work.", bold=True),
)


class TestDocxParagraphs(unittest.TestCase):
    def test_styles_and_formatting(self):
        paragraphs = extract_paragraphs(COURSE_XML.encode("utf-8"))

        self.assertEqual([paragraph.heading_level for paragraph in paragraphs], [1, None, 2, None, 3, None])
        self.assertTrue(paragraphs[-1].is_bold)
        self.assertFalse(paragraphs[1].is_bold)

    def test_heading_levels_two_and_three_both_open_modules(self):
        markdown = paragraphs_to_markdown(extract_paragraphs(COURSE_XML.encode("utf-8")))

        self.assertIn("# Python Basics", markdown)
        self.assertIn("## Variables", markdown)
        self.assertIn("## Loops", markdown)
        self.assertIn("**Loops repeat work.**", markdown)


class TestParseDocx(unittest.TestCase):
    def test_archive_with_headings(self):
        result = parse_docx(_docx(COURSE_XML))

        self.assertTrue(result.success)
        trail = result.trails[0]
        self.assertEqual(trail.title, "Python Basics")
        self.assertEqual(trail.subtitle, "Short course intro")
        self.assertEqual([module.title for module in trail.modules], ["Variables", "Loops"])

    def test_numeric_style_ids_are_headings(self):
        document = _document(
            _paragraph("Основы Python", "1"),
            _paragraph("Переменные", "2"),
            _paragraph("Переменные хранят значения."),
        )

        result = parse_docx(_docx(document))

        self.assertTrue(result.success)
        self.assertNotIn("No heading styles found in the document; it was imported as one module.", result.warnings)
        trail = result.trails[0]
        self.assertEqual(trail.title, "Основы Python")
        self.assertEqual([module.title for module in trail.modules], ["Переменные"])

    def test_document_without_headings_is_one_module(self):
        document = _document(_paragraph("Meeting notes"), _paragraph("Nothing structured here."))

        result = parse_docx(_docx(document))

        self.assertTrue(result.success)
        self.assertEqual(result.trails[0].title, "Meeting notes")
        self.assertEqual(len(result.trails[0].modules), 1)
        self.assertIn("No heading styles found in the document; it was imported as one module.", result.warnings)

    def test_missing_zip_signature(self):
        result = parse_docx(b"not a zip archive")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Invalid DOCX file: ZIP signature not found."])

    def test_missing_document_entry(self):
        result = parse_docx(_docx("", include_document=False))

        self.assertFalse(result.success)
        self.assertEqual(result.errors, [f"Invalid DOCX file: {DOCUMENT_ENTRY} is missing."])

    def test_raw_document_markup(self):
        result = parse_docx(COURSE_XML)

        self.assertTrue(result.success)
        self.assertEqual(result.trails[0].title, "Python Basics")


class TestZipContainer(unittest.TestCase):
    def test_local_header_scan_survives_damaged_directory(self):
        archive = _docx(COURSE_XML)
        damaged = archive[: archive.find(b"PK\x01\x02")]

        payload = extract_named_entry(damaged, DOCUMENT_ENTRY)

        self.assertEqual(payload.decode("utf-8"), COURSE_XML)

    def test_absent_entry(self):
        self.assertIsNone(extract_named_entry(_docx(COURSE_XML), "word/missing.xml"))


if __name__ == "__main__":
    unittest.main()
