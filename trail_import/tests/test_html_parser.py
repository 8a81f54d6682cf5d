import unittest

from trail_import.parsers.html_parser import IMPORTED_HTML_TITLE, clean_html, html_to_markdown, page_title, parse_html

PAGE = """<!DOCTYPE html>
<html>
<head><title>Course Page</title><style>h1 { color: red; }</style></head>
<body>
<h1>Web Basics</h1>
<p>Short intro</p>
<script>var fake = "<h2>Fake</h2>";</script>
<h2>Lesson One</h2>
<p>Body &amp; <strong>bold</strong> text</p>
<ul><li>first</li><li>second</li></ul>
</body>
</html>"""


class TestHtmlToMarkdown(unittest.TestCase):
    def test_tags_are_rewritten(self):
        markdown = html_to_markdown("<h2>Title</h2><p>Use <code>print()</code> and <em>care</em>.</p>")

        self.assertEqual(markdown, "## Title\n\nUse `print()` and *care*.")

    def test_links_lists_and_entities(self):
        markdown = html_to_markdown('<ul><li><a href="https://x.test">X</a></li></ul><p>&lt;tag&gt;</p>')

        self.assertIn("- [X](https://x.test)", markdown)
        self.assertIn("<tag>", markdown)

    def test_scripts_and_styles_are_removed(self):
        cleaned = clean_html("<style>p{}</style><p>keep</p><script>drop()</script><!-- note -->")

        self.assertEqual(cleaned, "<p>keep</p>")

    def test_page_title(self):
        self.assertEqual(page_title("<title> A &amp; B </title>"), "A & B")
        self.assertEqual(page_title("<p>none</p>"), "")


class TestParseHtml(unittest.TestCase):
    def test_headings_become_trail_and_modules(self):
        result = parse_html(PAGE)

        self.assertTrue(result.success)
        self.assertEqual(len(result.trails), 1)
        trail = result.trails[0]
        self.assertEqual(trail.title, "Web Basics")
        self.assertEqual(trail.icon, "🌐")
        self.assertEqual([module.title for module in trail.modules], ["Lesson One"])
        content = trail.modules[0].content
        self.assertIn("Body & **bold** text", content)
        self.assertIn("- first", content)
        self.assertNotIn("Fake", content)

    def test_module_headings_without_h1_use_page_title(self):
        result = parse_html("<html><head><title>Guide</title></head><body><h2>A</h2><p>x</p><h2>B</h2><p>y</p></body></html>")

        trail = result.trails[0]
        self.assertEqual(trail.title, "Guide")
        self.assertEqual([module.title for module in trail.modules], ["A", "B"])

    def test_page_without_headings_is_one_module(self):
        result = parse_html("<p>Just a paragraph of text.</p>")

        self.assertTrue(result.success)
        self.assertEqual(result.trails[0].title, IMPORTED_HTML_TITLE)
        self.assertEqual(len(result.trails[0].modules), 1)
        self.assertIn("No headings found in HTML; the page text was imported as one module.", result.warnings)

    def test_empty_page(self):
        result = parse_html("<html><body></body></html>")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Could not extract a course structure from HTML."])


if __name__ == "__main__":
    unittest.main()
