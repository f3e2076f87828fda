import unittest

from markcrawl.errors import ExtractionFailed
from markcrawl.extractor import MarkdownExtractor

PAGE = """
<html>
  <head><title>Release notes</title><script>var x = 1;</script></head>
  <body>
    <nav><a href="/home">Home</a><a href="/pricing">Pricing</a></nav>
    <main>
      <h2>Version 2.0</h2>
      <p>Adds <a href="/docs/streaming">streaming</a> support.</p>
    </main>
    <footer>Copyright</footer>
  </body>
</html>
"""


class TestMarkdownExtractor(unittest.TestCase):

    def setUp(self):
        self.extractor = MarkdownExtractor()

    def test_main_content_only(self):
        markdown = self.extractor.extract(PAGE)
        self.assertIn("## Version 2.0", markdown)
        self.assertIn("[streaming](/docs/streaming)", markdown)
        self.assertNotIn("Pricing", markdown)
        self.assertNotIn("Copyright", markdown)
        self.assertNotIn("var x", markdown)

    def test_detailed_keeps_page_chrome_and_title(self):
        markdown = self.extractor.extract(PAGE, detailed=True)
        self.assertIn("# Release notes", markdown)
        self.assertIn("Pricing", markdown)
        self.assertIn("Copyright", markdown)
        self.assertNotIn("var x", markdown)

    def test_falls_back_to_largest_container(self):
        html = "<html><body><div><p>short</p></div><section><p>" + "long text " * 20 + "</p></section></body></html>"
        self.assertIn("long text", self.extractor.extract(html))

    def test_fragment_without_body(self):
        self.assertEqual(self.extractor.extract("<p>Just a paragraph</p>"), "Just a paragraph")

    def test_empty_document_fails(self):
        with self.assertRaises(ExtractionFailed):
            self.extractor.extract("   ")

    def test_document_without_text_fails(self):
        with self.assertRaises(ExtractionFailed):
            self.extractor.extract("<html><body><script>app()</script></body></html>")


if __name__ == "__main__":
    unittest.main()
