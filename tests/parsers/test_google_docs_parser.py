import unittest
from pathlib import Path
from types import SimpleNamespace

from newsdesk.body import AnchorContent, ImageContent, TextContent
from newsdesk.parsers import ParsingError, parse_inline_style
from newsdesk.parsers.google_docs import GoogleDocsParser

FIXTURE_DIR = Path(__file__).resolve().parent.parent / "fixtures"


def _media(media_id: str) -> SimpleNamespace:
    return SimpleNamespace(id=media_id)


class GoogleDocsParserTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = GoogleDocsParser()
        self.media = {
            "image1.png": _media("media-1"),
            "image2.png": _media("media-2"),
        }

    def test_parse_exported_document(self) -> None:
        html = (FIXTURE_DIR / "google_doc_sample.html").read_text(encoding="utf-8")

        with self.assertLogs("newsdesk.parsers.google_docs", level="WARNING") as logs:
            body = self.parser.parse(html, self.media)

        self.assertEqual(len(body.paragraphs), 4)
        self.assertEqual(len(logs.records), 1)
        self.assertIn("image2.png", logs.output[0])

        styled = body.paragraphs[0]
        self.assertEqual(styled.margin_left, "36pt")
        self.assertEqual(styled.margin_right, "0pt")
        self.assertEqual(styled.text_alignment, "justify")
        self.assertEqual(styled.text_indent, "18pt")
        self.assertEqual(len(styled.spans), 2)

        first_span = styled.spans[0]
        self.assertEqual(first_span.font_style, "italic")
        self.assertEqual(first_span.text_decoration, "none")
        self.assertEqual(first_span.color, "#333333")
        self.assertEqual(first_span.font_weight, "700")
        self.assertEqual(first_span.content, [TextContent(content="Hours & staffing change in May, ")])

        link_span = styled.spans[1]
        self.assertEqual(link_span.text_decoration, "underline")
        self.assertEqual(link_span.font_weight, "400")
        self.assertEqual(
            link_span.content,
            [
                AnchorContent(
                    href="https://www.google.com/url?q=https://example.com/library",
                    content="read the notice",
                )
            ],
        )

        image_paragraph = body.paragraphs[1]
        self.assertEqual(image_paragraph.margin_left, "0")
        self.assertEqual(image_paragraph.margin_right, "0")
        self.assertEqual(image_paragraph.text_alignment, "left")
        self.assertEqual(image_paragraph.text_indent, "0")
        self.assertEqual(
            image_paragraph.spans[0].content,
            [ImageContent(media_id="media-1", width=624.0, height=351.5)],
        )

        fallback = body.paragraphs[2]
        self.assertEqual(
            fallback.spans[0].content,
            [ImageContent(media_id="media-2", width=300.0, height=200.0)],
        )
        self.assertEqual(fallback.spans[1].content, [TextContent(content="Photo above: the reading room.")])

        unregistered = body.paragraphs[3]
        self.assertEqual(len(unregistered.spans), 1)
        self.assertEqual(unregistered.spans[0].content, [])

    def test_title_paragraph_is_skipped(self) -> None:
        html = "<p><span>Title</span></p><p><span>Body text</span></p>"

        body = self.parser.parse(html, {})

        self.assertEqual(len(body.paragraphs), 1)
        self.assertEqual(body.paragraphs[0].spans[0].content, [TextContent(content="Body text")])

    def test_document_without_paragraphs_yields_empty_body(self) -> None:
        self.assertEqual(self.parser.parse("<div>No paragraphs here</div>", {}).paragraphs, [])
        self.assertEqual(self.parser.parse("<p><span>Only a title</span></p>", {}).paragraphs, [])

    def test_only_outermost_spans_become_spans(self) -> None:
        html = (
            "<p>Title</p>"
            '<p><span style="font-weight: 700">Outer <span style="font-style: italic">inner</span> tail</span></p>'
        )

        body = self.parser.parse(html, {})

        spans = body.paragraphs[0].spans
        self.assertEqual(len(spans), 1)
        self.assertEqual(
            spans[0].content,
            [
                TextContent(content="Outer "),
                TextContent(content="inner"),
                TextContent(content=" tail"),
            ],
        )

    def test_text_then_link_keep_document_order(self) -> None:
        html = '<p>Title</p><p><span>Hello<a href="https://x.com">there</a></span></p>'

        body = self.parser.parse(html, {})

        self.assertEqual(
            body.paragraphs[0].spans[0].content,
            [TextContent(content="Hello"), AnchorContent(href="https://x.com", content="there")],
        )
        self.assertEqual(
            body.to_json_dict()["paragraphs"][0]["spans"][0]["content"],
            [{"content": "Hello"}, {"href": "https://x.com", "content": "there"}],
        )

    def test_unmatched_image_is_dropped_between_siblings(self) -> None:
        html = (
            "<p>Title</p><p><span>before"
            '<img src="https://lh3.example.com/images/other.jpg" style="width: 1px; height: 1px">'
            '<img src="https://lh3.example.com/images/photo1.jpg" style="width: 100px; height: 50px">'
            "after</span></p>"
        )

        body = self.parser.parse(html, {"photo1.jpg": _media("m1")})

        self.assertEqual(
            body.paragraphs[0].spans[0].content,
            [
                TextContent(content="before"),
                ImageContent(media_id="m1", width=100.0, height=50.0),
                TextContent(content="after"),
            ],
        )

    def test_first_registered_substring_match_wins(self) -> None:
        html = '<p>Title</p><p><span><img src="images/image1.png" style="width: 10px; height: 5px"></span></p>'
        media = {
            "1.png": _media("short-name"),
            "image1.png": _media("exact-name"),
        }

        body = self.parser.parse(html, media)

        self.assertEqual(
            body.paragraphs[0].spans[0].content,
            [ImageContent(media_id="short-name", width=10.0, height=5.0)],
        )

    def test_empty_file_names_never_match(self) -> None:
        html = '<p>Title</p><p><span><img src="images/image3.png" width="12" height="8"></span></p>'

        body = self.parser.parse(html, {"": _media("empty"), "image3.png": _media("media-3")})

        self.assertEqual(
            body.paragraphs[0].spans[0].content,
            [ImageContent(media_id="media-3", width=12.0, height=8.0)],
        )

    def test_base_url_resolves_relative_links_and_images(self) -> None:
        html = (
            "<p>Title</p>"
            '<p><span><a href="/section/news">News</a>'
            '<img src="uploads/image4.png" style="width: 1px; height: 2px"></span></p>'
        )

        body = self.parser.parse(
            html,
            {"thebullhorn.net/docs/uploads/image4.png": _media("media-4")},
            base_url="https://thebullhorn.net/docs/",
        )

        content = body.paragraphs[0].spans[0].content
        self.assertEqual(content[0], AnchorContent(href="https://thebullhorn.net/section/news", content="News"))
        self.assertEqual(content[1], ImageContent(media_id="media-4", width=1.0, height=2.0))

    def test_comments_are_ignored(self) -> None:
        body = self.parser.parse("<p>Title</p><p><span>Text<!-- note --></span></p>", {})

        self.assertEqual(body.paragraphs[0].spans[0].content, [TextContent(content="Text")])

    def test_configured_default_dimensions(self) -> None:
        parser = GoogleDocsParser(default_image_width=640.0, default_image_height=480.0)
        html = '<p>Title</p><p><span><img src="images/image1.png" style="height: 20px"></span></p>'

        with self.assertLogs("newsdesk.parsers.google_docs", level="WARNING"):
            body = parser.parse(html, self.media)

        self.assertEqual(
            body.paragraphs[0].spans[0].content,
            [ImageContent(media_id="media-1", width=640.0, height=480.0)],
        )

    def test_non_text_input_raises(self) -> None:
        with self.assertRaises(ParsingError):
            self.parser.parse(None, {})  # type: ignore[arg-type]


class InlineStyleTestCase(unittest.TestCase):
    def test_later_declarations_win_and_names_are_lowercased(self) -> None:
        declarations = parse_inline_style("Color: #111111; font-weight: 400; color: #222222 !important; broken")

        self.assertEqual(declarations, {"color": "#222222", "font-weight": "400"})

    def test_empty_style(self) -> None:
        self.assertEqual(parse_inline_style(None), {})
        self.assertEqual(parse_inline_style(""), {})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
