"""
Tests for emoji conversion and Notion rich text helpers (emoji.py).
"""

from src.utils.emoji import (
    convert_slack_emojis,
    format_text_for_notion,
    parse_content_with_links,
    rich_text,
)


class TestConvertSlackEmojis:

    def test_known_shortcodes(self):
        assert convert_slack_emojis(":white_check_mark: done :tada:") == "✅ done 🎉"

    def test_unknown_shortcode_left_alone(self):
        assert convert_slack_emojis(":not_an_emoji:") == ":not_an_emoji:"

    def test_empty(self):
        assert convert_slack_emojis("") == ""
        assert convert_slack_emojis(None) is None

    def test_format_text_for_notion(self):
        assert format_text_for_notion("Ship it :rocket:") == "Ship it 🚀"


class TestRichText:

    def test_plain(self):
        assert rich_text("hi") == {"type": "text", "text": {"content": "hi"}}

    def test_link_and_annotations(self):
        item = rich_text("docs", url="https://example.com", bold=True)

        assert item["text"]["link"] == {"url": "https://example.com"}
        assert item["annotations"] == {"bold": True}


class TestParseContentWithLinks:

    def test_no_links(self):
        assert parse_content_with_links("Just text :eyes:") == [rich_text("Just text 👀")]

    def test_link_becomes_blue_clickable(self):
        items = parse_content_with_links("See :link: https://figma.com/file/abc for details")

        assert items[0] == rich_text("See ")
        assert items[1] == rich_text("🔗 ")
        assert items[2]["text"] == {"content": "https://figma.com/file/abc", "link": {"url": "https://figma.com/file/abc"}}
        assert items[2]["annotations"] == {"color": "blue"}
        assert items[3] == rich_text(" for details")

    def test_multiple_links(self):
        items = parse_content_with_links("🔗 https://a.example 🔗 https://b.example")
        urls = [item["text"]["link"]["url"] for item in items if "link" in item["text"]]

        assert urls == ["https://a.example", "https://b.example"]

    def test_empty(self):
        assert parse_content_with_links("") == []
