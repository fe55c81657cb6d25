"""
Slack-style emoji shortcodes to Unicode, and Notion rich text helpers.

Slack message text and the confirmation messages posted back to sources
use ``:shortcode:`` emojis. Notion does not render those, so text headed
for Notion is converted first.
"""

import re
from typing import List, Dict, Any

EMOJI_MAP = {
    ":white_check_mark:": "✅",
    ":link:": "🔗",
    ":eyes:": "👀",
    ":hourglass:": "⌛",
    ":hourglass_flowing_sand:": "⏳",
    ":robot:": "🤖",
    ":robot_face:": "🤖",
    ":x:": "❌",
    ":arrows_counterclockwise:": "🔄",
    ":heavy_check_mark:": "✔️",
    ":warning:": "⚠️",
    ":fire:": "🔥",
    ":sparkles:": "✨",
    ":thumbsup:": "👍",
    ":+1:": "👍",
    ":thumbsdown:": "👎",
    ":-1:": "👎",
    ":rocket:": "🚀",
    ":bulb:": "💡",
    ":memo:": "📝",
    ":pencil:": "✏️",
    ":pushpin:": "📌",
    ":calendar:": "📅",
    ":clock:": "🕐",
    ":bell:": "🔔",
    ":star:": "⭐",
    ":heart:": "❤️",
    ":question:": "❓",
    ":exclamation:": "❗",
    ":point_right:": "👉",
    ":point_left:": "👈",
    ":100:": "💯",
    ":tada:": "🎉",
    ":bug:": "🐛",
}

LINK_PATTERN = re.compile(r"(?:🔗|:link:)\s*(https?://\S+)")


def convert_slack_emojis(text: str) -> str:
    """Replace known ``:shortcode:`` emojis with their Unicode form."""
    if not text:
        return text
    for code, emoji in EMOJI_MAP.items():
        if code in text:
            text = text.replace(code, emoji)
    return text


def rich_text(content: str, url: str = None, **annotations) -> Dict[str, Any]:
    """A single Notion rich_text item."""
    item: Dict[str, Any] = {"type": "text", "text": {"content": content}}
    if url:
        item["text"]["link"] = {"url": url}
    if annotations:
        item["annotations"] = annotations
    return item


def parse_content_with_links(text: str) -> List[Dict[str, Any]]:
    """Convert text to Notion rich text, turning ``:link: URL`` into clickable blue links."""
    if not text:
        return []

    converted = convert_slack_emojis(text)
    items: List[Dict[str, Any]] = []
    last_index = 0

    for match in LINK_PATTERN.finditer(converted):
        if match.start() > last_index:
            items.append(rich_text(converted[last_index:match.start()]))
        url = match.group(1)
        items.append(rich_text("🔗 "))
        items.append(rich_text(url, url=url, color="blue"))
        last_index = match.end()

    if last_index < len(converted):
        items.append(rich_text(converted[last_index:]))

    if not items:
        items.append(rich_text(converted))

    return items


def format_text_for_notion(text: str) -> str:
    """Plain-string variant of parse_content_with_links, emojis only."""
    return convert_slack_emojis(text)
