"""
Parsing of Figma notification emails delivered by Mailgun or Resend.

Extracts the comment text, the Figma file key, links and sender from an
inbound email, and provides the fuzzy matching used to find the Figma
comment an email refers to.
"""

import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html.parser import HTMLParser
from urllib.parse import unquote
from typing import Optional, List, Dict, Any, Callable, Union

logger = logging.getLogger(__name__)

FILE_KEY_PATTERNS = [
    re.compile(r"figma\.com/file/([a-zA-Z0-9]+)"),
    re.compile(r"figma\.com/design/([a-zA-Z0-9]+)"),
    re.compile(r"figma\.com/proto/([a-zA-Z0-9]+)"),
    # CDN image URLs carry a numeric file id
    re.compile(r"api-cdn\.figma\.com/resize/images/(\d+)/"),
    # FigJam
    re.compile(r"figma\.com/board/([a-zA-Z0-9]+)"),
]

SENDER_FILE_KEY = re.compile(r"comments-([a-zA-Z0-9]+)@", re.IGNORECASE)

# Figma deep links end in #<comment id>
COMMENT_FRAGMENT = re.compile(r"#(\d+)$")
FILE_NAME_SEGMENT = re.compile(r"figma\.com/(?:file|design|proto|board)/[a-zA-Z0-9]+/([^/?#]+)")

VOID_TAGS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
}
SKIPPED_TAGS = {"script", "style", "head", "title"}


@dataclass
class ParsedEmail:
    text: str = ""
    html: Optional[str] = None
    file_key: Optional[str] = None
    author: Optional[str] = None
    links: List[str] = field(default_factory=list)
    subject: Optional[str] = None
    timestamp: Optional[datetime] = None
    recipient: Optional[str] = None


@dataclass
class FigmaEmail(ParsedEmail):
    file_url: Optional[str] = None
    comment_id: Optional[str] = None
    file_name: Optional[str] = None
    email_type: str = "unknown"  # comment, invitation, unknown


# ==================== HTML HANDLING ====================

class _Element:
    __slots__ = ("tag", "attrs", "children")

    def __init__(self, tag: str, attrs: Dict[str, str]):
        self.tag = tag
        self.attrs = attrs
        self.children: List[Union["_Element", str]] = []

    @property
    def classes(self) -> List[str]:
        return (self.attrs.get("class") or "").split()

    def text(self) -> str:
        parts = []
        for child in self.children:
            parts.append(child if isinstance(child, str) else child.text())
        return "".join(parts)

    def iter(self):
        yield self
        for child in self.children:
            if isinstance(child, _Element):
                yield from child.iter()


class _TreeBuilder(HTMLParser):
    """Builds a minimal element tree, dropping scripts and styles."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.root = _Element("document", {})
        self._stack = [self.root]
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if self._skip_depth:
            if tag in SKIPPED_TAGS:
                self._skip_depth += 1
            return
        if tag in SKIPPED_TAGS:
            self._skip_depth = 1
            return
        element = _Element(tag, {k: v or "" for k, v in attrs})
        self._stack[-1].children.append(element)
        if tag not in VOID_TAGS:
            self._stack.append(element)

    def handle_startendtag(self, tag, attrs):
        if self._skip_depth or tag in SKIPPED_TAGS:
            return
        self._stack[-1].children.append(_Element(tag, {k: v or "" for k, v in attrs}))

    def handle_endtag(self, tag):
        if self._skip_depth:
            if tag in SKIPPED_TAGS:
                self._skip_depth -= 1
            return
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].tag == tag:
                del self._stack[index:]
                break

    def handle_data(self, data):
        if not self._skip_depth:
            self._stack[-1].children.append(data)


def _parse_html(html: str) -> _Element:
    builder = _TreeBuilder()
    builder.feed(html)
    builder.close()
    return builder.root


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


# Tried in order; the first element with text wins
COMMENT_SELECTORS: List[Callable[[_Element], bool]] = [
    lambda el: "comment-body" in el.classes,
    lambda el: "comment-text" in el.classes,
    lambda el: el.tag == "td" and "comment" in el.attrs.get("class", ""),
    lambda el: el.tag == "p",
]


def extract_file_key_from_url(url: str) -> Optional[str]:
    """Extract a Figma file key from a file, design, prototype, board or CDN URL."""
    for pattern in FILE_KEY_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    return None


def extract_text_from_html(html: str) -> str:
    """Text of the comment in a Figma email, falling back to the whole body."""
    root = _parse_html(html)

    for selector in COMMENT_SELECTORS:
        for element in root.iter():
            if selector(element):
                # Only the first match of each selector is considered
                text = _collapse(element.text())
                if text:
                    return text
                break

    body = next((el for el in root.iter() if el.tag == "body"), root)
    return _collapse(body.text())


def extract_links_from_html(html: str) -> List[str]:
    """HTTP links from hrefs and Figma image sources.

    Images positioned on a comment (``commentx``/``commenty`` params) come
    first. Duplicates are removed keeping the first occurrence.
    """
    root = _parse_html(html)
    links: List[str] = []
    priority: List[str] = []

    for element in root.iter():
        if element.tag == "a":
            href = element.attrs.get("href", "")
            if href.startswith("http"):
                links.append(href)

    for element in root.iter():
        if element.tag == "img":
            src = element.attrs.get("src", "")
            if src.startswith("http") and "figma.com" in src:
                if "commentx=" in src and "commenty=" in src:
                    priority.append(src)
                else:
                    links.append(src)

    return list(dict.fromkeys(priority + links))


def determine_email_type(subject: str, html: str = "") -> str:
    subject_lower = (subject or "").lower()

    if any(word in subject_lower for word in ("commented", "comment", "mentioned you")):
        return "comment"
    if any(word in subject_lower for word in ("invited", "invitation", "shared")):
        return "invitation"
    return "unknown"


# ==================== FUZZY MATCHING ====================

def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character edits turning ``a`` into ``b``."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Score between 0 (unrelated) and 1 (identical)."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return min(len(a), len(b)) / max(len(a), len(b))
    return 1 - levenshtein_distance(a, b) / max(len(a), len(b))


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def fuzzy_find_text(needle: str, haystack: List[str], threshold: float = 0.8) -> Optional[str]:
    """Best candidate whose similarity to ``needle`` reaches ``threshold``."""
    normalized_needle = _normalize(needle)
    best_match = None
    best_score = 0.0

    for candidate in haystack:
        score = similarity(normalized_needle, _normalize(candidate))
        if score > best_score and score >= threshold:
            best_score = score
            best_match = candidate

    return best_match


# ==================== EMAIL PARSING ====================

def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        logger.debug(f"Ignoring unparseable email timestamp: {value!r}")
        return None


def parse_email(email_data: Dict[str, Any]) -> ParsedEmail:
    """Parse a Mailgun-style payload (``body-html``, ``stripped-text``, ...)."""
    html = email_data.get("body-html") or ""
    plain_text = email_data.get("stripped-text") or email_data.get("body-plain") or ""

    text = plain_text.strip() if plain_text else (extract_text_from_html(html) if html else "")
    links = extract_links_from_html(html) if html else []

    # comments-<FILEKEY>@email.figma.com is the most reliable source
    file_key = None
    sender = email_data.get("from") or email_data.get("sender")
    if sender:
        match = SENDER_FILE_KEY.search(sender)
        if match:
            file_key = match.group(1)
            logger.debug(f"Extracted file key from sender: {file_key}")

    if not file_key:
        for link in links:
            file_key = extract_file_key_from_url(link)
            if file_key:
                logger.debug(f"Extracted file key from link: {file_key}")
                break

    logger.info(
        f"Parsed email: text={len(text)} chars, links={len(links)}, "
        f"file_key={file_key or 'none'}"
    )

    return ParsedEmail(
        text=text,
        html=html or None,
        file_key=file_key,
        author=sender,
        links=links,
        subject=email_data.get("subject"),
        timestamp=_parse_timestamp(email_data.get("timestamp")),
        recipient=email_data.get("recipient"),
    )


def extract_figma_metadata(parsed: ParsedEmail) -> Dict[str, Any]:
    figma_links = [link for link in parsed.links if "figma.com" in link]
    file_url = next(
        (link for link in figma_links if any(p in link for p in ("/file/", "/design/", "/proto/"))),
        None,
    )
    file_key = (extract_file_key_from_url(file_url) if file_url else None) or parsed.file_key
    email_type = determine_email_type(parsed.subject, parsed.html or "") if parsed.subject else "unknown"

    comment_id = None
    file_name = None
    if file_url:
        comment_match = COMMENT_FRAGMENT.search(file_url)
        if comment_match:
            comment_id = comment_match.group(1)
        name_match = FILE_NAME_SEGMENT.search(file_url)
        if name_match:
            file_name = unquote(name_match.group(1)).replace("-", " ")

    return {
        "file_url": file_url,
        "file_key": file_key,
        "email_type": email_type,
        "comment_id": comment_id,
        "file_name": file_name,
    }


def parse_figma_email(email_data: Dict[str, Any]) -> FigmaEmail:
    """Parse an email and attach the Figma file URL, key and email type."""
    parsed = parse_email(email_data)
    metadata = extract_figma_metadata(parsed)

    return FigmaEmail(
        text=parsed.text,
        html=parsed.html,
        author=parsed.author,
        links=parsed.links,
        subject=parsed.subject,
        timestamp=parsed.timestamp,
        recipient=parsed.recipient,
        file_key=metadata["file_key"],
        file_url=metadata["file_url"],
        email_type=metadata["email_type"],
        comment_id=metadata["comment_id"],
        file_name=metadata["file_name"],
    )
