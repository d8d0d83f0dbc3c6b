from __future__ import annotations

import html
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

ATOM_NS = "{http://www.w3.org/2005/Atom}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"
DC_NS = "{http://purl.org/dc/elements/1.1/}"

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


class FeedParseError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class FeedItem:
    title: str
    link: str
    content: str
    content_snippet: str
    published: datetime | None

    @property
    def fingerprint(self) -> str:
        return self.content or self.content_snippet or ""

    def matches(self, stored: str | None) -> bool:
        return stored in (self.content, self.content_snippet)


def snippet_of(markup: str) -> str:
    text = html.unescape(_TAG_RE.sub(" ", markup or ""))
    return _WS_RE.sub(" ", text).strip()


def _text(node: ET.Element | None) -> str:
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def _parse_date(raw: str) -> datetime | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _rss_item(node: ET.Element) -> FeedItem:
    encoded = _text(node.find(f"{CONTENT_NS}encoded"))
    description = _text(node.find("description"))
    content = encoded or description
    return FeedItem(
        title=_text(node.find("title")),
        link=_text(node.find("link")),
        content=content,
        content_snippet=snippet_of(content),
        published=_parse_date(_text(node.find("pubDate")) or _text(node.find(f"{DC_NS}date"))),
    )


def _atom_entry(node: ET.Element) -> FeedItem:
    link = ""
    for link_node in node.findall(f"{ATOM_NS}link"):
        if link_node.get("rel", "alternate") == "alternate":
            link = link_node.get("href", "")
            break
    content = _text(node.find(f"{ATOM_NS}content")) or _text(node.find(f"{ATOM_NS}summary"))
    return FeedItem(
        title=_text(node.find(f"{ATOM_NS}title")),
        link=link,
        content=content,
        content_snippet=snippet_of(content),
        published=_parse_date(_text(node.find(f"{ATOM_NS}updated")) or _text(node.find(f"{ATOM_NS}published"))),
    )


def parse_feed(document: str | bytes) -> list[FeedItem]:
    """Parse an RSS 2.0 or Atom document into items, in document order (newest first by convention)."""
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise FeedParseError(f"feed is not valid XML: {e}") from e

    if root.tag == f"{ATOM_NS}feed":
        return [_atom_entry(entry) for entry in root.findall(f"{ATOM_NS}entry")]

    channel = root.find("channel")
    if root.tag == "rss" and channel is not None:
        return [_rss_item(item) for item in channel.findall("item")]
    raise FeedParseError(f"unsupported feed root element: {root.tag}")
