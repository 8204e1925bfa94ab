"""RSS 2.0 encoding and decoding of the generated feed."""

import html
import mimetypes
import re
from collections.abc import Iterable
from datetime import UTC, datetime
from email.utils import format_datetime
from urllib.parse import urlparse

import feedparser
from dateutil import parser as date_parser

from .config import ChannelConfig
from .logging_config import create_execution_logger
from .models import FeedItem
from .normalize import clean_text

GENERATOR = "Social2RSS"

_CONTROL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F\uD800-\uDFFF\uFFFE\uFFFF]")


def _sanitize(text: str | None) -> str:
    """Drop characters that are not allowed in XML 1.0."""
    return _CONTROL_RE.sub("", text or "")


def _cdata(text: str | None) -> str:
    # A literal ']]>' would close the section early, so split it
    text = _sanitize(text).replace("]]>", "]]]]><![CDATA[>")
    return f"<![CDATA[{text}]]>"


def _escape(text: str | None) -> str:
    return html.escape(_sanitize(text), quote=True)


def _fmt_rfc2822(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return format_datetime(dt.astimezone(UTC), usegmt=True)


def _image_mime_type(url: str) -> str:
    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    if guessed and guessed.startswith("image/"):
        return guessed
    return "image/jpeg"


class FeedCodec:
    """Serializes feeds to RSS 2.0 and reads previously emitted feeds back.

    Decoding is best effort: it never raises, drops items without a link,
    defaults missing text fields to "" and replaces missing or unparsable
    dates with the decode instant.
    """

    def __init__(self, channel: ChannelConfig | None = None, execution_id: str | None = None):
        self.channel = channel or ChannelConfig()
        self.logger = create_execution_logger("codec", execution_id)

    def encode(
        self,
        title: str,
        items: Iterable[FeedItem],
        build_date: datetime | None = None,
    ) -> str:
        """Render items into an RSS 2.0 document.

        Args:
            title: Channel title
            items: Items in the order they should appear
            build_date: Value of lastBuildDate (defaults to now)

        Returns:
            The XML document as a string
        """
        build_date = build_date or datetime.now(UTC)

        parts = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0">',
            "<channel>",
            f"<title>{_escape(title)}</title>",
            f"<link>{_escape(self.channel.link)}</link>",
            f"<description>{_escape(self.channel.description)}</description>",
            f"<lastBuildDate>{_fmt_rfc2822(build_date)}</lastBuildDate>",
            f"<language>{_escape(self.channel.language)}</language>",
            f"<generator>{GENERATOR}</generator>",
        ]

        count = 0
        for item in items:
            parts.append(self._encode_item(item))
            count += 1

        parts.append("</channel>")
        parts.append("</rss>")

        self.logger.debug("Encoded feed", items_count=count)
        return "\n".join(parts) + "\n"

    def _encode_item(self, item: FeedItem) -> str:
        parts = [
            "<item>",
            f"<title>{_cdata(item.title)}</title>",
            f"<link>{_escape(item.link)}</link>",
            f"<description>{_cdata(item.description)}</description>",
            f"<pubDate>{_fmt_rfc2822(item.pub_date)}</pubDate>",
            f"<author>{_escape(item.author)}</author>",
        ]
        guid_attrs = "" if item.guid == item.link else ' isPermaLink="false"'
        parts.append(f"<guid{guid_attrs}>{_escape(item.guid)}</guid>")
        if item.platform:
            parts.append(f"<category>{_escape(item.platform)}</category>")
        if item.image_url:
            parts.append(
                f'<enclosure url="{_escape(item.image_url)}" '
                f'type="{_image_mime_type(item.image_url)}" length="0" />'
            )
        parts.append("</item>")
        return "\n".join(parts)

    def decode(self, document: str | bytes | None) -> list[FeedItem]:
        """Parse a previously emitted document back into items."""
        if not document:
            return []
        if isinstance(document, str):
            document = document.encode("utf-8")

        decoded_at = datetime.now(UTC)
        parsed = feedparser.parse(document)
        if parsed.bozo:
            self.logger.warning(
                f"Previous feed is not well formed: {parsed.get('bozo_exception')}",
                bozo_exception=str(parsed.get("bozo_exception")),
            )

        items = []
        dropped = 0
        for entry in parsed.entries:
            item = self._decode_entry(entry, decoded_at)
            if item is None:
                dropped += 1
                continue
            items.append(item)

        self.logger.info(
            "Decoded previous feed", items_count=len(items), dropped_count=dropped
        )
        return items

    def _decode_entry(self, entry, decoded_at: datetime) -> FeedItem | None:
        # feedparser copies a permalink guid into link when there is no <link>
        if entry.get("guidislink"):
            return None
        link = (entry.get("link") or "").strip()
        if not link:
            return None

        pub_date = decoded_at
        published = entry.get("published")
        if published:
            try:
                pub_date = date_parser.parse(published)
                if pub_date.tzinfo is None:
                    pub_date = pub_date.replace(tzinfo=UTC)
                pub_date = pub_date.astimezone(UTC)
            except (ValueError, OverflowError, TypeError):
                pub_date = decoded_at

        platform = None
        tags = entry.get("tags") or []
        if tags and tags[0].get("term"):
            platform = tags[0]["term"]

        image_url = None
        enclosures = entry.get("enclosures") or []
        if enclosures and enclosures[0].get("href"):
            image_url = enclosures[0]["href"]

        return FeedItem(
            title=clean_text(entry.get("title")),
            link=link,
            description=clean_text(entry.get("summary")),
            pub_date=pub_date,
            author=entry.get("author") or "",
            guid=(entry.get("id") or "").strip() or link,
            image_url=image_url,
            platform=platform,
        )
