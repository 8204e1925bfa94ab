"""Item normalization for Social2RSS."""

import re
from datetime import UTC, datetime
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .errors import INVALID_DATE, MISSING_REQUIRED_FIELD, NormalizationError
from .models import FeedItem, Profile, RawItem

# Hosts that never point at an actual post (search result pages, grounding redirects)
DEFAULT_NON_POST_HOSTS = (
    "google.com",
    "vertexaisearch.cloud.google.com",
    "bing.com",
)

DEFAULT_ACCOUNT_LABEL = "Hesabı"

_PARENTHETICAL_RE = re.compile(r"\s*\([^)]*\)\s*")


def strip_parenthetical(name: str) -> str:
    """Remove parenthetical qualifiers from a display name.

    "Ahmet Bolat (LI)" becomes "Ahmet Bolat".
    """
    return " ".join(_PARENTHETICAL_RE.sub(" ", name or "").split())


def is_http_url(value: str | None) -> bool:
    """Check that value is an absolute http(s) URL."""
    if not value:
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_non_post_host(url: str, denylist: tuple[str, ...] = DEFAULT_NON_POST_HOSTS) -> bool:
    """Check whether the URL's host (or a parent domain) is denylisted."""
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in denylist)


def resolve_link(
    link: str | None,
    profile_url: str,
    denylist: tuple[str, ...] = DEFAULT_NON_POST_HOSTS,
) -> str | None:
    """Pick the item link, falling back to the profile URL.

    Returns None when neither candidate is usable.
    """
    candidate = (link or "").strip()
    if is_http_url(candidate) and not is_non_post_host(candidate, denylist):
        return candidate

    fallback = (profile_url or "").strip()
    if is_http_url(fallback):
        return fallback
    return None


def clean_text(content: str | None) -> str:
    """Remove HTML tags, unescape entities and normalize whitespace."""
    if not content:
        return ""

    if "<" in content or "&" in content:
        soup = BeautifulSoup(content, "html.parser")
        for element in soup(["script", "style"]):
            element.decompose()
        content = soup.get_text(separator=" ")

    return " ".join(content.split())


def parse_pub_date(value: str | None) -> datetime:
    """Parse a publication date into an aware UTC datetime.

    Raises:
        NormalizationError: If the value is missing or unparsable
    """
    if not value or not value.strip():
        raise NormalizationError(MISSING_REQUIRED_FIELD, "pubDate is missing")
    try:
        parsed = date_parser.parse(value.strip())
    except (ValueError, OverflowError, TypeError) as e:
        raise NormalizationError(INVALID_DATE, f"unparsable pubDate {value!r}") from e

    # Naive timestamps are taken as UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError) as e:
        raise NormalizationError(INVALID_DATE, f"pubDate out of range {value!r}") from e


class ItemNormalizer:
    """Turns raw discovered records into canonical FeedItems."""

    def __init__(
        self,
        account_label: str = DEFAULT_ACCOUNT_LABEL,
        non_post_hosts: tuple[str, ...] = DEFAULT_NON_POST_HOSTS,
    ):
        self.account_label = account_label
        self.non_post_hosts = non_post_hosts

    def format_author(self, profile: Profile) -> str:
        """Build the author label for a profile."""
        parts = [strip_parenthetical(profile.name), profile.platform, self.account_label]
        return " ".join(part.strip() for part in parts if part and part.strip())

    def normalize(self, raw: RawItem, profile: Profile) -> FeedItem:
        """Normalize a raw item discovered for a profile.

        Args:
            raw: Raw item from the discovery call
            profile: Profile the item was discovered for

        Returns:
            Normalized FeedItem

        Raises:
            NormalizationError: If a required field cannot be resolved
        """
        title = clean_text(raw.title)
        if not title:
            raise NormalizationError(MISSING_REQUIRED_FIELD, "title is missing")

        link = resolve_link(raw.link, profile.url, self.non_post_hosts)
        if link is None:
            raise NormalizationError(
                MISSING_REQUIRED_FIELD, f"no usable link for profile {profile.id}"
            )

        pub_date = parse_pub_date(raw.pub_date)

        image_url = raw.image_url.strip() if is_http_url(raw.image_url) else None

        return FeedItem(
            title=title,
            link=link,
            description=clean_text(raw.description),
            pub_date=pub_date,
            author=self.format_author(profile),
            guid=link,
            image_url=image_url,
            platform=profile.platform or None,
        )
