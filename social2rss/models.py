"""Data models for Social2RSS."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _optional_str(value: Any) -> str | None:
    """Return value if it is a string, otherwise None."""
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class Profile:
    """A monitored social media profile."""

    id: str
    url: str
    name: str
    platform: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Build a profile from a profiles.json entry.

        Entries without an ``id`` use their URL as identity.
        """
        url = str(data["url"]).strip()
        return cls(
            id=str(data.get("id") or url),
            url=url,
            name=str(data.get("name") or url),
            platform=str(data.get("platform") or ""),
        )


@dataclass
class RawItem:
    """An untrusted item as returned by the discovery call."""

    title: str | None = None
    link: str | None = None
    description: str | None = None
    pub_date: str | None = None
    image_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawItem":
        """Build a raw item from the model's JSON object."""
        return cls(
            title=_optional_str(data.get("title")),
            link=_optional_str(data.get("link")),
            description=_optional_str(data.get("description")),
            pub_date=_optional_str(data.get("pubDate", data.get("pub_date"))),
            image_url=_optional_str(data.get("imageUrl", data.get("image_url"))),
        )


@dataclass
class FeedItem:
    """Canonical feed item."""

    title: str
    link: str
    description: str
    pub_date: datetime
    author: str
    guid: str
    image_url: str | None = None
    platform: str | None = None


@dataclass
class Feed:
    """A complete feed: channel metadata plus ordered items."""

    title: str
    link: str
    description: str
    last_build_date: datetime
    items: list[FeedItem] = field(default_factory=list)
