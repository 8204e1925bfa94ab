"""Merging newly discovered items into the persisted feed history."""

from collections.abc import Iterable

from .models import FeedItem

MAX_ITEMS = 100


def merge_items(
    new_items: Iterable[FeedItem],
    existing_items: Iterable[FeedItem],
    max_items: int = MAX_ITEMS,
) -> list[FeedItem]:
    """Merge new items ahead of existing ones.

    Items are deduplicated by guid keeping the first occurrence, so a
    re-discovered item replaces its persisted copy. The result is sorted by
    publication date, newest first (stable for equal dates), and capped at
    max_items.

    Args:
        new_items: Items fetched in this cycle
        existing_items: Items decoded from the previous feed
        max_items: Maximum number of items to keep

    Returns:
        The merged, ordered, truncated item list
    """
    if max_items < 0:
        raise ValueError("max_items must be >= 0")

    seen: set[str] = set()
    unique: list[FeedItem] = []
    for source in (new_items, existing_items):
        for item in source:
            if item.guid in seen:
                continue
            seen.add(item.guid)
            unique.append(item)

    # sorted() stays stable with reverse=True
    ordered = sorted(unique, key=lambda item: item.pub_date, reverse=True)
    return ordered[:max_items]
