"""One synchronization cycle: load, fetch, merge, persist."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from .codec import FeedCodec
from .errors import FeedStorageError
from .logging_config import create_execution_logger
from .merge import MAX_ITEMS, merge_items
from .models import Feed, FeedItem, Profile
from .scheduler import BatchScheduler, CycleResult


class FeedStore(Protocol):
    def load(self) -> str | None: ...

    def save(self, document: str) -> None: ...


@dataclass
class SyncResult:
    """Result of a synchronization cycle."""

    feed: Feed
    new_items: list[FeedItem] = field(default_factory=list)
    existing_items: list[FeedItem] = field(default_factory=list)
    cycle: CycleResult = field(default_factory=CycleResult)
    written: bool = False


class FeedSynchronizer:
    """Runs a full sync cycle against a feed store."""

    def __init__(
        self,
        store: FeedStore,
        scheduler: BatchScheduler,
        codec: FeedCodec,
        feed_title: str,
        max_items: int = MAX_ITEMS,
        execution_id: str | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.codec = codec
        self.feed_title = feed_title
        self.max_items = max_items
        self.logger = create_execution_logger("sync", execution_id)

    def run(self, profiles: Sequence[Profile]) -> SyncResult:
        """Synchronize the feed with the given profiles.

        Raises:
            FeedStorageError: If the previous feed cannot be read (nothing is
                fetched or written) or the new feed cannot be saved (the
                previous document is left in place and the unsaved result is
                attached as ``partial_result``)
        """
        self.logger.log_execution_start(profile_count=len(profiles))

        previous = self.store.load()
        existing_items = self.codec.decode(previous)

        cycle = self.scheduler.run_cycle(profiles)
        merged = merge_items(cycle.items, existing_items, self.max_items)

        build_date = datetime.now(UTC)
        result = SyncResult(
            feed=Feed(
                title=self.feed_title,
                link=self.codec.channel.link,
                description=self.codec.channel.description,
                last_build_date=build_date,
                items=merged,
            ),
            new_items=cycle.items,
            existing_items=existing_items,
            cycle=cycle,
        )

        if not cycle.items and previous is not None:
            self.logger.info("No new items found, keeping previous feed")
            self.logger.log_execution_end(success=True, feed_written=False)
            return result

        document = self.codec.encode(self.feed_title, merged, build_date=build_date)
        try:
            self.store.save(document)
        except FeedStorageError as e:
            e.partial_result = result
            self.logger.error(f"Failed to persist feed: {e}", error=str(e))
            raise

        result.written = True
        self.logger.log_execution_end(
            success=True,
            feed_written=True,
            new_items=len(cycle.items),
            existing_items=len(existing_items),
            items_in_feed=len(merged),
        )
        return result
