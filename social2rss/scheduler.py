"""Chunked, concurrent scheduling of profile fetches."""

import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .errors import CircuitBrokenError
from .logging_config import create_execution_logger
from .models import FeedItem, Profile


@dataclass
class CycleResult:
    """Outcome of one scheduling cycle."""

    items: list[FeedItem] = field(default_factory=list)
    chunks_processed: int = 0
    profiles_completed: int = 0
    profiles_with_items: int = 0
    profiles_failed: int = 0
    profiles_skipped: int = 0
    circuit_broken: bool = False


def chunk_profiles(profiles: Sequence[Profile], chunk_size: int) -> list[list[Profile]]:
    """Split profiles into consecutive chunks of at most chunk_size."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [
        list(profiles[i : i + chunk_size]) for i in range(0, len(profiles), chunk_size)
    ]


class BatchScheduler:
    """Runs profile fetches in fixed-size concurrent chunks.

    Every fetch in a chunk settles before the next chunk starts, and a
    fixed delay separates consecutive chunks.
    """

    def __init__(
        self,
        fetch_profile: Callable[[Profile], list[FeedItem]],
        chunk_size: int = 5,
        inter_chunk_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        execution_id: str | None = None,
    ):
        """Initialize the scheduler.

        Args:
            fetch_profile: Fetches normalized items for one profile. May raise
                CircuitBrokenError; other failures should already be absorbed.
            chunk_size: Maximum number of concurrent fetches
            inter_chunk_delay: Seconds to wait between chunks
            sleep: Sleep function, injectable for tests
            execution_id: Execution ID for logging context
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.fetch_profile = fetch_profile
        self.chunk_size = chunk_size
        self.inter_chunk_delay = inter_chunk_delay
        self.sleep = sleep
        self.logger = create_execution_logger("scheduler", execution_id)

    def run_cycle(self, profiles: Sequence[Profile]) -> CycleResult:
        """Fetch items for every profile, chunk by chunk."""
        chunks = chunk_profiles(profiles, self.chunk_size)
        result = CycleResult()
        self.logger.log_execution_start(
            profile_count=len(profiles), chunk_count=len(chunks)
        )

        for index, chunk in enumerate(chunks):
            if result.circuit_broken:
                result.profiles_skipped += len(chunk)
                continue

            self.logger.info(
                f"Processing chunk {index + 1}/{len(chunks)} ({len(chunk)} profiles)",
                chunk=index + 1,
            )
            self._run_chunk(chunk, result)
            result.chunks_processed += 1

            if result.circuit_broken:
                self.logger.warning(
                    "Circuit breaker open, no further chunks will be fetched",
                    chunk=index + 1,
                )
            elif index < len(chunks) - 1:
                self.sleep(self.inter_chunk_delay)

        self.logger.log_execution_end(
            success=not result.circuit_broken,
            total_items=len(result.items),
            profiles_completed=result.profiles_completed,
            profiles_failed=result.profiles_failed,
            profiles_skipped=result.profiles_skipped,
        )
        return result

    def _run_chunk(self, chunk: list[Profile], result: CycleResult) -> None:
        """Run one chunk concurrently and fold its outcomes into result."""
        with ThreadPoolExecutor(max_workers=min(self.chunk_size, len(chunk))) as executor:
            futures = [
                (profile, executor.submit(self.fetch_profile, profile))
                for profile in chunk
            ]
            # Leaving the with-block joins every worker of the chunk

        for profile, future in futures:
            try:
                items = future.result()
            except CircuitBrokenError:
                result.circuit_broken = True
                result.profiles_skipped += 1
                continue
            except Exception as e:
                self.logger.error(
                    f"Unexpected failure for profile {profile.name}: {e}",
                    profile_url=profile.url,
                    error=str(e),
                )
                result.profiles_failed += 1
                continue

            result.profiles_completed += 1
            if items:
                result.profiles_with_items += 1
                result.items.extend(items)
                self.logger.info(
                    f"Found {len(items)} items", profile_url=profile.url
                )
