"""Batch scheduling and retry backoff for embedding generation."""

import asyncio
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from community_search.exceptions import is_transient
from community_search.settings import settings

T = TypeVar("T")
R = TypeVar("R")


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"Transient embedding failure (attempt {retry_state.attempt_number}), "
        f"retrying: {error}"
    )


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with jitter for transient provider failures."""

    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 0.5

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        return cls(
            attempts=settings.embedding_retry_attempts,
            base_delay=settings.embedding_retry_base_delay,
            max_delay=settings.embedding_retry_max_delay,
            jitter=settings.embedding_retry_jitter,
        )

    def retrying(self) -> AsyncRetrying:
        """
        Build a tenacity controller for one unit of work.

        Only errors flagged transient are retried; everything else is
        re-raised on the first attempt.

        :returns: AsyncRetrying instance
        """
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, self.attempts)),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay)
            + wait_random(0, self.jitter),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, func: Callable[[], Awaitable[R]]) -> R:
        """
        Run an async callable under this policy.

        :param func: zero-argument coroutine factory
        :returns: the callable's result
        """
        async for attempt in self.retrying():
            with attempt:
                return await func()
        raise RuntimeError("retry loop exited without a result")  # pragma: no cover


class BatchScheduler:
    """
    Runs work in fixed-size concurrent batches with a pause between them.

    Each batch is started together and joined before the next one begins.
    """

    def __init__(
        self,
        batch_size: int = settings.embedding_batch_size,
        delay: float = settings.embedding_batch_delay,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size
        self.delay = delay
        self._sleep = sleep

    def partition(self, items: Sequence[T]) -> List[List[T]]:
        """Split items into consecutive batches of at most batch_size."""
        return [
            list(items[i : i + self.batch_size])
            for i in range(0, len(items), self.batch_size)
        ]

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        on_batch_complete: Optional[
            Callable[[int, List[R]], Awaitable[None]]
        ] = None,
    ) -> List[R]:
        """
        Process all items batch by batch.

        :param items: work items
        :param worker: coroutine run once per item
        :param on_batch_complete: awaited after each batch with its index and results
        :returns: worker results in item order
        """
        batches = self.partition(items)
        results: List[R] = []
        for index, batch in enumerate(batches):
            logger.info(
                f"Processing batch {index + 1}/{len(batches)} ({len(batch)} items)"
            )
            batch_results = await asyncio.gather(*(worker(item) for item in batch))
            results.extend(batch_results)

            if on_batch_complete is not None:
                await on_batch_complete(index, list(batch_results))

            if index < len(batches) - 1 and self.delay > 0:
                await self._sleep(self.delay)
        return results
