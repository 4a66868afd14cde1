"""
Re-execution of a count or window query whenever the data version moves.

results() applies switch-latest: each trigger starts a new recomputation
tagged with a fresh generation and cancels the one in flight, and only a
result whose generation is still the latest is delivered. Delivered
versions therefore never go backwards, and once triggers stop the result
for the last one is always delivered.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Union

from backend.models.order import Order, OrderFilter
from backend.repos.order_store import OrderStore

logger = logging.getLogger(__name__)


class RecomputeFailure(Exception):
    """The order store failed while recomputing a stream result."""


@dataclass(frozen=True)
class CountQuery:
    pass


@dataclass(frozen=True)
class WindowQuery:
    position: int
    size: int

    def __post_init__(self) -> None:
        if self.position < 0:
            raise ValueError(f"position must be non-negative, got {self.position}")
        if self.size <= 0:
            raise ValueError(f"size must be positive, got {self.size}")


StreamQuery = Union[CountQuery, WindowQuery]
QueryResult = Union[int, dict[int, Order]]


def _retrieve_outcome(task: asyncio.Task) -> None:
    # Superseded tasks may still finish with an error; mark it retrieved.
    if not task.cancelled():
        task.exception()


class QueryReexecutor:
    """Recomputes one query for one filter against the order store."""

    def __init__(self, store: OrderStore, order_filter: OrderFilter, query: StreamQuery):
        self.store = store
        self.filter = order_filter
        self.query = query

    async def run(self) -> QueryResult:
        """
        Perform one recomputation.

        Returns:
            The matching count for CountQuery, or a mapping of absolute
            position to order for WindowQuery.

        Raises:
            RecomputeFailure: if the store raised
        """
        try:
            if isinstance(self.query, WindowQuery):
                position = self.query.position
                rows = await self.store.page(self.filter, position, self.query.size)
                return {position + offset: order for offset, order in enumerate(rows)}
            return await self.store.count(self.filter)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise RecomputeFailure(f"{type(self.query).__name__} failed: {e}") from e

    async def _run_tagged(self, generation: int, version: int) -> tuple[int, int, QueryResult]:
        return generation, version, await self.run()

    async def results(self, versions: AsyncIterator[int]) -> AsyncIterator[tuple[int, QueryResult]]:
        """
        Recompute on every version from `versions`, switch-latest.

        Yields (version, result) pairs. Ends when `versions` is exhausted
        and the last recomputation has been delivered. Raises
        RecomputeFailure from the current generation's recomputation.
        """
        generation = 0
        pending: asyncio.Task | None = None
        next_version: asyncio.Future | None = asyncio.ensure_future(versions.__anext__())

        try:
            while next_version is not None or pending is not None:
                waiting = {task for task in (next_version, pending) if task is not None}
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if next_version is not None and next_version in done:
                    try:
                        version = next_version.result()
                    except StopAsyncIteration:
                        next_version = None
                        continue

                    if pending is not None:
                        pending.cancel()
                        logger.debug("reexecutor: generation %d superseded by version %d", generation, version)
                    generation += 1
                    pending = asyncio.create_task(self._run_tagged(generation, version))
                    pending.add_done_callback(_retrieve_outcome)
                    next_version = asyncio.ensure_future(versions.__anext__())
                    continue

                if pending is not None and pending in done:
                    task, pending = pending, None
                    result_generation, version, result = task.result()
                    if result_generation == generation:
                        yield version, result
        finally:
            for task in (next_version, pending):
                if task is not None and not task.done():
                    task.cancel()
            leftovers = [task for task in (next_version, pending) if task is not None]
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)
