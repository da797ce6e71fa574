"""
Bounded fan-out for tools that issue several sub-requests.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class FanoutOutcome(BaseModel):
    """Per-item result of a partial-success fan-out."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    item: Any = Field(..., description="Input item")
    value: Any = Field(default=None, description="Worker result on success")
    error: Exception | None = Field(default=None, description="Worker exception on failure")

    @property
    def ok(self) -> bool:
        return self.error is None


async def bounded_gather(
    items: Iterable[Any],
    worker: Callable[[Any], Awaitable[Any]],
    limit: int = 5,
    fail_fast: bool = True
) -> list[Any]:
    """
    Run worker over items with at most `limit` calls in flight.

    Args:
        items: Inputs, one worker call each
        worker: Async function applied to every item
        limit: Maximum concurrent worker calls
        fail_fast: If True, the first failure cancels the outstanding calls
            and is raised. If False, every item is attempted and a list of
            FanoutOutcome is returned.

    Returns:
        Worker results in input order, or FanoutOutcome objects when fail_fast is False
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    semaphore = asyncio.Semaphore(limit)

    async def run_one(item: Any) -> Any:
        async with semaphore:
            return await worker(item)

    items = list(items)

    if not fail_fast:
        async def attempt(item: Any) -> FanoutOutcome:
            try:
                value = await run_one(item)
            except Exception as e:
                logger.warning(f"Fan-out item {item!r} failed: {e}")
                return FanoutOutcome(item=item, error=e)
            return FanoutOutcome(item=item, value=value)

        return list(await asyncio.gather(*(attempt(item) for item in items)))

    tasks = [asyncio.create_task(run_one(item)) for item in items]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
