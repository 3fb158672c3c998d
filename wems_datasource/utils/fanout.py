"""
Concurrent fan-out helpers for upstream lookups.

Runs a batch of coroutines as asyncio tasks and joins on all of them. An
optional limit caps how many run at the same time; without one every task
starts immediately.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_bounded(
    operations: Sequence[Awaitable[T]],
    limit: Optional[int] = None,
    operation_type: str = "operation",
) -> List[T]:
    """
    Run ``operations`` concurrently and return their results in input order.

    Parameters
    ----------
    operations : Sequence[Awaitable[T]]
        Coroutines to run. Each one is wrapped in its own task.
    limit : int, optional
        Maximum number of operations in flight. ``None`` or ``0`` disables
        the cap.
    operation_type : str
        Human-readable type of operation (for logging)

    Returns
    -------
    List[T]
        One result per operation, in the order the operations were given,
        regardless of completion order.

    Raises
    ------
    Exception
        The first exception raised by an operation. Remaining operations are
        cancelled. Cancelling the caller cancels every pending operation.

    Examples
    --------
    >>> labels = await gather_bounded([lookup(a) for a in appliances], limit=4)
    """
    if not operations:
        return []

    semaphore = asyncio.Semaphore(limit) if limit else None

    async def _run(operation: Awaitable[T]) -> T:
        if semaphore is None:
            return await operation
        async with semaphore:
            return await operation

    tasks = [asyncio.ensure_future(_run(op)) for op in operations]
    logger.debug(
        f"fanout.{operation_type}.dispatched",
        extra={"count": len(tasks), "limit": limit or None},
    )
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
    logger.debug(f"fanout.{operation_type}.joined", extra={"count": len(results)})
    return list(results)
