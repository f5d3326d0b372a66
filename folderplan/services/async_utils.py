# folderplan/services/async_utils.py
import asyncio
import functools
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Runs a blocking filesystem call in the default worker thread pool."""
    if kwargs:
        func = functools.partial(func, **kwargs)
    return await asyncio.to_thread(func, *args)


def run_sync(coro: Awaitable[T]) -> T:
    """Drives a coroutine to completion from synchronous code (CLI entry points)."""
    logger.trace(f"Running coroutine synchronously: {getattr(coro, '__name__', coro)}")
    return asyncio.run(coro)
