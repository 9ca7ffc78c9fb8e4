"""Helpers for running blocking work from async code."""

import asyncio

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar


T = TypeVar("T")


def async_wrap(func: Callable[..., T]) -> Callable[..., Coroutine[Any, Any, T]]:
    """
    Decorator to run a blocking function in the default thread pool.

    Used for boto3 calls and ffprobe/ffmpeg subprocesses so they never block
    the event loop.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return wrapper
