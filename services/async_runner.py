"""Bridge from the Flask (WSGI) threads to the main asyncio loop.

The bot, the sweeper and every store operation live on one loop. Admin
routes run in worker threads and hand their coroutines to that loop.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Future
from typing import Awaitable, Optional, TypeVar


_loop: Optional[asyncio.AbstractEventLoop] = None
T = TypeVar("T")


def set_main_loop(loop: Optional[asyncio.AbstractEventLoop]) -> None:
    global _loop
    _loop = loop


def get_main_loop() -> asyncio.AbstractEventLoop:
    if _loop is None or _loop.is_closed():
        raise RuntimeError("Asyncio loop is not initialized")
    return _loop


def run_coroutine_sync(coro: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Run ``coro`` on the main loop and block the calling thread for its result."""
    future = asyncio.run_coroutine_threadsafe(coro, get_main_loop())
    return future.result(timeout)


def submit_coroutine(coro: Awaitable[T]) -> Future:
    return asyncio.run_coroutine_threadsafe(coro, get_main_loop())
