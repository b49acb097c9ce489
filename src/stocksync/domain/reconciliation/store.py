"""Run blocking unit-of-work calls off the event loop."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class StoreRunner:
    """Runs store calls on one worker thread.

    Awaiting :meth:`run` suspends the calling task while the store works. Calls
    never overlap, so a SQLite database only ever sees one writer. Cancelling
    the awaiting task does not interrupt a call already running; its writes
    land.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stocksync-store")

    async def run[**P, R](self, func: Callable[P, R], /, *args: P.args, **kwargs: P.kwargs) -> R:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args, **kwargs))

    def close(self) -> None:
        self._executor.shutdown(wait=True)
