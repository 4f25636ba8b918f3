"""Run application coroutines from synchronous Celery tasks."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from core.logging_config import clear_log_context

T = TypeVar("T")


def run_async(factory: Callable[[], Awaitable[T]]) -> T:
    """Each task gets a fresh event loop; pooled connections are released afterwards
    because asyncpg connections are bound to the loop that opened them."""
    from infrastructure.database import dispose_engine

    async def _main() -> T:
        try:
            return await factory()
        finally:
            await dispose_engine()
            clear_log_context()

    return asyncio.run(_main())
