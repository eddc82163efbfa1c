import asyncio
from typing import AsyncIterator, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")


class RequestPacer:
    """
    Sequential iterator that spaces out consecutive items by a fixed delay.

    Used to stay below the rate limits of public RPC endpoints. The delay is
    only applied between two items, never before the first or after the last.
    A delay of 0 disables sleeping entirely.
    """

    def __init__(self, delay_seconds: float = 0.5, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {delay_seconds}")
        self.delay_seconds = delay_seconds
        self.sleep = sleep

    async def paced(self, items: Iterable[T]) -> AsyncIterator[T]:
        first = True
        for item in items:
            if not first and self.delay_seconds > 0:
                await self.sleep(self.delay_seconds)
            first = False
            yield item
