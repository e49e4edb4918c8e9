from __future__ import annotations

import asyncio


class CancellationToken:
    """Cooperative cancellation signal threaded through discovery, resolver and tree builder.

    The core never raises on cancellation; each unit of work checks
    ``is_cancelled`` and unwinds with its best-effort result.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @classmethod
    def none(cls) -> "CancellationToken":
        return cls()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
