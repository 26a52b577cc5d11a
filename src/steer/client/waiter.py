"""Single-slot awaitable handle used for the prompt and permission resolvers."""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class Waiter(Generic[T]):
    """Holds at most one pending future.

    `arm()` hands out the future a caller awaits; `resolve()` completes and
    releases it. Arming while a future is still pending raises, which keeps
    "at most one outstanding resolver" a checked invariant.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._future: asyncio.Future[T] | None = None

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    def arm(self) -> asyncio.Future[T]:
        if self.pending:
            raise RuntimeError(f"{self._name} waiter already has a pending resolver")
        self._future = asyncio.get_running_loop().create_future()
        return self._future

    def resolve(self, value: T) -> bool:
        """Complete the pending future with `value`; returns False if nothing was waiting."""
        future, self._future = self._future, None
        if future is None or future.done():
            return False
        future.set_result(value)
        return True
