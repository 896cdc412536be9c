"""
Shared fixtures for guardian tests.

============================================================
PURPOSE
============================================================
In-memory chain state standing in for a node connection.

Feed - a live value source: every subscriber first receives the
latest value (if any), then every value pushed afterwards.
FakeChain - implements the Laminar and Acala connection contexts
on top of Feeds and plain dicts.

============================================================
"""

import asyncio
from collections import defaultdict
from typing import Any, AsyncIterator, Dict, List, Optional

import pytest

from guardian.models import PoolInfo


_UNSET = object()


class _Failure:
    def __init__(self, error: Exception) -> None:
        self.error = error


class Feed:
    """Live value source with replay of the latest value."""

    def __init__(self, initial: Any = _UNSET) -> None:
        self._latest = initial
        self._subscribers: List[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def push(self, value: Any) -> None:
        self._latest = value
        for queue in self._subscribers:
            queue.put_nowait(value)

    def fail(self, error: Exception) -> None:
        for queue in self._subscribers:
            queue.put_nowait(_Failure(error))

    async def stream(self) -> AsyncIterator[Any]:
        queue: asyncio.Queue = asyncio.Queue()
        if self._latest is not _UNSET:
            queue.put_nowait(self._latest)
        self._subscribers.append(queue)
        try:
            while True:
                value = await queue.get()
                if isinstance(value, _Failure):
                    raise value.error
                yield value
        finally:
            self._subscribers.remove(queue)


class FakeChain:
    """In-memory connection context for every built-in task."""

    def __init__(self) -> None:
        self.pools: Dict[str, PoolInfo] = {}
        self.pool_listing = Feed()
        self.positions: Dict[tuple, Feed] = defaultdict(Feed)
        self.ratios: Dict[str, Feed] = defaultdict(Feed)
        self.prices: Dict[str, Optional[str]] = {}
        self.event_feed = Feed()
        self.balances: Dict[tuple, Feed] = defaultdict(Feed)
        self.loans: Dict[tuple, Feed] = defaultdict(Feed)
        self.rates: Dict[str, Feed] = defaultdict(Feed)
        self.closed = False

    # Substrate
    def events(self) -> AsyncIterator[Any]:
        return self.event_feed.stream()

    def free_balance(self, account: str, currency_id: str) -> AsyncIterator[str]:
        return self.balances[(account, currency_id)].stream()

    async def oracle_price(self, currency_id: str) -> Optional[str]:
        return self.prices.get(currency_id)

    async def close(self) -> None:
        self.closed = True

    # Laminar
    def pool_ids(self) -> AsyncIterator[List[str]]:
        return self.pool_listing.stream()

    async def pool_info(self, pool_id: str) -> Optional[PoolInfo]:
        return self.pools.get(pool_id)

    def synthetic_position(self, pool_id: str, currency_id: str) -> AsyncIterator[Any]:
        return self.positions[(pool_id, currency_id)].stream()

    def synthetic_ratio(self, currency_id: str) -> AsyncIterator[Any]:
        return self.ratios[currency_id].stream()

    # Acala
    def loan_position(self, account: str, currency_id: str) -> AsyncIterator[Any]:
        return self.loans[(account, currency_id)].stream()

    def debit_exchange_rate(self, currency_id: str) -> AsyncIterator[Optional[str]]:
        return self.rates[currency_id].stream()


async def take(stream: AsyncIterator[Any], count: int, timeout: float = 2.0) -> List[Any]:
    """Collect count items from stream, then close it."""
    items: List[Any] = []

    async def collect() -> None:
        async for item in stream:
            items.append(item)
            if len(items) >= count:
                return

    try:
        await asyncio.wait_for(collect(), timeout)
    finally:
        await stream.aclose()
    return items


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate until it holds."""
    async def check() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(check(), timeout)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def feed():
    """Factory for standalone feeds."""
    return Feed


@pytest.fixture
def collect():
    return take


@pytest.fixture
def eventually():
    return wait_until
