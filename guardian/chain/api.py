"""
Chain APIs - Connection contexts handed to tasks.

============================================================
PURPOSE
============================================================
Each guardian type builds one API object in setup(); tasks
read chain state through it and never mutate it.

Every subscription primitive is a live async iterator that
yields the latest value whenever it changes on chain.

The Rpc* implementations talk to a node gateway exposing
decoded storage as JSON (see RpcMethods). The protocols are
what tasks depend on; tests substitute in-memory fakes.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional, Protocol

from guardian.chain.rpc import RpcClient
from guardian.models import (
    ChainEvent,
    Confirmation,
    LoanState,
    PoolInfo,
    PoolOption,
    SyntheticPosition,
    SyntheticRatio,
)


logger = logging.getLogger(__name__)


# ============================================================
# PROTOCOLS
# ============================================================

class SubstrateApi(Protocol):
    """State every substrate-based network exposes."""

    def events(self) -> AsyncIterator[List[ChainEvent]]:
        """Events of each new block."""
        ...

    def free_balance(self, account: str, currency_id: str) -> AsyncIterator[str]:
        """Free balance of an account in a currency."""
        ...

    async def oracle_price(self, currency_id: str) -> Optional[str]:
        """Current aggregated oracle price (10^18 base), None if unset."""
        ...

    async def close(self) -> None:
        ...


class LaminarApi(SubstrateApi, Protocol):
    """Synthetic liquidity pool state."""

    def pool_ids(self) -> AsyncIterator[List[str]]:
        """Live listing of every synthetic pool id."""
        ...

    async def pool_info(self, pool_id: str) -> Optional[PoolInfo]:
        """Pool metadata, None if the pool does not exist."""
        ...

    def synthetic_position(self, pool_id: str, currency_id: str) -> AsyncIterator[SyntheticPosition]:
        ...

    def synthetic_ratio(self, currency_id: str) -> AsyncIterator[SyntheticRatio]:
        ...


class AcalaApi(SubstrateApi, Protocol):
    """Collateralized loan state."""

    def loan_position(self, account: str, currency_id: str) -> AsyncIterator[LoanState]:
        ...

    def debit_exchange_rate(self, currency_id: str) -> AsyncIterator[Optional[str]]:
        """Debit exchange rate (10^18 base), None if unset."""
        ...


# ============================================================
# RPC IMPLEMENTATIONS
# ============================================================

@dataclass(frozen=True)
class RpcMethods:
    """Gateway method names."""
    subscribe_storage: str = "state_subscribeDecodedStorage"
    unsubscribe_storage: str = "state_unsubscribeDecodedStorage"
    query_storage: str = "state_getDecodedStorage"
    oracle_value: str = "oracle_getValue"
    oracle_provider: str = "Aggregated"


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def parse_pool_info(data: Any) -> Optional[PoolInfo]:
    if not data:
        return None
    options = tuple(
        PoolOption(
            currency_id=str(option["tokenId"]),
            ask_spread=_text(option.get("askSpread")),
            bid_spread=_text(option.get("bidSpread")),
            additional_collateral_ratio=_text(option.get("additionalCollateralRatio")),
            synthetic_enabled=bool(option.get("syntheticEnabled", False)),
        )
        for option in data.get("options", [])
    )
    return PoolInfo(
        owner=str(data.get("owner", "")),
        balance=str(data.get("balance", "0")),
        options=options,
    )


def parse_events(data: Any, block_hash: Optional[str] = None) -> List[ChainEvent]:
    events = []
    for record in data or []:
        event = record.get("event", record)
        events.append(ChainEvent(
            section=str(event.get("section", "")),
            method=str(event.get("method", "")),
            args=tuple(event.get("data", ())),
            block_hash=block_hash,
        ))
    return events


class RpcSubstrateApi:
    """SubstrateApi over an RpcClient."""

    def __init__(
        self,
        client: RpcClient,
        confirmation: Confirmation = Confirmation.FINALIZE,
        methods: Optional[RpcMethods] = None,
    ) -> None:
        self._client = client
        self._confirmation = confirmation
        self._methods = methods or RpcMethods()

    @property
    def client(self) -> RpcClient:
        return self._client

    def _storage(self, module: str, entry: str, *keys: Any) -> AsyncIterator[Any]:
        return self._client.subscribe(
            self._methods.subscribe_storage,
            [module, entry, list(keys), self._confirmation.value],
            self._methods.unsubscribe_storage,
        )

    async def _query(self, module: str, entry: str, *keys: Any) -> Any:
        return await self._client.request(
            self._methods.query_storage,
            [module, entry, list(keys)],
        )

    async def events(self) -> AsyncIterator[List[ChainEvent]]:
        async for update in self._storage("system", "events"):
            update = update or {}
            yield parse_events(update.get("value"), update.get("blockHash"))

    async def free_balance(self, account: str, currency_id: str) -> AsyncIterator[str]:
        async for update in self._storage("tokens", "accounts", account, currency_id):
            value = (update or {}).get("value") or {}
            yield str(value.get("free", "0"))

    async def oracle_price(self, currency_id: str) -> Optional[str]:
        result = await self._client.request(
            self._methods.oracle_value,
            [self._methods.oracle_provider, currency_id],
        )
        if not result:
            return None
        value = result.get("value") if isinstance(result, dict) else result
        return _text(value)

    async def close(self) -> None:
        await self._client.close()


class RpcLaminarApi(RpcSubstrateApi):
    """LaminarApi over an RpcClient."""

    async def pool_ids(self) -> AsyncIterator[List[str]]:
        async for update in self._storage("baseLiquidityPoolsForSynthetic", "nextPoolId"):
            next_id = int((update or {}).get("value") or 0)
            yield [str(pool_id) for pool_id in range(next_id)]

    async def pool_info(self, pool_id: str) -> Optional[PoolInfo]:
        pool = await self._query("baseLiquidityPoolsForSynthetic", "pools", pool_id)
        if not pool:
            return None
        options = await self._query("syntheticLiquidityPools", "poolCurrencyOptions", pool_id)
        return parse_pool_info({
            "owner": pool.get("owner"),
            "balance": pool.get("balance"),
            "options": options or [],
        })

    async def synthetic_position(
        self,
        pool_id: str,
        currency_id: str,
    ) -> AsyncIterator[SyntheticPosition]:
        async for update in self._storage("syntheticTokens", "positions", pool_id, currency_id):
            value = (update or {}).get("value") or {}
            yield SyntheticPosition(
                synthetic=str(value.get("synthetic", "0")),
                collateral=str(value.get("collateral", "0")),
            )

    async def synthetic_ratio(self, currency_id: str) -> AsyncIterator[SyntheticRatio]:
        async for update in self._storage("syntheticTokens", "ratios", currency_id):
            value = (update or {}).get("value") or {}
            yield SyntheticRatio(
                extreme=_text(value.get("extreme")),
                liquidation=_text(value.get("liquidation")),
                collateral=_text(value.get("collateral")),
            )


class RpcAcalaApi(RpcSubstrateApi):
    """AcalaApi over an RpcClient."""

    async def loan_position(self, account: str, currency_id: str) -> AsyncIterator[LoanState]:
        async for update in self._storage("loans", "positions", currency_id, account):
            value = (update or {}).get("value") or {}
            yield LoanState(
                debit=str(value.get("debit", "0")),
                collateral=str(value.get("collateral", "0")),
            )

    async def debit_exchange_rate(self, currency_id: str) -> AsyncIterator[Optional[str]]:
        async for update in self._storage("cdpEngine", "debitExchangeRate", currency_id):
            yield _text((update or {}).get("value"))
