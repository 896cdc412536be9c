"""
Liquidity Pool Task - Live risk snapshots of synthetic liquidity pools.

============================================================
PIPELINE
============================================================
1. Resolve pool ids ('all' follows the live pool listing)
2. Fetch pool info, dropping pools that do not exist
3. Keep options matching the currency selector and project
   each into a default LiquidityPool record
4. Per (pool, currency): combine the latest position, ratio
   and oracle price, recomputing on every change

RISK RULE:
    liquidation     = ratio.liquidation (permill) or 0.05%
    synthetic_value = price * synthetic / ONE
    collateral_ratio = collateral / synthetic_value
    safe_ratio      = (ONE + liquidation) / ONE
    is_safe         = collateral_ratio > safe_ratio

A position without synthetic debt keeps the default record.
A zero synthetic value (price "0") emits nothing until the
price recovers.

============================================================
"""

import logging
from dataclasses import replace
from typing import Any, AsyncIterator, List, Optional, Union

from pydantic import Field, field_validator

from guardian.chain.api import LaminarApi
from guardian.exceptions import SourceError
from guardian.fixed_point import ONE, FixedPoint, from_permill
from guardian.models import LiquidityPool, PoolInfo, SyntheticPosition, SyntheticRatio
from guardian.streams import combine_latest, concat_all, distinct, from_iterable, merge_map
from guardian.tasks.base import Task, TaskArguments
from guardian.tasks.helpers import (
    ALL,
    DEFAULT_PRICE_PERIOD_MS,
    as_list,
    matches_currency,
    oracle_prices,
    validate_id_selector,
    validate_name_selector,
)


logger = logging.getLogger(__name__)

# 0.05% of ONE
DEFAULT_LIQUIDATION = ONE.mul("0.0005")


class LiquidityPoolArguments(TaskArguments):
    pool_id: Union[int, List[int], str]
    currency_id: Union[str, List[str]]
    period: int = Field(default=DEFAULT_PRICE_PERIOD_MS, gt=0)

    @field_validator("pool_id", mode="before")
    @classmethod
    def check_pool_id(cls, value: Any) -> Any:
        return validate_id_selector(value)

    @field_validator("currency_id", mode="before")
    @classmethod
    def check_currency_id(cls, value: Any) -> Any:
        return validate_name_selector(value)


def project_options(pool_id: str, pool: PoolInfo, currency_selector: Union[str, List[str]]) -> List[LiquidityPool]:
    """Default records for every pool option matching the selector."""
    return [
        LiquidityPool(
            pool_id=pool_id,
            currency_id=option.currency_id,
            owner=pool.owner,
            liquidity=pool.balance,
            ask_spread=option.ask_spread,
            bid_spread=option.bid_spread,
            additional_collateral_ratio=option.additional_collateral_ratio,
            enabled=option.synthetic_enabled,
        )
        for option in pool.options
        if matches_currency(option.currency_id, currency_selector)
    ]


def compute_risk(
    pool: LiquidityPool,
    position: SyntheticPosition,
    ratio: SyntheticRatio,
    price: FixedPoint,
) -> Optional[LiquidityPool]:
    """
    Recompute the risk fields of a record from the latest chain state.

    Returns None when the synthetic value is zero, since no
    collateral ratio exists for that price.
    """
    if ratio.liquidation is None:
        liquidation = DEFAULT_LIQUIDATION
    else:
        liquidation = from_permill(ratio.liquidation)

    synthetic = str(position.synthetic)
    collateral = str(position.collateral)
    if FixedPoint(synthetic).is_zero():
        return pool

    synthetic_value = price.mul(synthetic).div(ONE)
    if synthetic_value.is_zero():
        return None
    collateral_ratio = FixedPoint(collateral).div(synthetic_value)
    safe_ratio = ONE.add(liquidation).div(ONE)
    is_safe = collateral_ratio.gt(safe_ratio)

    return replace(
        pool,
        collateral_ratio=collateral_ratio.to_fixed(),
        synthetic_issuance=synthetic,
        collateral_balance=collateral,
        is_safe=is_safe,
    )


class LiquidityPoolTask(Task[LiquidityPoolArguments, LiquidityPool]):
    """
    Emits LiquidityPool snapshots.

    Arguments:
        poolId: pool id, list of pool ids, or 'all'
        currencyId: currency id, list of ids, 'all' or 'fTokens'
        period: oracle price polling period in ms (default 30000)
    """

    arguments_model = LiquidityPoolArguments

    def start(self, context: LaminarApi) -> AsyncIterator[LiquidityPool]:
        arguments = self.arguments
        pool_ids = self.get_pool_ids(context, arguments.pool_id)

        async def pool_records(pool_id: str) -> AsyncIterator[LiquidityPool]:
            pool = await context.pool_info(pool_id)
            if pool is None:
                logger.debug(f"Pool {pool_id} not found, skipping")
                return
            for record in project_options(pool_id, pool, arguments.currency_id):
                yield record

        def risk_updates(pool: LiquidityPool) -> AsyncIterator[LiquidityPool]:
            return self._watch(context, pool, arguments.period)

        return merge_map(
            merge_map(pool_ids, pool_records, on_error=self.report_failure),
            risk_updates,
            on_error=self.report_failure,
        )

    @staticmethod
    def get_pool_ids(context: LaminarApi, pool_id: Union[int, List[int], str]) -> AsyncIterator[str]:
        if pool_id == ALL:
            return distinct(concat_all(context.pool_ids()))
        return from_iterable([str(i) for i in as_list(pool_id)])

    @staticmethod
    async def _watch(
        context: LaminarApi,
        pool: LiquidityPool,
        period: int,
    ) -> AsyncIterator[LiquidityPool]:
        sources = combine_latest(
            context.synthetic_position(pool.pool_id, pool.currency_id),
            context.synthetic_ratio(pool.currency_id),
            oracle_prices(context, pool.currency_id, period),
        )
        try:
            async for position, ratio, price in sources:
                record = compute_risk(pool, position, ratio, price)
                if record is None:
                    logger.debug(f"Zero synthetic value for pool {pool.pool_id}/{pool.currency_id}, skipping")
                    continue
                yield record
        except SourceError as e:
            e.context.update({"pool_id": pool.pool_id, "currency_id": pool.currency_id})
            raise
