"""
Loan Position Task - Live collateral ratio of loan positions.

    debit_amount     = debit * debit_exchange_rate / ONE
    collateral_value = collateral * price / ONE
    collateral_ratio = collateral_value / debit_amount

The stable currency is valued at exactly ONE. An unset debit
exchange rate falls back to the chain default of 0.1.
"""

import itertools
import logging
from typing import Any, AsyncIterator, List, Optional, Union

from pydantic import Field, field_validator

from guardian.chain.api import AcalaApi
from guardian.fixed_point import ONE, FixedPoint
from guardian.models import LoanPosition, LoanState
from guardian.streams import combine_latest, from_iterable, merge_map
from guardian.tasks.base import Task, TaskArguments
from guardian.tasks.helpers import (
    DEFAULT_PRICE_PERIOD_MS,
    as_list,
    oracle_prices,
    validate_name_selector,
)


logger = logging.getLogger(__name__)

DEFAULT_DEBIT_EXCHANGE_RATE = ONE.div(10)


class LoanArguments(TaskArguments):
    account: Union[str, List[str]]
    currency_id: Union[str, List[str]]
    period: int = Field(default=DEFAULT_PRICE_PERIOD_MS, gt=0)

    @field_validator("account", "currency_id", mode="before")
    @classmethod
    def check_selector(cls, value: Any) -> Any:
        return validate_name_selector(value)


def compute_loan(
    account: str,
    currency_id: str,
    loan: LoanState,
    exchange_rate: Optional[str],
    price: FixedPoint,
) -> LoanPosition:
    """Build a LoanPosition from the latest chain state."""
    rate = DEFAULT_DEBIT_EXCHANGE_RATE if exchange_rate is None else FixedPoint(exchange_rate)
    debit_amount = FixedPoint(loan.debit).mul(rate).div(ONE)
    collateral = FixedPoint(loan.collateral)

    if debit_amount.is_zero():
        return LoanPosition(
            account=account,
            currency_id=currency_id,
            collateral_amount=collateral.to_fixed(),
        )

    collateral_value = collateral.mul(price).div(ONE)
    return LoanPosition(
        account=account,
        currency_id=currency_id,
        debit_amount=debit_amount.to_fixed(0),
        collateral_amount=collateral.to_fixed(),
        collateral_ratio=collateral_value.div(debit_amount).to_fixed(),
    )


class LoanPositionTask(Task[LoanArguments, LoanPosition]):
    """
    Emits LoanPosition snapshots for each (account, collateral currency).

    Arguments:
        account: address or list of addresses
        currencyId: collateral currency id or list of ids
        period: oracle price polling period in ms (default 30000)
    """

    arguments_model = LoanArguments

    def start(self, context: AcalaApi) -> AsyncIterator[LoanPosition]:
        arguments = self.arguments
        pairs = list(itertools.product(as_list(arguments.account), as_list(arguments.currency_id)))

        async def watch(pair: tuple[str, str]) -> AsyncIterator[LoanPosition]:
            account, currency_id = pair
            sources = combine_latest(
                context.loan_position(account, currency_id),
                context.debit_exchange_rate(currency_id),
                oracle_prices(context, currency_id, arguments.period),
            )
            async for loan, rate, price in sources:
                yield compute_loan(account, currency_id, loan, rate, price)

        return merge_map(from_iterable(pairs), watch, on_error=self.report_failure)
