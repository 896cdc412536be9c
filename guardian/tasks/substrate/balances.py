"""
Account Balance Task - Free balances of accounts.
"""

import itertools
from typing import Any, AsyncIterator, List, Union

from pydantic import field_validator

from guardian.chain.api import SubstrateApi
from guardian.models import Balance
from guardian.streams import from_iterable, merge_map
from guardian.tasks.base import Task, TaskArguments
from guardian.tasks.helpers import as_list, validate_name_selector


class BalanceArguments(TaskArguments):
    account: Union[str, List[str]]
    currency_id: Union[str, List[str]]

    @field_validator("account", "currency_id", mode="before")
    @classmethod
    def check_selector(cls, value: Any) -> Any:
        return validate_name_selector(value)


class AccountBalanceTask(Task[BalanceArguments, Balance]):
    """
    Emits a Balance for each (account, currency) whenever it changes.

    Arguments:
        account: address or list of addresses
        currencyId: currency id or list of currency ids
    """

    arguments_model = BalanceArguments

    def start(self, context: SubstrateApi) -> AsyncIterator[Balance]:
        pairs = itertools.product(
            as_list(self.arguments.account),
            as_list(self.arguments.currency_id),
        )

        async def watch(pair: tuple[str, str]) -> AsyncIterator[Balance]:
            account, currency_id = pair
            async for free in context.free_balance(account, currency_id):
                yield Balance(account=account, currency_id=currency_id, free=free)

        return merge_map(from_iterable(list(pairs)), watch, on_error=self.report_failure)
