"""
Task helpers - Shared argument selectors and price streams.
"""

from typing import Any, AsyncIterator, List, Sequence, Union

from pydantic_core import PydanticCustomError

from guardian.fixed_point import FixedPoint
from guardian.streams import poll


ALL = "all"
F_TOKENS = "fTokens"

DEFAULT_PRICE_PERIOD_MS = 30_000


# ============================================================
# SELECTORS
# ============================================================

def validate_id_selector(value: Any) -> Union[str, int, List[int]]:
    """Accept an integer id, a non-empty list of integer ids, or 'all'."""
    if value == ALL:
        return ALL
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, (list, tuple)) and value and all(
        isinstance(item, int) and not isinstance(item, bool) for item in value
    ):
        return list(value)
    raise PydanticCustomError(
        "id_selector",
        "must be an integer, a non-empty list of integers, or 'all'",
    )


def validate_name_selector(value: Any) -> Union[str, List[str]]:
    """Accept a non-empty string or a non-empty list of non-empty strings."""
    if isinstance(value, str) and value:
        return value
    if isinstance(value, (list, tuple)) and value and all(
        isinstance(item, str) and item for item in value
    ):
        return list(value)
    raise PydanticCustomError(
        "name_selector",
        "must be a non-empty string or a non-empty list of strings",
    )


def as_list(value: Union[Any, Sequence[Any]]) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def matches_currency(currency_id: str, selector: Union[str, List[str]]) -> bool:
    """
    Currency filter.

    'all' matches everything, 'fTokens' matches ids starting with
    'f' (any case), a list matches its members, a string matches
    itself.
    """
    if selector == ALL:
        return True
    if selector == F_TOKENS:
        return currency_id.lower().startswith("f")
    if isinstance(selector, list):
        return currency_id in selector
    return currency_id == selector


# ============================================================
# PRICES
# ============================================================

def oracle_prices(context: Any, currency_id: str, period_ms: int) -> AsyncIterator[FixedPoint]:
    """
    Live oracle price of a currency.

    Polls the context every period_ms and emits each new price.
    A currency without a price never emits.
    """
    async def fetch() -> Any:
        return await context.oracle_price(currency_id)

    async def prices() -> AsyncIterator[FixedPoint]:
        async for value in poll(fetch, period_ms):
            yield FixedPoint(value)

    return prices()
