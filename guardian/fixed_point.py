"""
Fixed-Point Values.

============================================================
PURPOSE
============================================================
Exact decimal arithmetic for on-chain quantities.

Chain balances, prices and ratios are integers scaled by 10^18.
They are handled as Decimal in a dedicated high-precision
context and never pass through binary floats.

ROUNDING POLICY:
- add / sub / mul are exact
- div keeps DIVISION_PLACES fractional digits, rounded toward zero
- to_fixed(n) truncates toward zero to n places

============================================================
"""

from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation
from typing import Optional, Union

from guardian.exceptions import FixedPointError


# ============================================================
# CONSTANTS
# ============================================================

DIVISION_PLACES = 20

# Large enough for products of several 10^18-scaled 128-bit values
_CONTEXT = Context(prec=200, rounding=ROUND_DOWN)

# Permill (parts per 10^6) to 10^18 base
PERMILL_TO_BASE = 10 ** 12

Numeric = Union["FixedPoint", Decimal, int, str]


# ============================================================
# FIXED POINT
# ============================================================

class FixedPoint:
    """
    Immutable arbitrary-precision decimal value.

    Usage:
        price = FixedPoint("1000000000000000000")
        value = price.mul(synthetic).div(ONE)
        value.to_fixed()   # "2000000000000000000"
    """

    __slots__ = ("_value",)

    def __init__(self, value: Numeric = 0) -> None:
        self._value = self._coerce(value)

    @staticmethod
    def _coerce(value: Numeric) -> Decimal:
        if isinstance(value, FixedPoint):
            return value._value
        if isinstance(value, bool) or isinstance(value, float):
            raise FixedPointError(
                f"Unsupported value type {type(value).__name__}; use str or int",
                context={"value": repr(value)},
            )
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, int):
            result = Decimal(value)
        elif isinstance(value, str):
            try:
                result = Decimal(value.strip().replace("_", ""))
            except InvalidOperation as e:
                raise FixedPointError(
                    f"Invalid numeric string: {value!r}",
                    original_error=e,
                )
        else:
            # Chain codec values (e.g. Balance, u128) render as integers
            return FixedPoint._coerce(str(value))

        if not result.is_finite():
            raise FixedPointError(f"Non-finite value: {value!r}")
        return result

    @property
    def value(self) -> Decimal:
        return self._value

    # --------------------------------------------------------
    # ARITHMETIC
    # --------------------------------------------------------

    def add(self, other: Numeric) -> "FixedPoint":
        return FixedPoint(_CONTEXT.add(self._value, self._coerce(other)))

    def sub(self, other: Numeric) -> "FixedPoint":
        return FixedPoint(_CONTEXT.subtract(self._value, self._coerce(other)))

    def mul(self, other: Numeric) -> "FixedPoint":
        return FixedPoint(_CONTEXT.multiply(self._value, self._coerce(other)))

    def div(self, other: Numeric) -> "FixedPoint":
        divisor = self._coerce(other)
        if divisor == 0:
            raise FixedPointError(
                "Division by zero",
                context={"dividend": str(self._value)},
            )
        quotient = _CONTEXT.divide(self._value, divisor)
        return FixedPoint(_truncate(quotient, DIVISION_PLACES))

    # --------------------------------------------------------
    # COMPARISON
    # --------------------------------------------------------

    def cmp(self, other: Numeric) -> int:
        other_value = self._coerce(other)
        if self._value > other_value:
            return 1
        if self._value < other_value:
            return -1
        return 0

    def gt(self, other: Numeric) -> bool:
        return self.cmp(other) > 0

    def gte(self, other: Numeric) -> bool:
        return self.cmp(other) >= 0

    def lt(self, other: Numeric) -> bool:
        return self.cmp(other) < 0

    def lte(self, other: Numeric) -> bool:
        return self.cmp(other) <= 0

    def eq(self, other: Numeric) -> bool:
        return self.cmp(other) == 0

    def is_zero(self) -> bool:
        return self._value == 0

    # --------------------------------------------------------
    # RENDERING
    # --------------------------------------------------------

    def to_fixed(self, places: Optional[int] = None) -> str:
        """
        Render as a plain decimal string.

        Args:
            places: Fractional digits to keep (truncated). None renders
                the full value without trailing zeros.
        """
        if places is None:
            value = self._value.normalize(context=_CONTEXT)
        else:
            if places < 0:
                raise FixedPointError(f"Invalid precision: {places}")
            value = _truncate(self._value, places)

        rendered = format(value, "f")
        if rendered.startswith("-") and Decimal(rendered) == 0:
            rendered = rendered[1:]
        return rendered

    def to_int(self) -> int:
        return int(_truncate(self._value, 0))

    # --------------------------------------------------------
    # PYTHON PROTOCOL
    # --------------------------------------------------------

    def __add__(self, other: Numeric) -> "FixedPoint":
        return self.add(other)

    def __sub__(self, other: Numeric) -> "FixedPoint":
        return self.sub(other)

    def __mul__(self, other: Numeric) -> "FixedPoint":
        return self.mul(other)

    def __truediv__(self, other: Numeric) -> "FixedPoint":
        return self.div(other)

    def __eq__(self, other: object) -> bool:
        try:
            return self.eq(other)  # type: ignore[arg-type]
        except FixedPointError:
            return NotImplemented

    def __lt__(self, other: Numeric) -> bool:
        return self.lt(other)

    def __le__(self, other: Numeric) -> bool:
        return self.lte(other)

    def __gt__(self, other: Numeric) -> bool:
        return self.gt(other)

    def __ge__(self, other: Numeric) -> bool:
        return self.gte(other)

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self.to_fixed()

    def __repr__(self) -> str:
        return f"FixedPoint('{self.to_fixed()}')"


def _truncate(value: Decimal, places: int) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_DOWN, context=_CONTEXT)


# ============================================================
# HELPERS
# ============================================================

ONE = FixedPoint(10 ** 18)


def from_permill(value: Numeric) -> FixedPoint:
    """Convert a chain permill value to the 10^18 base."""
    return FixedPoint(value).mul(PERMILL_TO_BASE)
