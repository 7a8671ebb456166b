"""
Fixed-point money value for ledger arithmetic.

Every monetary quantity that reaches an account balance or an entry goes
through ``Money``: values are exact base-10 decimals quantized to two places
with ROUND_HALF_UP after each operation, so 33.335 becomes 33.34 and ten
additions of 0.10 are exactly 1.00.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Union

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import LedgerValidationError

Number = Union[int, Decimal]

_PLAIN_DECIMAL = re.compile(r"^-?\d+(\.\d+)?$")

# Numeric(18, 2) holds at most 16 integer digits
MAX_ABS_AMOUNT = Decimal(10) ** 16


def _quantizer(scale: int) -> Decimal:
    return Decimal(1).scaleb(-scale)


def _check_range(value: Decimal) -> None:
    if abs(value) >= MAX_ABS_AMOUNT:
        raise LedgerValidationError(
            "Amount is out of range",
            details={"value": str(value), "max_abs": str(MAX_ABS_AMOUNT)}
        )


def normalize_decimal_input(raw: Any) -> str:
    """
    Normalize a user-entered amount to a plain dot-decimal string.

    Accepts "1.234,56", "1234,56", "1,234.56" and "1234.56". Raises
    LedgerValidationError when the input is empty or not a number.
    """
    if raw is None:
        raise LedgerValidationError("Amount is required")
    s = re.sub(r"\s+", "", str(raw))
    if not s:
        raise LedgerValidationError("Amount is required")

    has_comma = "," in s
    has_dot = "." in s
    if has_comma and has_dot:
        if s.rfind(",") > s.rfind("."):
            # "1.234,56"
            s = s.replace(".", "").replace(",", ".")
        else:
            # "1,234.56"
            s = s.replace(",", "")
    elif has_comma:
        s = s.replace(",", ".")

    if not _PLAIN_DECIMAL.match(s):
        raise LedgerValidationError(f"Invalid amount: {raw!r}", details={"value": str(raw)})
    return s


class Money:
    """Immutable two-place decimal amount."""

    __slots__ = ("_amount",)

    def __init__(self, amount: Any = 0):
        if isinstance(amount, Money):
            value = amount.amount
        elif isinstance(amount, Decimal):
            value = amount
        elif isinstance(amount, bool):
            raise LedgerValidationError("Amount must be numeric")
        elif isinstance(amount, (int, float)):
            # floats go through their shortest repr, never their binary value
            value = Decimal(str(amount))
        else:
            value = Decimal(normalize_decimal_input(amount))
        if not value.is_finite():
            raise LedgerValidationError("Amount must be a finite number")
        _check_range(value)
        try:
            quantized = value.quantize(_quantizer(settings.money_scale), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise LedgerValidationError("Invalid amount", details={"value": str(value)})
        # 9999999999999999.995 rounds up past the limit
        _check_range(quantized)
        object.__setattr__(self, "_amount", quantized)

    def __setattr__(self, name, value):
        raise AttributeError("Money is immutable")

    @classmethod
    def parse(cls, raw: Any) -> "Money":
        """Single entry point for turning request input into money."""
        try:
            if isinstance(raw, str):
                return cls(Decimal(normalize_decimal_input(raw)))
            return cls(raw)
        except InvalidOperation:
            raise LedgerValidationError(f"Invalid amount: {raw!r}")

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal(0))

    @property
    def amount(self) -> Decimal:
        return self._amount

    def round(self, scale: int = 2) -> "Money":
        """
        Round to ``scale`` places with ROUND_HALF_UP.

        Money never carries more places than ``settings.money_scale``, so a
        larger ``scale`` returns the value unchanged.
        """
        if scale >= settings.money_scale:
            return self
        rounded = self._amount.quantize(_quantizer(scale), rounding=ROUND_HALF_UP)
        return Money(rounded)

    def is_zero(self) -> bool:
        return self._amount == 0

    def is_positive(self) -> bool:
        return self._amount > 0

    def is_negative(self) -> bool:
        return self._amount < 0

    # arithmetic

    def __add__(self, other: Any) -> "Money":
        return Money(self._amount + _as_decimal(other))

    __radd__ = __add__

    def __sub__(self, other: Any) -> "Money":
        return Money(self._amount - _as_decimal(other))

    def __rsub__(self, other: Any) -> "Money":
        return Money(_as_decimal(other) - self._amount)

    def __mul__(self, factor: Number) -> "Money":
        if isinstance(factor, Money) or isinstance(factor, (float, bool)):
            raise TypeError("Money can only be multiplied by an int or Decimal")
        return Money(self._amount * Decimal(factor))

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self._amount)

    def __abs__(self) -> "Money":
        return Money(abs(self._amount))

    # comparison

    def __eq__(self, other: Any) -> bool:
        try:
            return self._amount == _as_decimal(other)
        except (TypeError, LedgerValidationError):
            return NotImplemented

    def __lt__(self, other: Any) -> bool:
        return self._amount < _as_decimal(other)

    def __le__(self, other: Any) -> bool:
        return self._amount <= _as_decimal(other)

    def __gt__(self, other: Any) -> bool:
        return self._amount > _as_decimal(other)

    def __ge__(self, other: Any) -> bool:
        return self._amount >= _as_decimal(other)

    def __hash__(self) -> int:
        return hash(self._amount)

    def __bool__(self) -> bool:
        return not self.is_zero()

    def __str__(self) -> str:
        return str(self._amount)

    def __repr__(self) -> str:
        return f"Money('{self._amount}')"


def _as_decimal(value: Any) -> Decimal:
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    raise TypeError(f"Unsupported operand for Money: {type(value).__name__}")
