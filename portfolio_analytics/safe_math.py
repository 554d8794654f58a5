"""Decimal helpers that make degenerate arithmetic explicit.

Every ratio in the engine goes through these helpers. Instead of raising on a
zero denominator or a non-positive power base, they return a ``Degenerate``
result naming what went wrong; callers collapse it to the documented neutral
value with ``unwrap_or``.
"""

from dataclasses import dataclass
from decimal import Decimal, Overflow, localcontext
from enum import Enum
from typing import Iterable, Sequence, Union


class DegenerateCase(Enum):
    ZERO_DENOMINATOR = "zero_denominator"
    NON_POSITIVE_DENOMINATOR = "non_positive_denominator"
    NON_POSITIVE_BASE = "non_positive_base"
    NON_POSITIVE_PERIOD = "non_positive_period"
    NEGATIVE_RADICAND = "negative_radicand"
    TOO_FEW_POINTS = "too_few_points"
    OVERFLOW = "overflow"


@dataclass(frozen=True)
class Ok:
    value: Decimal

    @property
    def is_degenerate(self) -> bool:
        return False

    def unwrap_or(self, default: Decimal) -> Decimal:
        return self.value


@dataclass(frozen=True)
class Degenerate:
    case: DegenerateCase

    @property
    def is_degenerate(self) -> bool:
        return True

    def unwrap_or(self, default: Decimal) -> Decimal:
        return default


Outcome = Union[Ok, Degenerate]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    """Convert a number to Decimal, going through str() for floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        return Decimal(value)
    return Decimal(str(float(value)))


def safe_div(numerator: Decimal, denominator: Decimal, strictly_positive: bool = False) -> Outcome:
    """Divide, reporting a zero (or, with ``strictly_positive``, non-positive) denominator."""
    if denominator == 0:
        return Degenerate(DegenerateCase.ZERO_DENOMINATOR)
    if strictly_positive and denominator < 0:
        return Degenerate(DegenerateCase.NON_POSITIVE_DENOMINATOR)
    return Ok(numerator / denominator)


def safe_sqrt(value: Decimal) -> Outcome:
    if value < 0:
        return Degenerate(DegenerateCase.NEGATIVE_RADICAND)
    return Ok(value.sqrt())


def safe_pow(base: Decimal, exponent: Decimal) -> Outcome:
    """Fractional power of a strictly positive base; reports results beyond Emax."""
    if base <= 0:
        return Degenerate(DegenerateCase.NON_POSITIVE_BASE)
    with localcontext() as ctx:
        ctx.traps[Overflow] = True
        try:
            return Ok(base ** exponent)
        except Overflow:
            return Degenerate(DegenerateCase.OVERFLOW)


def annualize(ratio: Decimal, years: Decimal) -> Outcome:
    """Solve ratio ** (1 / years) - 1 for a growth ratio over an elapsed span."""
    if years <= 0:
        return Degenerate(DegenerateCase.NON_POSITIVE_PERIOD)
    grown = safe_pow(ratio, ONE / years)
    if isinstance(grown, Degenerate):
        return grown
    return Ok(grown.value - ONE)


def mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, start=ZERO) / Decimal(len(values))


def sample_variance(values: Sequence[Decimal]) -> Outcome:
    """Unbiased (n - 1) variance; needs at least two observations."""
    if len(values) < 2:
        return Degenerate(DegenerateCase.TOO_FEW_POINTS)
    avg = mean(values)
    squared = sum(((v - avg) ** 2 for v in values), start=ZERO)
    return Ok(squared / Decimal(len(values) - 1))


def sample_std(values: Sequence[Decimal]) -> Outcome:
    variance = sample_variance(values)
    if isinstance(variance, Degenerate):
        return variance
    return safe_sqrt(variance.value)


def herfindahl(weights: Iterable[Decimal]) -> Decimal:
    """Sum of squared weights."""
    return sum((w * w for w in weights), start=ZERO)


def simple_returns(values: Sequence[Decimal]) -> list[Decimal]:
    """Period-over-period simple returns, skipping steps whose base is zero."""
    returns: list[Decimal] = []
    for previous, current in zip(values, values[1:]):
        if previous == 0:
            continue
        returns.append((current - previous) / previous)
    return returns
