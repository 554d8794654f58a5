"""Tests for degenerate-aware decimal helpers."""

from decimal import Decimal

from portfolio_analytics.safe_math import (
    Degenerate,
    DegenerateCase,
    Ok,
    annualize,
    herfindahl,
    mean,
    safe_div,
    safe_pow,
    safe_sqrt,
    sample_std,
    sample_variance,
    simple_returns,
    to_decimal,
)


class TestSafeDiv:
    def test_regular_division(self):
        assert safe_div(Decimal("10"), Decimal("4")) == Ok(Decimal("2.5"))

    def test_zero_denominator(self):
        result = safe_div(Decimal("10"), Decimal("0"))
        assert result == Degenerate(DegenerateCase.ZERO_DENOMINATOR)
        assert result.unwrap_or(Decimal("0")) == 0

    def test_negative_denominator_allowed_by_default(self):
        assert safe_div(Decimal("1"), Decimal("-2")).unwrap_or(Decimal("0")) == Decimal("-0.5")

    def test_strictly_positive_rejects_negative(self):
        result = safe_div(Decimal("1"), Decimal("-2"), strictly_positive=True)
        assert result.is_degenerate
        assert result.case is DegenerateCase.NON_POSITIVE_DENOMINATOR


class TestPowers:
    def test_sqrt(self):
        assert safe_sqrt(Decimal("16")).unwrap_or(Decimal("-1")) == 4

    def test_sqrt_negative(self):
        assert safe_sqrt(Decimal("-1")).unwrap_or(Decimal("0")) == 0

    def test_pow_non_positive_base(self):
        assert safe_pow(Decimal("0"), Decimal("0.5")).is_degenerate
        assert safe_pow(Decimal("-4"), Decimal("0.5")).is_degenerate

    def test_annualize_doubling_over_two_years(self):
        rate = annualize(Decimal("4"), Decimal("2")).unwrap_or(Decimal("0"))
        assert abs(rate - Decimal("1")) < Decimal("1e-20")

    def test_annualize_zero_years(self):
        assert annualize(Decimal("2"), Decimal("0")) == Degenerate(DegenerateCase.NON_POSITIVE_PERIOD)

    def test_annualize_total_loss(self):
        assert annualize(Decimal("0"), Decimal("1")) == Degenerate(DegenerateCase.NON_POSITIVE_BASE)

    def test_pow_beyond_decimal_range(self):
        assert safe_pow(Decimal("1.1"), Decimal("31557600")) == Degenerate(DegenerateCase.OVERFLOW)

    def test_annualize_seconds_long_span(self):
        years = Decimal("1") / Decimal("31557600")
        assert annualize(Decimal("1.1"), years).unwrap_or(Decimal("0")) == 0


class TestStatistics:
    def test_mean_empty(self):
        assert mean([]) == 0

    def test_sample_variance_uses_n_minus_one(self):
        values = [Decimal("1"), Decimal("2"), Decimal("3"), Decimal("4")]
        variance = sample_variance(values).unwrap_or(Decimal("0"))
        assert abs(variance - Decimal("5") / Decimal("3")) < Decimal("1e-20")

    def test_variance_needs_two_points(self):
        assert sample_variance([Decimal("1")]).is_degenerate
        assert sample_std([]).unwrap_or(Decimal("0")) == 0

    def test_herfindahl(self):
        assert herfindahl([Decimal("0.5"), Decimal("0.5")]) == Decimal("0.5")

    def test_simple_returns_skip_zero_base(self):
        values = [Decimal("0"), Decimal("100"), Decimal("110")]
        assert simple_returns(values) == [Decimal("0.1")]


class TestToDecimal:
    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_passthrough(self):
        value = Decimal("1.23")
        assert to_decimal(value) is value
        assert to_decimal(3) == Decimal("3")
