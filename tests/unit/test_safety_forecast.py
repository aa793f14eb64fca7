"""
Unit Tests - Safety Margins and Momentum Forecasts
"""
import pytest

from merch_analytics.analytics.correlation import Association, AssociationKind
from merch_analytics.analytics.forecast import MomentumForecastAdjuster, momentum
from merch_analytics.analytics.safety import (
    MarginReason,
    MarginType,
    SafetyMarginCalculator,
    trailing_average,
)
from merch_analytics.config.settings import SafetyMarginSettings


def _association(target: str, strength: float = 1.0) -> Association:
    return Association(source="SRC", target=target, strength=strength, kind=AssociationKind.CORRELATION)


class TestSafetyMargin:
    """Tests for SafetyMarginCalculator"""

    @pytest.fixture
    def calculator(self):
        return SafetyMarginCalculator(SafetyMarginSettings(threshold=10))

    def test_trailing_average_uses_last_months(self):
        values = [100] * 6 + [1, 2, 3, 4, 5, 9]
        assert trailing_average(values, 6) == pytest.approx(4.0)

    def test_trailing_window_must_be_positive(self):
        with pytest.raises(ValueError):
            trailing_average([1, 2], 0)

    def test_safe_margin(self, calculator):
        margin = calculator.calculate([0] * 6 + [12] * 6, calculator.threshold([]))

        assert margin.margin_type == MarginType.SAFE
        assert margin.is_above_threshold
        assert margin.recommended_safety_stock == 24
        assert margin.reason == MarginReason.SAFE_MARGIN
        assert margin.months_of_cover == 2.0

    def test_threshold_is_inclusive(self, calculator):
        margin = calculator.calculate([10] * 12, 10)
        assert margin.margin_type == MarginType.SAFE

    def test_conservative_margin(self, calculator):
        margin = calculator.calculate([8] * 12, 10)

        assert margin.margin_type == MarginType.CONSERVATIVE
        assert margin.recommended_safety_stock == 12
        assert margin.reason == MarginReason.CONSERVATIVE_MARGIN

    def test_higher_average_never_loses_safe_margin(self, calculator):
        """With a fixed threshold, rising demand only moves conservative to safe"""
        margins = [calculator.calculate([step / 2] * 12, 10) for step in range(1, 61)]
        types = [m.margin_type for m in margins]

        first_safe = types.index(MarginType.SAFE)
        assert all(t == MarginType.CONSERVATIVE for t in types[:first_safe])
        assert all(t == MarginType.SAFE for t in types[first_safe:])
        assert margins[first_safe].trailing_window_average == 10

        stocks = [m.recommended_safety_stock for m in margins]
        assert stocks == sorted(stocks)

    def test_no_recent_sales(self, calculator):
        margin = calculator.calculate([50] * 6 + [0] * 6, 10)

        assert margin.margin_type == MarginType.NONE
        assert margin.recommended_safety_stock == 0
        assert margin.reason == MarginReason.NO_SALES_IN_WINDOW

    def test_auto_threshold_is_nearest_rank_percentile(self):
        calculator = SafetyMarginCalculator(SafetyMarginSettings(trailing_months=1))
        threshold = calculator.threshold([[4], [1], [3], [2]])
        assert threshold == 3

    def test_calculate_all_shares_threshold(self):
        calculator = SafetyMarginCalculator(SafetyMarginSettings(trailing_months=1))
        margins = calculator.calculate_all({"a": [1], "b": [2], "c": [3], "d": [4]})

        assert {m.threshold_used for m in margins.values()} == {3}
        assert margins["d"].margin_type == MarginType.SAFE
        assert margins["c"].margin_type == MarginType.SAFE
        assert margins["a"].margin_type == MarginType.CONSERVATIVE


class TestMomentum:
    """Tests for the momentum z-score"""

    def test_constant_series(self):
        assert momentum([5] * 12) == 0.0

    def test_spike_in_last_month(self):
        assert momentum([1] * 11 + [13]) == pytest.approx(11 / 11 ** 0.5)

    def test_empty(self):
        assert momentum([]) == 0.0


class TestMomentumForecastAdjuster:
    """Tests for MomentumForecastAdjuster"""

    def test_no_associations_keeps_base(self, make_series):
        adjustment = MomentumForecastAdjuster().adjust(100, [], {})

        assert adjustment.adjusted_forecast == 100
        assert adjustment.adjustment_factor == 1.0
        assert adjustment.drivers == []

    def test_rising_associate_lifts_forecast(self, make_series):
        series = {"T": make_series("T", [1] * 11 + [13])}
        adjustment = MomentumForecastAdjuster(alpha=0.15).adjust(100, [_association("T")], series)

        assert adjustment.weighted_momentum == pytest.approx(11 ** 0.5)
        assert adjustment.adjustment_factor == pytest.approx(1 + 0.15 * 11 ** 0.5)
        assert adjustment.adjusted_forecast == 150
        driver = adjustment.drivers[0]
        assert driver.sku == "T"
        assert driver.impact_percent == pytest.approx(driver.weighted_momentum * 0.15 * 100)

    def test_flat_associate_changes_nothing(self, make_series):
        series = {"T": make_series("T", [5] * 12)}
        adjustment = MomentumForecastAdjuster().adjust(80, [_association("T")], series)

        assert adjustment.adjusted_forecast == 80

    def test_forecast_never_negative(self, make_series):
        series = {"T": make_series("T", [10] * 11 + [0])}
        adjustment = MomentumForecastAdjuster(alpha=0.5).adjust(100, [_association("T")], series)

        assert adjustment.adjustment_factor < 0
        assert adjustment.adjusted_forecast == 0

    def test_weighted_by_strength(self, make_series):
        series = {
            "UP": make_series("UP", [1] * 11 + [13]),
            "FLAT": make_series("FLAT", [5] * 12),
        }
        associations = [_association("UP", 0.9), _association("FLAT", 0.6)]
        adjustment = MomentumForecastAdjuster().adjust(100, associations, series)

        expected = (0.9 * 11 ** 0.5) / 1.5
        assert adjustment.weighted_momentum == pytest.approx(expected)

    def test_at_most_three_drivers(self, make_series):
        series = {f"T{i}": make_series(f"T{i}", [1] * 11 + [1 + i]) for i in range(5)}
        associations = [_association(f"T{i}") for i in range(5)]
        adjustment = MomentumForecastAdjuster().adjust(100, associations, series)

        assert len(adjustment.drivers) == 3
        magnitudes = [abs(d.weighted_momentum) for d in adjustment.drivers]
        assert magnitudes == sorted(magnitudes, reverse=True)

    def test_unknown_targets_ignored(self, make_series):
        adjustment = MomentumForecastAdjuster().adjust(100, [_association("missing")], {})
        assert adjustment.adjusted_forecast == 100

    def test_adjust_all(self, make_series):
        series = {"T": make_series("T", [1] * 11 + [13])}
        adjustments = MomentumForecastAdjuster().adjust_all(
            {"A": 100, "B": 40},
            {"A": [_association("T")]},
            series,
        )

        assert adjustments["A"].adjusted_forecast == 150
        assert adjustments["B"].adjusted_forecast == 40
