"""
Safety Margin Calculation

Safety stock from recent demand: SKUs whose trailing average is at or above
a threshold get the safe margin, the rest the conservative one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

import structlog

from merch_analytics.config.settings import SafetyMarginSettings
from .stats import nearest_rank_percentile, round_half_up

logger = structlog.get_logger(__name__)


class MarginType(str, Enum):
    SAFE = "safe"
    CONSERVATIVE = "conservative"
    NONE = "none"


class MarginReason(str, Enum):
    SAFE_MARGIN = "safe_margin"
    CONSERVATIVE_MARGIN = "conservative_margin"
    NO_SALES_IN_WINDOW = "no_sales_in_window"


@dataclass(frozen=True)
class SafetyMargin:
    """Safety stock decision for one SKU"""
    trailing_window_average: float
    is_above_threshold: bool
    margin_type: MarginType
    recommended_safety_stock: int
    threshold_used: float
    reason: MarginReason
    months_of_cover: float


def trailing_average(values: Sequence[float], months: int) -> float:
    """Mean of the last ``months`` values (divides by ``months``)"""
    if months < 1:
        raise ValueError(f"Trailing window must be at least one month, got {months}")
    return float(sum(values[-months:])) / months


class SafetyMarginCalculator:
    """
    Example:
        calculator = SafetyMarginCalculator(settings.safety)
        threshold = calculator.threshold([s.values for s in series])
        margin = calculator.calculate(series.values, threshold)
    """

    def __init__(self, settings: Optional[SafetyMarginSettings] = None):
        self.settings = settings or SafetyMarginSettings()

    def threshold(self, all_values: List[Sequence[float]]) -> float:
        """Configured threshold, or the percentile of trailing averages"""
        if self.settings.threshold != "auto":
            return float(self.settings.threshold)
        averages = [trailing_average(v, self.settings.trailing_months) for v in all_values]
        return nearest_rank_percentile(averages, self.settings.percentile)

    def calculate(self, values: Sequence[float], threshold: float) -> SafetyMargin:
        average = trailing_average(values, self.settings.trailing_months)

        if average <= 0:
            return SafetyMargin(
                trailing_window_average=0.0,
                is_above_threshold=False,
                margin_type=MarginType.NONE,
                recommended_safety_stock=0,
                threshold_used=threshold,
                reason=MarginReason.NO_SALES_IN_WINDOW,
                months_of_cover=0.0,
            )

        if average >= threshold:
            margin_type, reason, months = MarginType.SAFE, MarginReason.SAFE_MARGIN, self.settings.safe_months
        else:
            margin_type, reason, months = (
                MarginType.CONSERVATIVE,
                MarginReason.CONSERVATIVE_MARGIN,
                self.settings.conservative_months,
            )

        return SafetyMargin(
            trailing_window_average=average,
            is_above_threshold=margin_type == MarginType.SAFE,
            margin_type=margin_type,
            recommended_safety_stock=round_half_up(average * months),
            threshold_used=threshold,
            reason=reason,
            months_of_cover=months,
        )

    def calculate_all(self, series: Dict[str, Sequence[float]]) -> Dict[str, SafetyMargin]:
        """Margins for every SKU against one shared threshold"""
        threshold = self.threshold(list(series.values()))
        margins = {sku: self.calculate(values, threshold) for sku, values in series.items()}

        counts = {t.value: 0 for t in MarginType}
        for margin in margins.values():
            counts[margin.margin_type.value] += 1
        logger.info("Safety margins calculated", threshold=threshold, **counts)
        return margins
