"""
SKU Metrics

Derives per-SKU demand metrics from monthly series and attaches the
ranking flags and base stock recommendation that downstream steps use:
- Totals, min/max, averages and months with sales
- Demand variability (coefficient of variation)
- ABC class and rank over window quantity
- Best-seller (Pareto natural break) and visibility flags
- Base stock recommendation = average monthly demand x months of cover
"""

import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import structlog

from merch_analytics.config import ABCThresholds, MinMaxConvention, StockMultipliers
from merch_analytics.config.settings import RankingSettings
from merch_analytics.quality.anomaly_detector import SeriesAnomalyDetector, SeriesValidation
from merch_analytics.transformation.aggregators import MonthlySeries
from .abc import ABCClass, ABCClassifier
from .forecast import ForecastAdjustment
from .safety import SafetyMargin
from .stats import coefficient_of_variation, round_half_up

logger = structlog.get_logger(__name__)


@dataclass
class SKUMetrics:
    """Demand metrics and recommendations for one SKU"""
    sku: str
    series: MonthlySeries
    total_geral: float
    min_sale: float
    max_sale: float
    average_total: float
    average_monthly: float
    months_with_sales: int
    demand_variability: float
    validation: SeriesValidation
    class_label: ABCClass = ABCClass.C
    rank: int = 0
    cumulative_percentage: float = 0.0
    is_best_seller: bool = False
    is_visible: bool = False
    stock_multiplier: float = 0.0
    recommended_stock: int = 0
    safety_margin: Optional[SafetyMargin] = None
    forecast: Optional[ForecastAdjustment] = None

    @property
    def window_size(self) -> int:
        return self.series.size


def series_metrics(
    series: MonthlySeries,
    convention: MinMaxConvention = MinMaxConvention.ALL_PERIODS,
    detector: Optional[SeriesAnomalyDetector] = None,
) -> SKUMetrics:
    """
    Base metrics for one series (no ranking yet).

    ``average_total`` is the mean over months with sales; ``average_monthly``
    spreads the total over the whole window. ``convention`` picks whether
    min/max look at every period or only the non-zero ones.
    """
    values = list(series.values)
    nonzero = [v for v in values if v != 0]
    total = float(sum(values))

    if convention == MinMaxConvention.ALL_PERIODS:
        basis = values
    else:
        basis = nonzero

    detector = detector or SeriesAnomalyDetector()

    return SKUMetrics(
        sku=series.sku,
        series=series,
        total_geral=total,
        min_sale=float(min(basis)) if basis else 0.0,
        max_sale=float(max(basis)) if basis else 0.0,
        average_total=float(sum(nonzero) / len(nonzero)) if nonzero else 0.0,
        average_monthly=total / series.size,
        months_with_sales=sum(1 for v in values if v > 0),
        demand_variability=coefficient_of_variation(values),
        validation=detector.check(values),
    )


def stock_multiplier(metrics: SKUMetrics, multipliers: StockMultipliers) -> float:
    """Months of cover for a SKU given its class and demand shape"""
    months = multipliers.for_class(metrics.class_label.value)
    if metrics.demand_variability > multipliers.variability_cutoff:
        months += multipliers.variability_adjustment
    if metrics.months_with_sales <= multipliers.seasonality_max_active_months:
        months += multipliers.seasonality_adjustment
    return months


def best_seller_count(totals: List[float], share: float, fallback_fraction: float) -> int:
    """
    Number of top SKUs (sorted descending) needed to reach ``share`` percent
    of the total; falls back to a fixed fraction when the share is never
    reached (e.g. all totals zero).
    """
    grand_total = sum(totals)
    if grand_total > 0:
        running = 0.0
        for index, total in enumerate(totals):
            running += total
            if running / grand_total * 100 >= share:
                return index + 1
    return math.ceil(len(totals) * fallback_fraction)


class SKUMetricsBuilder:
    """
    Turns monthly series into ranked ``SKUMetrics``.

    Example:
        builder = SKUMetricsBuilder(thresholds, STOCK_PROFILES["demand_aware"])
        metrics = builder.build(aggregation.series)
    """

    def __init__(
        self,
        thresholds: Optional[ABCThresholds] = None,
        multipliers: Optional[StockMultipliers] = None,
        ranking: Optional[RankingSettings] = None,
        convention: MinMaxConvention = MinMaxConvention.ALL_PERIODS,
        detector: Optional[SeriesAnomalyDetector] = None,
    ):
        self.classifier = ABCClassifier(thresholds)
        self.multipliers = multipliers or StockMultipliers()
        self.ranking = ranking or RankingSettings()
        self.convention = convention
        self.detector = detector or SeriesAnomalyDetector()

    def build(
        self,
        series: Dict[str, MonthlySeries],
        include_inactive: bool = False,
    ) -> List[SKUMetrics]:
        """
        Compute, classify and rank SKU metrics.

        Args:
            series: Monthly series keyed by SKU
            include_inactive: Keep SKUs with no sales in the window

        Returns:
            SKUMetrics in rank order
        """
        base = [series_metrics(s, self.convention, self.detector) for s in series.values()]
        if not include_inactive:
            base = [m for m in base if m.total_geral > 0]

        classification = self.classifier.classify_values(
            [(m.sku, m.total_geral) for m in base]
        )
        by_sku = {m.sku: m for m in base}

        ranked = []
        for entity in classification.entities:
            ranked.append(replace(
                by_sku[entity.key],
                class_label=entity.class_label,
                rank=entity.rank,
                cumulative_percentage=entity.cumulative_percentage,
            ))

        totals = [m.total_geral for m in ranked]
        best_sellers = best_seller_count(
            totals,
            self.ranking.best_seller_share,
            self.ranking.best_seller_fallback_fraction,
        )
        visible = math.ceil(len(ranked) * self.ranking.visible_fraction)

        result = []
        for index, metrics in enumerate(ranked):
            multiplier = stock_multiplier(metrics, self.multipliers)
            result.append(replace(
                metrics,
                is_best_seller=index < best_sellers,
                is_visible=index < visible,
                stock_multiplier=multiplier,
                recommended_stock=round_half_up(metrics.average_monthly * multiplier),
            ))

        logger.info(
            "SKU metrics built",
            skus=len(result),
            inactive=len(series) - len(base),
            best_sellers=best_sellers,
            visible=visible,
            **classification.class_counts(),
        )
        return result
