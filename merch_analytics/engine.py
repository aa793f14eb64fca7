"""
Merchandising Engine

Main orchestrator that runs the full analysis over a batch of raw sales
lines:

1. Normalize raw rows and account for data quality
2. Validate the normalized transaction frame
3. Aggregate per-SKU monthly series
4. Build SKU metrics, ABC classes and base stock recommendations
5. Mine associations (baskets when order ids exist, otherwise correlation)
6. Safety margins and momentum-adjusted forecasts
7. Kit recommendations and versatile products
8. Validate the per-SKU metrics frame

Every recompute is a pure function of (rows, settings). ``analyze`` memoises
the latest result and replaces it wholesale when either input changes.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import polars as pl
import structlog

from merch_analytics.analytics.abc import ABCClass, ABCClassifier, ClassificationResult
from merch_analytics.analytics.basket import BasketAssociationMiner, has_baskets
from merch_analytics.analytics.correlation import (
    Association,
    AssociationKind,
    correlation_associations,
)
from merch_analytics.analytics.forecast import MomentumForecastAdjuster
from merch_analytics.analytics.kits import (
    BasketStrength,
    CorrelationStrength,
    KitCandidate,
    KitRecommendations,
    KitRecommender,
    VersatileProduct,
)
from merch_analytics.analytics.metrics import SKUMetrics, SKUMetricsBuilder
from merch_analytics.analytics.safety import SafetyMarginCalculator
from merch_analytics.cache import CacheManager, dataset_fingerprint, fingerprint
from merch_analytics.config import Settings, get_settings
from merch_analytics.quality.anomaly_detector import AnomalyReport, SeriesAnomalyDetector
from merch_analytics.quality.validators import (
    ValidationResult,
    create_sku_metrics_validator,
    create_transactions_validator,
)
from merch_analytics.transformation.aggregators import MonthlyAggregator, WindowSpec
from merch_analytics.transformation.normalizers import (
    DataQualityReport,
    Dimension,
    RecordNormalizer,
    records_to_frame,
)

logger = structlog.get_logger(__name__)

RawRows = Union[pl.DataFrame, Iterable[Mapping[str, Any]]]


@dataclass
class EngineResult:
    """Everything one recompute produces"""
    sku_metrics: List[SKUMetrics]
    kits: List[KitCandidate]
    versatile_products: List[VersatileProduct]
    associations: Dict[str, List[Association]]
    association_mode: AssociationKind
    quality: DataQualityReport
    validation: ValidationResult
    anomalies: AnomalyReport
    periods: Tuple[str, ...]
    summary: Dict[str, Any]
    settings: Settings
    started_at: datetime
    completed_at: datetime
    sku_validation: Optional[ValidationResult] = None

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def get(self, sku: str) -> Optional[SKUMetrics]:
        for metrics in self.sku_metrics:
            if metrics.sku == sku:
                return metrics
        return None

    def sku_frame(self) -> pl.DataFrame:
        """One row per SKU with metrics, margins and the adjusted forecast"""
        rows = []
        for m in self.sku_metrics:
            row = {
                "rank": m.rank,
                "sku": m.sku,
                "class_label": m.class_label.value,
                "total_geral": m.total_geral,
                "min_sale": m.min_sale,
                "max_sale": m.max_sale,
                "average_total": m.average_total,
                "average_monthly": m.average_monthly,
                "months_with_sales": m.months_with_sales,
                "demand_variability": m.demand_variability,
                "cumulative_percentage": m.cumulative_percentage,
                "is_best_seller": m.is_best_seller,
                "is_visible": m.is_visible,
                "stock_multiplier": m.stock_multiplier,
                "recommended_stock": m.recommended_stock,
                "needs_review": m.validation.needs_review,
                "issues": ",".join(issue.value for issue in m.validation.issues),
                "margin_type": m.safety_margin.margin_type.value if m.safety_margin else None,
                "safety_stock": m.safety_margin.recommended_safety_stock if m.safety_margin else None,
                "adjusted_forecast": m.forecast.adjusted_forecast if m.forecast else None,
                "adjustment_factor": m.forecast.adjustment_factor if m.forecast else None,
            }
            for period, value in zip(m.series.periods, m.series.values):
                row[period] = value
            rows.append(row)
        return pl.DataFrame(rows)

    def kit_frame(self) -> pl.DataFrame:
        return KitRecommendations(kits=self.kits).to_frame()


class MerchandisingEngine:
    """
    Runs the merchandising analysis pipeline.

    Example:
        engine = MerchandisingEngine()
        result = engine.analyze(rows)
        result.sku_frame()
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.cache = CacheManager("engine", max_entries=1)

    def update_settings(self, settings: Settings) -> None:
        """Swap settings; the next ``analyze`` recomputes"""
        if settings.fingerprint() != self.settings.fingerprint():
            self.cache.invalidate_all()
        self.settings = settings

    def _normalizer(self) -> RecordNormalizer:
        return RecordNormalizer(
            field_mapping=self.settings.field_mapping,
            max_issues=self.settings.monitoring.max_quality_issues,
        )

    def classify_entities(
        self,
        raw_rows: RawRows,
        dimension: Union[Dimension, str],
        value_field: str = "line_amount",
    ) -> ClassificationResult:
        """ABC classification of customers, products, cities or finishes"""
        records = self._normalizer().normalize(raw_rows).records
        classifier = ABCClassifier(self.settings.abc.entity_thresholds)
        return classifier.classify(records, dimension, value_field)

    def analyze(self, raw_rows: RawRows) -> EngineResult:
        """Memoised ``recompute`` keyed on dataset and settings fingerprints"""
        if not isinstance(raw_rows, pl.DataFrame):
            raw_rows = list(raw_rows)
        key = fingerprint(dataset_fingerprint(raw_rows) + self.settings.fingerprint())

        if key not in self.cache:
            # Single live result: a new key replaces the old one entirely
            self.cache.invalidate_all()
        return self.cache.get_or_set(key, lambda: self.recompute(raw_rows))

    def recompute(self, raw_rows: RawRows) -> EngineResult:
        """
        Run the full pipeline.

        Args:
            raw_rows: Raw sales lines (mappings) or a DataFrame

        Returns:
            EngineResult
        """
        started_at = datetime.now(timezone.utc)
        settings = self.settings
        logger.info("Starting merchandising analysis", environment=settings.app_env)

        # Step 1: Normalize
        normalized = self._normalizer().normalize(raw_rows)
        records = normalized.records
        quality = normalized.quality

        # Step 2: Validate
        validation = create_transactions_validator().validate(records_to_frame(records))

        # Step 3: Aggregate
        window = WindowSpec.from_settings(settings.window)
        aggregation = MonthlyAggregator(Dimension.PRODUCT).aggregate(records, window)
        quality.skipped_from_aggregation = aggregation.skipped_records

        # Step 4: SKU metrics
        detector = SeriesAnomalyDetector()
        builder = SKUMetricsBuilder(
            thresholds=settings.abc.sku_thresholds,
            multipliers=settings.stock.multipliers,
            ranking=settings.ranking,
            convention=settings.window.min_max_convention,
            detector=detector,
        )
        metrics = builder.build(aggregation.series)
        active_series = {m.sku: m.series for m in metrics}
        skus = list(active_series)

        # Step 5: Associations
        association_settings = settings.association
        if has_baskets(records):
            mode = AssociationKind.BASKET
            miner = BasketAssociationMiner(
                min_support=association_settings.min_support,
                min_confidence=association_settings.min_confidence,
                min_lift=association_settings.min_lift,
                top_k=association_settings.top_k,
            )
            basket_stats = miner.statistics(records)
            associations = miner.rules(basket_stats, skus)
            strength_source = BasketStrength(basket_stats)
        else:
            mode = AssociationKind.CORRELATION
            associations = correlation_associations(
                active_series,
                skus,
                threshold=association_settings.correlation_threshold,
                top_k=association_settings.top_k,
            )
            strength_source = CorrelationStrength()

        # Step 6: Safety margins and forecasts
        safety = SafetyMarginCalculator(settings.safety)
        margins = safety.calculate_all({m.sku: m.series.values for m in metrics})
        adjuster = MomentumForecastAdjuster(alpha=association_settings.momentum_alpha)
        forecasts = adjuster.adjust_all(
            {m.sku: m.recommended_stock for m in metrics},
            associations,
            active_series,
        )
        metrics = [
            replace(m, safety_margin=margins[m.sku], forecast=forecasts[m.sku])
            for m in metrics
        ]

        # Step 7: Kits
        kits = KitRecommender(settings.kits).recommend(
            metrics,
            strength_source,
            min_confidence=association_settings.min_confidence,
        )

        anomalies = detector.summarize(m.validation for m in metrics)
        if not quality.is_clean:
            logger.warning(
                "Input data was degraded during normalization",
                degraded_fields=quality.degraded_fields,
                dates_missing=quality.dates_missing,
            )

        summary = self._summary(
            metrics=metrics,
            inactive=len(aggregation.series) - len(metrics),
            mode=mode,
            kits=kits,
            safety_threshold=next(iter(margins.values())).threshold_used if margins else None,
            anomalies=anomalies,
            aggregation_skipped=aggregation.skipped_records,
            out_of_window=aggregation.out_of_window_records,
            window_size=window.size,
        )

        completed_at = datetime.now(timezone.utc)
        result = EngineResult(
            sku_metrics=metrics,
            kits=kits.kits,
            versatile_products=kits.versatile_products,
            associations=associations,
            association_mode=mode,
            quality=quality,
            validation=validation,
            anomalies=anomalies,
            periods=aggregation.periods,
            summary=summary,
            settings=settings.model_copy(deep=True),
            started_at=started_at,
            completed_at=completed_at,
        )

        # Step 8: Validate SKU metrics
        if metrics:
            result.sku_validation = create_sku_metrics_validator().validate(result.sku_frame())

        logger.info(
            "Merchandising analysis complete",
            skus=len(metrics),
            kits=len(kits.kits),
            association_mode=mode.value,
            duration_seconds=result.duration_seconds,
        )
        return result

    @staticmethod
    def _summary(
        metrics: List[SKUMetrics],
        inactive: int,
        mode: AssociationKind,
        kits: KitRecommendations,
        safety_threshold: Optional[float],
        anomalies: AnomalyReport,
        aggregation_skipped: int,
        out_of_window: int,
        window_size: int,
    ) -> Dict[str, Any]:
        class_counts = {label.value: 0 for label in ABCClass}
        for m in metrics:
            class_counts[m.class_label.value] += 1

        return {
            "total_skus": len(metrics),
            "inactive_skus": inactive,
            "class_counts": class_counts,
            "total_sales": sum(m.total_geral for m in metrics),
            "total_recommended_stock": sum(m.recommended_stock for m in metrics),
            "average_recommended_stock": (
                sum(m.recommended_stock for m in metrics) / len(metrics) if metrics else 0.0
            ),
            "best_sellers": sum(1 for m in metrics if m.is_best_seller),
            "visible_skus": sum(1 for m in metrics if m.is_visible),
            "needs_review": anomalies.needs_review,
            "association_mode": mode.value,
            "safety_threshold": safety_threshold,
            "kit_min_strength": kits.min_strength,
            "kit_pool_size": len(kits.pool),
            "kit_pairs_evaluated": kits.pairs_evaluated,
            "kits": len(kits.kits),
            "versatile_products": len(kits.versatile_products),
            "skipped_records": aggregation_skipped,
            "out_of_window_records": out_of_window,
            "window_size": window_size,
        }
