"""
Kit Recommendation

Pairs of top products that sell together, with a stock level for the kit
and an estimate of the annual sales the pairing could generate.

Pairs are drawn from a bounded pool of top SKUs (best sellers or class A)
and scored by an association strength: the correlation of their monthly
series, or the best basket confidence between them when order data exists.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

import polars as pl
import structlog

from merch_analytics.config.settings import KitSettings
from .abc import ABCClass
from .basket import BasketStatistics
from .correlation import AssociationKind, critical_correlation, pearson
from .metrics import SKUMetrics
from .stats import round_half_up

logger = structlog.get_logger(__name__)


class StrengthSource:
    """Association strength between two SKUs"""

    kind: AssociationKind

    def strength(self, first: SKUMetrics, second: SKUMetrics) -> float:
        raise NotImplementedError


class CorrelationStrength(StrengthSource):
    """Signed Pearson correlation of the two monthly series"""

    kind = AssociationKind.CORRELATION

    def strength(self, first: SKUMetrics, second: SKUMetrics) -> float:
        return pearson(first.series.values, second.series.values)


class BasketStrength(StrengthSource):
    """Highest confidence of the two rule directions"""

    kind = AssociationKind.BASKET

    def __init__(self, statistics: BasketStatistics):
        self.statistics = statistics

    def strength(self, first: SKUMetrics, second: SKUMetrics) -> float:
        forward = self.statistics.rule(first.sku, second.sku).confidence
        backward = self.statistics.rule(second.sku, first.sku).confidence
        return max(forward, backward)


@dataclass(frozen=True)
class KitCandidate:
    """A recommended product pairing"""
    kit_id: str
    sku_a: str
    sku_b: str
    class_a_label: ABCClass
    class_b_label: ABCClass
    sales_a: float
    sales_b: float
    association_strength: float
    kind: AssociationKind
    combined_sales: float
    combined_average_monthly: float
    recommended_stock: int
    sales_potential: int

    @property
    def products(self) -> Tuple[str, str]:
        return (self.sku_a, self.sku_b)


@dataclass(frozen=True)
class VersatileProduct:
    """A SKU that appears in several kept kits"""
    sku: str
    class_label: ABCClass
    total_sales: float
    kit_count: int
    kit_ids: Tuple[str, ...]


@dataclass
class KitRecommendations:
    """Kept kits plus the versatile products across them"""
    kits: List[KitCandidate] = field(default_factory=list)
    versatile_products: List[VersatileProduct] = field(default_factory=list)
    pool: List[str] = field(default_factory=list)
    pairs_evaluated: int = 0
    min_strength: float = 0.0

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "kit_id": [k.kit_id for k in self.kits],
                "sku_a": [k.sku_a for k in self.kits],
                "sku_b": [k.sku_b for k in self.kits],
                "class_a_label": [k.class_a_label.value for k in self.kits],
                "class_b_label": [k.class_b_label.value for k in self.kits],
                "association_strength": [k.association_strength for k in self.kits],
                "kind": [k.kind.value for k in self.kits],
                "combined_sales": [k.combined_sales for k in self.kits],
                "combined_average_monthly": [k.combined_average_monthly for k in self.kits],
                "recommended_stock": [k.recommended_stock for k in self.kits],
                "sales_potential": [k.sales_potential for k in self.kits],
            },
            schema_overrides={"recommended_stock": pl.Int64, "sales_potential": pl.Int64},
        )


class KitRecommender:
    """
    Recommends product kits from ranked SKU metrics.

    Example:
        recommender = KitRecommender(settings.kits)
        result = recommender.recommend(metrics, CorrelationStrength())
        result.kits[0].sales_potential
    """

    def __init__(self, settings: Optional[KitSettings] = None):
        self.settings = settings or KitSettings()

    def candidate_pool(self, metrics: List[SKUMetrics]) -> List[SKUMetrics]:
        """Best sellers or class A SKUs in rank order, capped"""
        cap = min(self.settings.pool_cap, math.ceil(len(metrics) * self.settings.pool_fraction))
        ordered = sorted(metrics, key=lambda m: m.rank)
        eligible = [m for m in ordered if m.is_best_seller or m.class_label == ABCClass.A]
        return eligible[:cap]

    def resolve_min_strength(self, source: StrengthSource, window_size: int, min_confidence: float) -> float:
        """Numeric cut-off for the strength source in use"""
        configured = self.settings.min_strength
        if configured != "auto":
            return float(configured)
        if source.kind == AssociationKind.BASKET:
            return min_confidence
        return critical_correlation(window_size, self.settings.significance_level)

    def build_kit(
        self,
        kit_id: str,
        first: SKUMetrics,
        second: SKUMetrics,
        strength: float,
        kind: AssociationKind,
    ) -> KitCandidate:
        """Kit metrics for one retained pair (members in canonical order)"""
        first, second = sorted((first, second), key=lambda m: m.sku)
        tier = self.settings.tier_for(strength)

        combined_average = (first.average_monthly + second.average_monthly) / 2
        base_stock = max(first.average_monthly, second.average_monthly) * self.settings.base_stock_months

        return KitCandidate(
            kit_id=kit_id,
            sku_a=first.sku,
            sku_b=second.sku,
            class_a_label=first.class_label,
            class_b_label=second.class_label,
            sales_a=first.total_geral,
            sales_b=second.total_geral,
            association_strength=strength,
            kind=kind,
            combined_sales=first.total_geral + second.total_geral,
            combined_average_monthly=combined_average,
            recommended_stock=round_half_up(base_stock * tier.stock_bonus),
            sales_potential=round_half_up(combined_average * strength * 12 * tier.impact_multiplier),
        )

    def versatile_products(self, kits: List[KitCandidate], by_sku: Dict[str, SKUMetrics]) -> List[VersatileProduct]:
        memberships: Dict[str, List[str]] = {}
        for kit in kits:
            for sku in kit.products:
                memberships.setdefault(sku, []).append(kit.kit_id)

        versatile = [
            VersatileProduct(
                sku=sku,
                class_label=by_sku[sku].class_label,
                total_sales=by_sku[sku].total_geral,
                kit_count=len(kit_ids),
                kit_ids=tuple(kit_ids),
            )
            for sku, kit_ids in memberships.items()
            if len(kit_ids) > 1
        ]
        versatile.sort(key=lambda v: v.kit_count, reverse=True)
        return versatile[:self.settings.top_versatile]

    def recommend(
        self,
        metrics: List[SKUMetrics],
        source: Optional[StrengthSource] = None,
        min_confidence: float = 0.25,
    ) -> KitRecommendations:
        """
        Evaluate pool pairs and keep the strongest kits.

        Args:
            metrics: Ranked SKU metrics
            source: Strength source (series correlation if omitted)
            min_confidence: Cut-off used by the automatic minimum for baskets

        Returns:
            KitRecommendations; empty when the pool has fewer than two SKUs
        """
        source = source or CorrelationStrength()
        pool = self.candidate_pool(metrics)
        if len(pool) < 2:
            logger.info("Kit pool too small, no kits recommended", pool=len(pool))
            return KitRecommendations(pool=[m.sku for m in pool])

        window_size = pool[0].window_size
        min_strength = self.resolve_min_strength(source, window_size, min_confidence)

        seen = set()
        retained = []
        evaluated = 0
        for i, first in enumerate(pool):
            for second in pool[i + 1:]:
                if evaluated >= self.settings.max_pair_evaluations:
                    break
                key = tuple(sorted((first.sku, second.sku)))
                if key in seen:
                    continue
                seen.add(key)
                evaluated += 1

                strength = source.strength(first, second)
                if strength >= min_strength:
                    retained.append((first, second, strength))
            if evaluated >= self.settings.max_pair_evaluations:
                logger.warning(
                    "Kit pair evaluation budget reached",
                    budget=self.settings.max_pair_evaluations,
                )
                break

        candidates = [
            self.build_kit("", first, second, strength, source.kind)
            for first, second, strength in retained
        ]
        candidates.sort(key=lambda k: k.sales_potential, reverse=True)
        kits = [
            replace(kit, kit_id=f"kit_{position}")
            for position, kit in enumerate(candidates[:self.settings.top_k], start=1)
        ]

        by_sku = {m.sku: m for m in pool}
        result = KitRecommendations(
            kits=kits,
            versatile_products=self.versatile_products(kits, by_sku),
            pool=[m.sku for m in pool],
            pairs_evaluated=evaluated,
            min_strength=min_strength,
        )

        logger.info(
            "Kit recommendations built",
            pool=len(pool),
            pairs_evaluated=evaluated,
            retained=len(retained),
            kits=len(kits),
            versatile=len(result.versatile_products),
            min_strength=round(min_strength, 4),
        )
        return result

