"""
Momentum Forecast Adjustment

Nudges a SKU's base stock recommendation by the recent momentum of the
products associated with it. Momentum is the z-score of an associated SKU's
latest month against its own series:

    momentum = (latest - mean) / std            (population std, 0 if std == 0)
    factor   = 1 + alpha * sum(strength * momentum) / sum(strength)
    adjusted = max(0, round(base * factor))
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import structlog

from merch_analytics.transformation.aggregators import MonthlySeries
from .correlation import Association, AssociationKind
from .stats import population_std, round_half_up

logger = structlog.get_logger(__name__)

MAX_DRIVERS = 3


@dataclass(frozen=True)
class ForecastDriver:
    """An associated SKU's contribution to the adjustment"""
    sku: str
    strength: float
    momentum: float
    weighted_momentum: float
    impact_percent: float
    kind: AssociationKind


@dataclass(frozen=True)
class ForecastAdjustment:
    base_recommendation: int
    weighted_momentum: float
    adjustment_factor: float
    adjusted_forecast: int
    drivers: List[ForecastDriver] = field(default_factory=list)


def momentum(values: Sequence[float]) -> float:
    """z-score of the last value; 0 for an empty or constant series"""
    if len(values) == 0:
        return 0.0
    std = population_std(values)
    if std == 0:
        return 0.0
    return float((values[-1] - np.mean(values)) / std)


class MomentumForecastAdjuster:
    """
    Example:
        adjuster = MomentumForecastAdjuster(alpha=0.15)
        adjustment = adjuster.adjust(120, associations["SKU-1"], series)
        adjustment.adjusted_forecast
    """

    def __init__(self, alpha: float = 0.15):
        self.alpha = alpha

    def adjust(
        self,
        base_recommendation: int,
        associations: Optional[List[Association]],
        series: Mapping[str, MonthlySeries],
    ) -> ForecastAdjustment:
        """
        Adjust one base recommendation.

        Associations whose target has no series are ignored. With no usable
        association the base is returned unchanged.
        """
        drivers = []
        total_weighted = 0.0
        total_strength = 0.0
        for association in associations or []:
            target = series.get(association.target)
            if target is None:
                continue
            value = momentum(target.values)
            weighted = value * association.strength
            total_weighted += weighted
            total_strength += association.strength
            drivers.append(ForecastDriver(
                sku=association.target,
                strength=association.strength,
                momentum=value,
                weighted_momentum=weighted,
                impact_percent=weighted * self.alpha * 100,
                kind=association.kind,
            ))

        if not drivers:
            return ForecastAdjustment(
                base_recommendation=base_recommendation,
                weighted_momentum=0.0,
                adjustment_factor=1.0,
                adjusted_forecast=base_recommendation,
            )

        average = total_weighted / total_strength if total_strength > 0 else 0.0
        factor = 1 + self.alpha * average
        drivers.sort(key=lambda d: abs(d.weighted_momentum), reverse=True)

        return ForecastAdjustment(
            base_recommendation=base_recommendation,
            weighted_momentum=average,
            adjustment_factor=factor,
            adjusted_forecast=max(0, round_half_up(base_recommendation * factor)),
            drivers=drivers[:MAX_DRIVERS],
        )

    def adjust_all(
        self,
        base_recommendations: Dict[str, int],
        associations: Mapping[str, List[Association]],
        series: Mapping[str, MonthlySeries],
    ) -> Dict[str, ForecastAdjustment]:
        adjustments = {
            sku: self.adjust(base, associations.get(sku), series)
            for sku, base in base_recommendations.items()
        }
        logger.info(
            "Forecast adjustments applied",
            skus=len(adjustments),
            adjusted=sum(1 for a in adjustments.values() if a.drivers),
            alpha=self.alpha,
        )
        return adjustments
