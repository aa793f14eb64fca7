"""
Merchandising Analytics Module
"""
from .abc import (
    ABCClass,
    ABCClassifier,
    ClassificationResult,
    ClassifiedEntity,
    classify_cities,
    classify_customers,
    classify_finishes,
    classify_products,
)
from .correlation import (
    Association,
    AssociationKind,
    correlation_associations,
    critical_correlation,
    pearson,
)
from .basket import BasketAssociationMiner, has_baskets
from .forecast import ForecastAdjustment, ForecastDriver, MomentumForecastAdjuster
from .safety import MarginType, SafetyMargin, SafetyMarginCalculator
from .metrics import SKUMetrics, SKUMetricsBuilder
from .kits import (
    BasketStrength,
    CorrelationStrength,
    KitCandidate,
    KitRecommender,
    VersatileProduct,
)

__all__ = [
    "ABCClass",
    "ABCClassifier",
    "ClassificationResult",
    "ClassifiedEntity",
    "classify_cities",
    "classify_customers",
    "classify_finishes",
    "classify_products",
    "Association",
    "AssociationKind",
    "correlation_associations",
    "critical_correlation",
    "pearson",
    "BasketAssociationMiner",
    "has_baskets",
    "ForecastAdjustment",
    "ForecastDriver",
    "MomentumForecastAdjuster",
    "MarginType",
    "SafetyMargin",
    "SafetyMarginCalculator",
    "SKUMetrics",
    "SKUMetricsBuilder",
    "BasketStrength",
    "CorrelationStrength",
    "KitCandidate",
    "KitRecommender",
    "VersatileProduct",
]
