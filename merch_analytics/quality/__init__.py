"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    create_sku_metrics_validator,
    create_transactions_validator,
)
from .anomaly_detector import AnomalyType, SeriesAnomalyDetector, SeriesValidation

__all__ = [
    "DataValidator",
    "ValidationResult",
    "create_sku_metrics_validator",
    "create_transactions_validator",
    "AnomalyType",
    "SeriesAnomalyDetector",
    "SeriesValidation",
]
