"""
Record Normalization and Aggregation Module
"""
from .normalizers import (
    DataQualityReport,
    Dimension,
    NormalizationResult,
    RecordNormalizer,
    TransactionRecord,
    normalize_records,
    parse_number,
)
from .aggregators import (
    AggregationResult,
    MonthlyAggregator,
    MonthlySeries,
    WindowSpec,
    aggregate_monthly,
)

__all__ = [
    "DataQualityReport",
    "Dimension",
    "NormalizationResult",
    "RecordNormalizer",
    "TransactionRecord",
    "normalize_records",
    "parse_number",
    "AggregationResult",
    "MonthlyAggregator",
    "MonthlySeries",
    "WindowSpec",
    "aggregate_monthly",
]
