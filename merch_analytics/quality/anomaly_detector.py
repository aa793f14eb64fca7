"""
Series Anomaly Detection Module

Rule-based checks over per-SKU monthly series that flag products whose
numbers need a human look before stock decisions are made on them.
Implements:
- Extreme spike detection (a month far above the series average)
- Very low activity detection (almost no months with sales)
- Negative sales detection (returns or data entry errors)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Sequence

import numpy as np
import structlog

logger = structlog.get_logger(__name__)


class AnomalyType(str, Enum):
    """Types of series anomalies"""
    EXTREME_SPIKE = "extreme_spike"
    VERY_LOW_ACTIVITY = "very_low_activity"
    NEGATIVE_SALES = "negative_sales"


REVIEW_TRIGGERS = {AnomalyType.EXTREME_SPIKE, AnomalyType.VERY_LOW_ACTIVITY}


@dataclass(frozen=True)
class SeriesValidation:
    """Anomaly flags for one SKU series"""
    issues: List[AnomalyType] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def needs_review(self) -> bool:
        return any(issue in REVIEW_TRIGGERS for issue in self.issues)


@dataclass
class AnomalyReport:
    """Anomaly counts across a set of SKUs"""
    skus_checked: int
    valid: int
    needs_review: int
    by_type: Dict[str, int] = field(default_factory=dict)


class SeriesAnomalyDetector:
    """
    Flags suspicious monthly sales patterns.

    Example:
        detector = SeriesAnomalyDetector(spike_ratio=20.0)
        validation = detector.check(series.values)
        validation.needs_review
    """

    def __init__(
        self,
        spike_ratio: float = 20.0,
        min_active_periods: int = 3,
    ):
        self.spike_ratio = spike_ratio
        self.min_active_periods = min_active_periods

    def check(self, values: Sequence[float]) -> SeriesValidation:
        """Run all rules on one series"""
        series = np.asarray(values, dtype=float)
        issues = []

        if series.size:
            mean = float(series.mean())
            if mean > 0 and float(series.max()) > mean * self.spike_ratio:
                issues.append(AnomalyType.EXTREME_SPIKE)

        if int(np.count_nonzero(series > 0)) < self.min_active_periods:
            issues.append(AnomalyType.VERY_LOW_ACTIVITY)

        if bool((series < 0).any()):
            issues.append(AnomalyType.NEGATIVE_SALES)

        return SeriesValidation(issues=issues)

    def summarize(self, validations: Iterable[SeriesValidation]) -> AnomalyReport:
        """Aggregate individual validations into a report"""
        validations = list(validations)
        by_type = {t.value: 0 for t in AnomalyType}
        for validation in validations:
            for issue in validation.issues:
                by_type[issue.value] += 1

        report = AnomalyReport(
            skus_checked=len(validations),
            valid=sum(1 for v in validations if v.is_valid),
            needs_review=sum(1 for v in validations if v.needs_review),
            by_type=by_type,
        )

        if report.needs_review:
            logger.warning(
                f"{report.needs_review} SKUs need review",
                skus_checked=report.skus_checked,
                **by_type,
            )
        return report
