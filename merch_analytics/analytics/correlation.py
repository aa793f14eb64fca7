"""
Correlation Engine

Pearson correlation between SKU monthly series and the per-SKU association
lists built from it. Two SKUs whose monthly demand rises and falls together
are treated as related products.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import structlog
from scipy import stats

from merch_analytics.transformation.aggregators import MonthlySeries

logger = structlog.get_logger(__name__)


class AssociationKind(str, Enum):
    """Where an association strength comes from"""
    CORRELATION = "correlation"
    BASKET = "basket"


@dataclass(frozen=True)
class Association:
    """Directed relation source -> target"""
    source: str
    target: str
    strength: float
    kind: AssociationKind
    correlation: Optional[float] = None
    support: Optional[float] = None
    confidence: Optional[float] = None
    lift: Optional[float] = None


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation coefficient of two equal-length sequences.

    A constant sequence has no variance and is reported as 0.0 rather
    than NaN. Deviations are taken from the mean so that float rounding
    on flat fractional series cannot leave a spurious non-zero variance.

    Raises:
        ValueError: If the sequences differ in length
    """
    if len(x) != len(y):
        raise ValueError(f"Series length mismatch: {len(x)} != {len(y)}")
    if len(x) == 0:
        return 0.0

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if np.ptp(xs) == 0 or np.ptp(ys) == 0:
        return 0.0

    dx = xs - xs.mean()
    dy = ys - ys.mean()
    denominator_sq = (dx * dx).sum() * (dy * dy).sum()
    if denominator_sq <= 0:
        return 0.0

    r = float((dx * dy).sum() / math.sqrt(denominator_sq))
    return max(-1.0, min(1.0, r))


def critical_correlation(n: int, alpha: float = 0.05) -> float:
    """
    Smallest |r| that is significant at ``alpha`` (two-tailed) for ``n``
    paired observations, from the Student t distribution with n - 2 degrees
    of freedom. About 0.576 for n = 12.
    """
    if n < 3:
        raise ValueError(f"Need at least 3 observations for a significance cut-off, got {n}")
    if not 0 < alpha < 1:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")
    df = n - 2
    t = stats.t.ppf(1 - alpha / 2, df)
    return float(t / math.sqrt(t ** 2 + df))


def correlation_matrix(series: Mapping[str, MonthlySeries], skus: Sequence[str]) -> np.ndarray:
    """Symmetric matrix of pairwise ``pearson`` values in ``skus`` order"""
    size = len(skus)
    matrix = np.eye(size)
    for i in range(size):
        for j in range(i + 1, size):
            r = pearson(series[skus[i]].values, series[skus[j]].values)
            matrix[i, j] = matrix[j, i] = r
    return matrix


def correlation_associations(
    series: Mapping[str, MonthlySeries],
    skus: Optional[Iterable[str]] = None,
    threshold: float = 0.6,
    top_k: int = 5,
) -> Dict[str, List[Association]]:
    """
    Associations for each SKU from series correlation.

    Args:
        series: Monthly series keyed by SKU
        skus: SKUs to relate (all series keys if omitted)
        threshold: Minimum |r| for an association
        top_k: Associations kept per source SKU

    Returns:
        Mapping of source SKU to associations, strongest first. Every
        requested SKU has an entry, possibly empty.
    """
    skus = list(series) if skus is None else [s for s in skus if s in series]
    matrix = correlation_matrix(series, skus)

    associations = {}
    for i, source in enumerate(skus):
        related = []
        for j, target in enumerate(skus):
            if i == j:
                continue
            r = float(matrix[i, j])
            if abs(r) >= threshold:
                related.append(Association(
                    source=source,
                    target=target,
                    strength=abs(r),
                    kind=AssociationKind.CORRELATION,
                    correlation=r,
                ))
        related.sort(key=lambda a: a.strength, reverse=True)
        associations[source] = related[:top_k]

    logger.info(
        "Correlation associations built",
        skus=len(skus),
        associations=sum(len(v) for v in associations.values()),
        threshold=threshold,
    )
    return associations
