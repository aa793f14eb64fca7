"""
Numeric helpers shared by the analytics components.
"""

import math
from typing import Sequence

import numpy as np


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero on the positive side"""
    return int(math.floor(value + 0.5))


def population_std(values: Sequence[float]) -> float:
    """Population standard deviation (ddof=0); 0 for an empty sequence"""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """std / mean, 0 when the mean is not positive"""
    if len(values) == 0:
        return 0.0
    mean = float(np.mean(values))
    if mean <= 0:
        return 0.0
    return population_std(values) / mean


def nearest_rank_percentile(values: Sequence[float], percentile: float) -> float:
    """
    Nearest-rank percentile: the smallest value whose rank covers the
    requested share (sorted[ceil(p/100 * n) - 1]). 0 for no values.
    """
    if len(values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype=float), percentile, method="inverted_cdf"))
