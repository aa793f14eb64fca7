"""
Monthly Aggregation Module

Folds a transaction stream into fixed-width per-SKU monthly series.
Two window layouts are supported:
- Calendar: twelve named months (January..December), optionally for one year
- Trailing: N consecutive months ending at an anchor month
Missing periods are explicit zeros; records without a valid date are skipped
and counted.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import polars as pl
import structlog

from merch_analytics.config import WindowAnchor
from merch_analytics.config.settings import WindowSettings
from .normalizers import UNCLASSIFIED, Dimension, TransactionRecord, records_to_frame

logger = structlog.get_logger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@dataclass(frozen=True)
class WindowSpec:
    """Layout of the monthly analysis window"""
    anchor: WindowAnchor = WindowAnchor.CALENDAR
    months: int = 12
    year: Optional[int] = None
    anchor_date: Optional[date] = None
    anchor_to_now: bool = False

    def __post_init__(self):
        if self.anchor == WindowAnchor.TRAILING and self.months < 1:
            raise ValueError(f"Window must span at least one month, got {self.months}")

    @property
    def size(self) -> int:
        return 12 if self.anchor == WindowAnchor.CALENDAR else self.months

    @classmethod
    def calendar(cls, year: Optional[int] = None) -> "WindowSpec":
        return cls(anchor=WindowAnchor.CALENDAR, months=12, year=year)

    @classmethod
    def trailing(
        cls,
        months: int,
        anchor_date: Optional[date] = None,
        anchor_to_now: bool = False,
    ) -> "WindowSpec":
        return cls(
            anchor=WindowAnchor.TRAILING,
            months=months,
            anchor_date=anchor_date,
            anchor_to_now=anchor_to_now,
        )

    @classmethod
    def from_settings(cls, settings: WindowSettings) -> "WindowSpec":
        return cls(
            anchor=settings.anchor,
            months=settings.months,
            year=settings.year,
            anchor_to_now=settings.anchor_to_now,
        )


@dataclass(frozen=True)
class MonthlySeries:
    """One SKU's per-period quantities over the full window"""
    sku: str
    periods: Tuple[str, ...]
    values: Tuple[float, ...]

    def __post_init__(self):
        if len(self.periods) != len(self.values):
            raise ValueError(
                f"Series for {self.sku!r} has {len(self.values)} values "
                f"for {len(self.periods)} periods"
            )
        if not self.values:
            raise ValueError(f"Series for {self.sku!r} is empty")

    @property
    def size(self) -> int:
        return len(self.values)

    @property
    def total(self) -> float:
        return float(sum(self.values))

    @property
    def latest(self) -> float:
        return self.values[-1]

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=float)

    def trailing(self, periods: int) -> Tuple[float, ...]:
        """Last ``periods`` values"""
        return self.values[-periods:]


@dataclass
class AggregationResult:
    """Per-SKU series plus aggregation diagnostics"""
    series: Dict[str, MonthlySeries]
    periods: Tuple[str, ...]
    skipped_records: int
    out_of_window_records: int
    window: WindowSpec

    def to_frame(self) -> pl.DataFrame:
        """Wide frame: one row per SKU, one column per period"""
        data = {"sku": list(self.series)}
        for position, period in enumerate(self.periods):
            data[period] = [s.values[position] for s in self.series.values()]
        return pl.DataFrame(data)


def _month_ordinal(value: date) -> int:
    return value.year * 12 + value.month - 1


def _ordinal_label(ordinal: int) -> str:
    return f"{ordinal // 12}-{ordinal % 12 + 1:02d}"


class MonthlyAggregator:
    """
    Builds fixed-length monthly series per entity.

    Example:
        aggregator = MonthlyAggregator()
        result = aggregator.aggregate(records, WindowSpec.trailing(5))
        result.series["SKU-1"].values
    """

    def __init__(self, dimension: Union[Dimension, str] = Dimension.PRODUCT):
        self.dimension = Dimension(dimension)

    def _periods(self, window: WindowSpec, end_ordinal: Optional[int]) -> Tuple[str, ...]:
        if window.anchor == WindowAnchor.CALENDAR:
            if window.year is None:
                return tuple(MONTH_NAMES)
            return tuple(f"{window.year}-{month:02d}" for month in range(1, 13))
        start = end_ordinal - window.months + 1
        return tuple(_ordinal_label(o) for o in range(start, end_ordinal + 1))

    def _end_ordinal(self, window: WindowSpec, frame: pl.DataFrame) -> int:
        if window.anchor_date is not None:
            return _month_ordinal(window.anchor_date)
        if window.anchor_to_now or frame.is_empty():
            return _month_ordinal(date.today())
        return _month_ordinal(frame["transaction_date"].max())

    def aggregate(
        self,
        records: List[TransactionRecord],
        window: Optional[WindowSpec] = None,
    ) -> AggregationResult:
        """
        Fold records into per-SKU series.

        Args:
            records: Normalized transactions (any SKUs)
            window: Window layout (12 calendar months if omitted)

        Returns:
            AggregationResult with one zero-filled series per dated SKU
        """
        window = window or WindowSpec()
        frame = records_to_frame(records).with_columns(
            pl.col(self.dimension.value).fill_null(UNCLASSIFIED).alias("sku")
        )

        skipped = frame["transaction_date"].null_count()
        if skipped:
            logger.warning(f"Skipping {skipped} records without a valid date")
        frame = frame.filter(pl.col("transaction_date").is_not_null())

        skus = frame["sku"].unique(maintain_order=True).to_list()

        if window.anchor == WindowAnchor.CALENDAR:
            end_ordinal = None
            if window.year is not None:
                in_window = pl.col("transaction_date").dt.year() == window.year
            else:
                in_window = pl.lit(True)
            frame = frame.with_columns(
                (pl.col("transaction_date").dt.month().cast(pl.Int64) - 1).alias("period_index"),
                in_window.alias("in_window"),
            )
        else:
            end_ordinal = self._end_ordinal(window, frame)
            start_ordinal = end_ordinal - window.months + 1
            frame = frame.with_columns(
                (
                    pl.col("transaction_date").dt.year().cast(pl.Int64) * 12
                    + pl.col("transaction_date").dt.month().cast(pl.Int64)
                    - 1
                    - start_ordinal
                ).alias("period_index")
            ).with_columns(
                pl.col("period_index").is_between(0, window.months - 1).alias("in_window")
            )

        out_of_window = frame.filter(~pl.col("in_window")).height
        totals = (
            frame.filter(pl.col("in_window"))
            .group_by(["sku", "period_index"], maintain_order=True)
            .agg(pl.col("quantity").sum().alias("quantity"))
        )

        periods = self._periods(window, end_ordinal)
        grid = {sku: [0.0] * window.size for sku in skus}
        for sku, period_index, quantity in totals.iter_rows():
            grid[sku][period_index] += quantity

        series = {
            sku: MonthlySeries(sku=sku, periods=periods, values=tuple(values))
            for sku, values in grid.items()
        }

        logger.info(
            "Monthly aggregation complete",
            skus=len(series),
            window=window.size,
            skipped_records=skipped,
            out_of_window_records=out_of_window,
        )

        return AggregationResult(
            series=series,
            periods=periods,
            skipped_records=skipped,
            out_of_window_records=out_of_window,
            window=window,
        )


def aggregate_monthly(
    records: List[TransactionRecord],
    window: Optional[WindowSpec] = None,
) -> AggregationResult:
    """Convenience function: per-product monthly series"""
    return MonthlyAggregator(Dimension.PRODUCT).aggregate(records, window)
