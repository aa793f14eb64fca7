"""
ABC Classification

Ranks entities by their contribution to a value total and labels them
A (vital), B (important) or C (trivial) by cumulative-percentage cut-offs.
Works on any grouping dimension (customer, product, city, finish) or on
already-aggregated totals such as per-SKU window quantities.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import polars as pl
import structlog

from merch_analytics.config import ABCThresholds
from merch_analytics.transformation.normalizers import (
    UNCLASSIFIED,
    Dimension,
    TransactionRecord,
    records_to_frame,
)

logger = structlog.get_logger(__name__)

VALUE_FIELDS = ("line_amount", "quantity")


class ABCClass(str, Enum):
    """ABC tiers"""
    A = "A"
    B = "B"
    C = "C"


@dataclass(frozen=True)
class EntityAggregate:
    """One grouping key's rollup"""
    key: str
    total_value: float
    total_quantity: float
    record_count: int

    @property
    def average_unit_value(self) -> float:
        if self.total_quantity == 0:
            return 0.0
        return self.total_value / self.total_quantity


@dataclass(frozen=True)
class ClassifiedEntity(EntityAggregate):
    """Aggregate with its rank, share and class"""
    percentage_of_total: float
    cumulative_percentage: float
    class_label: ABCClass
    rank: int


@dataclass
class ClassificationResult:
    """Ranked entities and the three class buckets"""
    entities: List[ClassifiedEntity]
    total_value: float
    thresholds: ABCThresholds
    dimension: Optional[str] = None
    value_field: str = "line_amount"
    _by_key: Dict[str, ClassifiedEntity] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._by_key = {entity.key: entity for entity in self.entities}

    def _bucket(self, label: ABCClass) -> List[ClassifiedEntity]:
        return [e for e in self.entities if e.class_label == label]

    @property
    def class_a(self) -> List[ClassifiedEntity]:
        return self._bucket(ABCClass.A)

    @property
    def class_b(self) -> List[ClassifiedEntity]:
        return self._bucket(ABCClass.B)

    @property
    def class_c(self) -> List[ClassifiedEntity]:
        return self._bucket(ABCClass.C)

    def get(self, key: str) -> Optional[ClassifiedEntity]:
        return self._by_key.get(key)

    def class_counts(self) -> Dict[str, int]:
        return {
            ABCClass.A.value: len(self.class_a),
            ABCClass.B.value: len(self.class_b),
            ABCClass.C.value: len(self.class_c),
        }

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "rank": [e.rank for e in self.entities],
                "key": [e.key for e in self.entities],
                "total_value": [e.total_value for e in self.entities],
                "total_quantity": [e.total_quantity for e in self.entities],
                "record_count": [e.record_count for e in self.entities],
                "average_unit_value": [e.average_unit_value for e in self.entities],
                "percentage_of_total": [e.percentage_of_total for e in self.entities],
                "cumulative_percentage": [e.cumulative_percentage for e in self.entities],
                "class_label": [e.class_label.value for e in self.entities],
            },
            schema_overrides={"record_count": pl.Int64, "rank": pl.Int64},
        )


def classify_label(cumulative_percentage: float, thresholds: ABCThresholds) -> ABCClass:
    """Class for a cumulative share under the given cut-offs"""
    if cumulative_percentage <= thresholds.class_a_boundary:
        return ABCClass.A
    if cumulative_percentage <= thresholds.class_b_boundary:
        return ABCClass.B
    return ABCClass.C


class ABCClassifier:
    """
    Pareto-style classifier.

    Sorting is stable, so entities with equal totals keep the order in which
    they first appeared. A zero grand total yields 0% everywhere and every
    entity lands in class A.

    Negative totals (returns) are kept as they are. They shrink the grand
    total, so the running share can pass 100% before falling back, and a
    top entity may then be labelled C.

    Example:
        classifier = ABCClassifier(ABC_PROFILES["pareto"])
        result = classifier.classify(records, Dimension.CUSTOMER)
        top = result.class_a
    """

    def __init__(self, thresholds: Optional[ABCThresholds] = None):
        self.thresholds = thresholds or ABCThresholds()

    def _rank(
        self,
        aggregates: List[EntityAggregate],
        dimension: Optional[str],
        value_field: str,
    ) -> ClassificationResult:
        ordered = sorted(aggregates, key=lambda a: a.total_value, reverse=True)
        grand_total = sum(a.total_value for a in ordered)

        entities = []
        running = 0.0
        for rank, aggregate in enumerate(ordered, start=1):
            running += aggregate.total_value
            if grand_total > 0:
                percentage = aggregate.total_value / grand_total * 100
                cumulative = running / grand_total * 100
            else:
                percentage = 0.0
                cumulative = 0.0

            entities.append(ClassifiedEntity(
                key=aggregate.key,
                total_value=aggregate.total_value,
                total_quantity=aggregate.total_quantity,
                record_count=aggregate.record_count,
                percentage_of_total=percentage,
                cumulative_percentage=cumulative,
                class_label=classify_label(cumulative, self.thresholds),
                rank=rank,
            ))

        result = ClassificationResult(
            entities=entities,
            total_value=grand_total,
            thresholds=self.thresholds,
            dimension=dimension,
            value_field=value_field,
        )
        logger.debug(
            "ABC classification complete",
            dimension=dimension,
            entities=len(entities),
            **result.class_counts(),
        )
        return result

    def classify(
        self,
        records: List[TransactionRecord],
        dimension: Union[Dimension, str],
        value_field: str = "line_amount",
    ) -> ClassificationResult:
        """
        Group records by a dimension and classify the groups.

        Args:
            records: Normalized transactions
            dimension: Grouping dimension
            value_field: "line_amount" (revenue) or "quantity"

        Returns:
            ClassificationResult ordered by rank
        """
        if value_field not in VALUE_FIELDS:
            raise ValueError(f"value_field must be one of {VALUE_FIELDS}, got {value_field!r}")
        dimension = Dimension(dimension)

        grouped = (
            records_to_frame(records)
            .with_columns(pl.col(dimension.value).fill_null(UNCLASSIFIED).alias("key"))
            .group_by("key", maintain_order=True)
            .agg([
                pl.col(value_field).sum().alias("total_value"),
                pl.col("quantity").sum().alias("total_quantity"),
                pl.len().alias("record_count"),
            ])
        )

        aggregates = [
            EntityAggregate(
                key=key,
                total_value=float(total_value),
                total_quantity=float(total_quantity),
                record_count=int(record_count),
            )
            for key, total_value, total_quantity, record_count in grouped.iter_rows()
        ]
        return self._rank(aggregates, dimension.value, value_field)

    def classify_values(
        self,
        values: Union[Mapping[str, float], Iterable[Tuple[str, float]]],
        value_field: str = "quantity",
    ) -> ClassificationResult:
        """Classify pre-aggregated totals, keeping the input order for ties"""
        items = values.items() if isinstance(values, Mapping) else values
        aggregates = [
            EntityAggregate(key=key, total_value=float(total), total_quantity=float(total), record_count=1)
            for key, total in items
        ]
        return self._rank(aggregates, None, value_field)


def classify_customers(records: List[TransactionRecord], thresholds: Optional[ABCThresholds] = None) -> ClassificationResult:
    return ABCClassifier(thresholds).classify(records, Dimension.CUSTOMER)


def classify_products(records: List[TransactionRecord], thresholds: Optional[ABCThresholds] = None) -> ClassificationResult:
    return ABCClassifier(thresholds).classify(records, Dimension.PRODUCT)


def classify_cities(records: List[TransactionRecord], thresholds: Optional[ABCThresholds] = None) -> ClassificationResult:
    return ABCClassifier(thresholds).classify(records, Dimension.CITY)


def classify_finishes(records: List[TransactionRecord], thresholds: Optional[ABCThresholds] = None) -> ClassificationResult:
    return ABCClassifier(thresholds).classify(records, Dimension.FINISH)
