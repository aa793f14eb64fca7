"""
Record Normalization Module

Turns raw sales lines into immutable ``TransactionRecord`` objects.
Handles:
- Locale-formatted numeric fields ("12,5", "R$ 1.200", " 7 un")
- Line amount derivation when the source did not supply one
- Date parsing with invalid dates kept as ``None`` (never defaulted)
- Data-quality accounting for every degraded field
"""

import math
import numbers
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import polars as pl
import structlog

from merch_analytics.config import FieldMapping, Settings, get_settings

logger = structlog.get_logger(__name__)

_NON_NUMERIC = re.compile(r"[^\d.,]")
_LEADING_DECIMAL = re.compile(r"\d+\.?\d*|\.\d+")

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
]

UNCLASSIFIED = "Unclassified"


class Dimension(str, Enum):
    """Grouping dimensions available on a transaction"""
    CUSTOMER = "customer"
    PRODUCT = "product"
    CITY = "city"
    FINISH = "finish"


@dataclass(frozen=True)
class TransactionRecord:
    """One normalized sales line"""
    customer: Optional[str]
    product: Optional[str]
    city: Optional[str]
    finish: Optional[str]
    quantity: float
    unit_value: float
    line_amount: float
    transaction_date: Optional[date]
    order_id: Optional[str] = None

    def entity_key(self, dimension: Union[Dimension, str]) -> str:
        """Grouping value for a dimension; blank keys fall into one bucket"""
        value = getattr(self, Dimension(dimension).value)
        return value if value else UNCLASSIFIED


@dataclass
class DataQualityReport:
    """Counts of fields the normalizer had to default, compute or drop"""
    total_records: int = 0
    quantity_missing: int = 0
    quantity_defaulted: int = 0
    unit_value_missing: int = 0
    unit_value_defaulted: int = 0
    line_amount_computed: int = 0
    dates_missing: int = 0
    dates_invalid: int = 0
    negative_quantities: int = 0
    skipped_from_aggregation: int = 0
    issues: List[str] = field(default_factory=list)

    @property
    def degraded_fields(self) -> int:
        return (
            self.quantity_defaulted
            + self.unit_value_defaulted
            + self.line_amount_computed
            + self.dates_invalid
        )

    @property
    def is_clean(self) -> bool:
        return self.degraded_fields == 0 and self.dates_missing == 0


@dataclass
class NormalizationResult:
    """Normalized records plus the quality report of the pass"""
    records: List[TransactionRecord]
    quality: DataQualityReport

    def to_frame(self) -> pl.DataFrame:
        return records_to_frame(self.records)


def _is_native_number(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def coerce_number(value: Any) -> Tuple[float, bool]:
    """
    Coerce a raw numeric field, reporting whether it had to be defaulted.

    Native numbers are taken as given (sign preserved). Strings keep only
    digits, '.' and ','; the first ',' is read as the decimal separator and
    the longest leading decimal is parsed. Inputs using ',' as a thousands
    separator therefore parse incorrectly ("1.234,5" -> 1.234).

    Returns:
        (value, defaulted) where defaulted is True when a non-empty input
        could not be parsed and fell back to 0.
    """
    if value is None:
        return 0.0, False

    if _is_native_number(value):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0, True
        return (number, False) if math.isfinite(number) else (0.0, True)

    if isinstance(value, bool):
        return 0.0, True

    text = str(value).strip()
    if not text:
        return 0.0, False

    cleaned = _NON_NUMERIC.sub("", text).replace(",", ".", 1)
    match = _LEADING_DECIMAL.match(cleaned)
    if match is None:
        return 0.0, True
    return float(match.group()), False


def parse_number(value: Any) -> float:
    """Coerce a raw numeric field; every malformed input degrades to 0"""
    return coerce_number(value)[0]


def parse_line_amount(value: Any) -> Optional[float]:
    """Line amount when present and numeric as-is, else None"""
    if value is None or isinstance(value, bool):
        return None
    if _is_native_number(value):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Optional[date]:
    """Parse a transaction date; unparseable values yield None"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _clean_key(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RecordNormalizer:
    """
    Normalizes raw transaction rows into ``TransactionRecord`` objects.

    Accepts a sequence of mappings or a Polars DataFrame. Never raises on
    bad data: malformed numbers become 0, bad dates become None, and every
    degradation is counted in the returned ``DataQualityReport``.

    Example:
        normalizer = RecordNormalizer()
        result = normalizer.normalize(rows)
        records, quality = result.records, result.quality
    """

    def __init__(
        self,
        field_mapping: Optional[FieldMapping] = None,
        max_issues: int = 100,
    ):
        self.fields = field_mapping or FieldMapping()
        self.max_issues = max_issues

    def _note(self, report: DataQualityReport, message: str) -> None:
        if len(report.issues) < self.max_issues:
            report.issues.append(message)

    def normalize_row(
        self,
        row: Mapping[str, Any],
        index: int,
        report: DataQualityReport,
    ) -> TransactionRecord:
        """Normalize a single raw row, updating the quality report"""
        f = self.fields
        raw_quantity = row.get(f.quantity)
        raw_unit_value = row.get(f.unit_value)
        raw_date = row.get(f.date)

        quantity, quantity_defaulted = coerce_number(raw_quantity)
        unit_value, unit_value_defaulted = coerce_number(raw_unit_value)

        if _clean_key(raw_quantity) is None:
            report.quantity_missing += 1
        if quantity_defaulted:
            report.quantity_defaulted += 1
            self._note(report, f"Record {index + 1}: invalid quantity format {raw_quantity!r}")
        if quantity < 0:
            report.negative_quantities += 1
            self._note(report, f"Record {index + 1}: negative quantity {quantity}")

        if _clean_key(raw_unit_value) is None:
            report.unit_value_missing += 1
        if unit_value_defaulted:
            report.unit_value_defaulted += 1
            self._note(report, f"Record {index + 1}: invalid unit value format {raw_unit_value!r}")

        line_amount = parse_line_amount(row.get(f.line_amount))
        if line_amount is None:
            line_amount = quantity * unit_value
            report.line_amount_computed += 1
            self._note(
                report,
                f"Record {index + 1}: line amount missing, computed as {line_amount:.2f}",
            )

        transaction_date = parse_date(raw_date)
        if transaction_date is None:
            if _clean_key(raw_date) is None:
                report.dates_missing += 1
            else:
                report.dates_invalid += 1
                self._note(report, f"Record {index + 1}: invalid date {raw_date!r}")

        return TransactionRecord(
            customer=_clean_key(row.get(f.customer)),
            product=_clean_key(row.get(f.product)),
            city=_clean_key(row.get(f.city)),
            finish=_clean_key(row.get(f.finish)),
            quantity=quantity,
            unit_value=unit_value,
            line_amount=line_amount,
            transaction_date=transaction_date,
            order_id=_clean_key(row.get(f.order_id)),
        )

    def normalize(
        self,
        rows: Union[pl.DataFrame, Iterable[Mapping[str, Any]]],
    ) -> NormalizationResult:
        """
        Normalize raw rows.

        Args:
            rows: Raw transaction rows (mappings) or a DataFrame

        Returns:
            NormalizationResult with records and quality counts
        """
        if isinstance(rows, pl.DataFrame):
            rows = rows.to_dicts()

        report = DataQualityReport()
        records = []
        for index, row in enumerate(rows):
            if isinstance(row, TransactionRecord):
                records.append(row)
            else:
                records.append(self.normalize_row(row, index, report))
            report.total_records += 1

        if report.degraded_fields:
            logger.warning(
                "Degraded fields during normalization",
                total_records=report.total_records,
                quantity_defaulted=report.quantity_defaulted,
                unit_value_defaulted=report.unit_value_defaulted,
                line_amount_computed=report.line_amount_computed,
                dates_invalid=report.dates_invalid,
            )
        logger.info(f"Normalized {len(records)} transaction records")

        return NormalizationResult(records=records, quality=report)


def records_to_frame(records: List[TransactionRecord]) -> pl.DataFrame:
    """Flatten records into a typed Polars DataFrame"""
    schema: Dict[str, Any] = {
        "customer": pl.Utf8,
        "product": pl.Utf8,
        "city": pl.Utf8,
        "finish": pl.Utf8,
        "quantity": pl.Float64,
        "unit_value": pl.Float64,
        "line_amount": pl.Float64,
        "transaction_date": pl.Date,
        "order_id": pl.Utf8,
    }
    return pl.DataFrame(
        {
            "customer": [r.customer for r in records],
            "product": [r.product for r in records],
            "city": [r.city for r in records],
            "finish": [r.finish for r in records],
            "quantity": [r.quantity for r in records],
            "unit_value": [r.unit_value for r in records],
            "line_amount": [r.line_amount for r in records],
            "transaction_date": [r.transaction_date for r in records],
            "order_id": [r.order_id for r in records],
        },
        schema=schema,
    )


def normalize_records(
    rows: Union[pl.DataFrame, Iterable[Mapping[str, Any]]],
    settings: Optional[Settings] = None,
) -> NormalizationResult:
    """
    Convenience function to normalize rows with configured field names.

    Args:
        rows: Raw transaction rows or DataFrame
        settings: Engine settings (cached settings if omitted)

    Returns:
        NormalizationResult
    """
    settings = settings or get_settings()
    normalizer = RecordNormalizer(
        field_mapping=settings.field_mapping,
        max_issues=settings.monitoring.max_quality_issues,
    )
    return normalizer.normalize(rows)
