"""
Test Suite Configuration
"""
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from merch_analytics.config import Settings
from merch_analytics.data import generate_sales
from merch_analytics.transformation import MonthlySeries, TransactionRecord
from merch_analytics.transformation.aggregators import MONTH_NAMES


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing")


@pytest.fixture
def make_record() -> Callable[..., TransactionRecord]:
    """Factory for normalized records"""
    def factory(
        product: str = "SKU-1",
        quantity: float = 1.0,
        when: Optional[date] = date(2024, 1, 15),
        order_id: Optional[str] = None,
        customer: Optional[str] = "ACME",
        city: Optional[str] = "Recife",
        finish: Optional[str] = "Chrome",
        unit_value: float = 10.0,
        line_amount: Optional[float] = None,
    ) -> TransactionRecord:
        return TransactionRecord(
            customer=customer,
            product=product,
            city=city,
            finish=finish,
            quantity=quantity,
            unit_value=unit_value,
            line_amount=quantity * unit_value if line_amount is None else line_amount,
            transaction_date=when,
            order_id=order_id,
        )

    return factory


@pytest.fixture
def make_series() -> Callable[[str, Sequence[float]], MonthlySeries]:
    """Factory for monthly series; 12 values get month-name labels"""
    def factory(sku: str, values: Sequence[float]) -> MonthlySeries:
        if len(values) == 12:
            periods = tuple(MONTH_NAMES)
        else:
            periods = tuple(f"P{i + 1}" for i in range(len(values)))
        return MonthlySeries(sku=sku, periods=periods, values=tuple(float(v) for v in values))

    return factory


@pytest.fixture
def sample_rows() -> List[Dict]:
    """Raw sales lines in the shapes the normalizer has to cope with"""
    return [
        {"customer": "ACME", "product": "Faucet", "city": "Recife", "finish": "Chrome",
         "quantity": "10", "unit_value": "12,50", "line_amount": 125.0, "date": "2024-01-15"},
        {"customer": "ACME", "product": "Sink", "city": "Recife", "finish": "Chrome",
         "quantity": 4, "unit_value": 80, "line_amount": "", "date": "15/02/2024"},
        {"customer": "Beta Ltda", "product": "Faucet", "city": "Olinda", "finish": "Brass",
         "quantity": "R$ 3", "unit_value": "12,50", "line_amount": "37.5", "date": "2024-03-02"},
        {"customer": "", "product": "Drain", "city": None, "finish": "Chrome",
         "quantity": "n/a", "unit_value": "7", "date": "not a date"},
        {"customer": "Beta Ltda", "product": "Sink", "city": "Olinda", "finish": "Brass",
         "quantity": 2, "unit_value": 80, "line_amount": 160, "date": None},
    ]


@pytest.fixture(scope="session")
def generated_sales() -> List[Dict]:
    """Seeded synthetic dataset with order ids"""
    return generate_sales(n_orders=400, year=2024, seed=7)
