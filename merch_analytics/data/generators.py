"""
Synthetic Sales Generator

Generates realistic sales lines for testing and development.
Includes:
- A product catalog grouped into families that share a seasonal curve
- Skewed (Pareto-like) product popularity
- Orders mixing products from the same family, so basket and correlation
  associations both have something to find
- Optional locale-formatted numbers and dirty rows for normalizer testing
"""

import math
import random
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import numpy as np
import polars as pl
from faker import Faker


# =============================================================================
# CONFIGURATION
# =============================================================================

FAMILIES = [
    ("kitchen", ["Faucet", "Sink", "Soap Dispenser", "Drain", "Sprayer"]),
    ("bath", ["Shower Head", "Towel Bar", "Mixer", "Robe Hook", "Shelf"]),
    ("lighting", ["Pendant", "Sconce", "Dimmer", "Bulb Pack", "Track"]),
    ("hardware", ["Handle", "Hinge", "Knob", "Latch", "Lock"]),
]

FINISHES = ["Chrome", "Brushed Nickel", "Matte Black", "Brass", "White"]


# =============================================================================
# GENERATORS
# =============================================================================

class CatalogGenerator:
    """Generate a product catalog with family membership and popularity"""

    def __init__(self, seed: int = 42):
        self.rng = np.random.default_rng(seed)

    def generate(self, n: int = 40) -> pl.DataFrame:
        """Generate n products; popularity follows a Zipf-like curve"""
        products = []
        weights = 1.0 / np.arange(1, n + 1) ** 1.1
        weights = weights / weights.sum()

        for index in range(n):
            family, items = FAMILIES[index % len(FAMILIES)]
            item = items[(index // len(FAMILIES)) % len(items)]
            products.append({
                "product": f"SKU-{index + 1:04d} {item}",
                "family": family,
                "finish": FINISHES[int(self.rng.integers(len(FINISHES)))],
                "unit_value": round(float(self.rng.uniform(15, 600)), 2),
                "popularity": float(weights[index]),
            })

        return pl.DataFrame(products)


class SalesGenerator:
    """
    Generate order lines over a range of months.

    Example:
        rows = SalesGenerator(seed=7).generate(n_orders=2000, year=2024)
        result = MerchandisingEngine().recompute(rows)
    """

    def __init__(
        self,
        catalog: Optional[pl.DataFrame] = None,
        seed: int = 42,
        locale: str = "pt_BR",
    ):
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.random = random.Random(seed)
        self.fake = Faker(locale)
        self.fake.seed_instance(seed)
        self.catalog = catalog if catalog is not None else CatalogGenerator(seed).generate()

        self.customers = [self.fake.company() for _ in range(60)]
        self.cities = [self.fake.city() for _ in range(12)]
        self.customer_city = {c: self.random.choice(self.cities) for c in self.customers}

        families = sorted(set(self.catalog["family"].to_list()))
        # One seasonal curve per family: products in a family move together
        self.seasonality = {
            family: 1 + 0.8 * np.sin(np.arange(12) * 2 * math.pi / 12 + phase)
            for family, phase in zip(families, self.rng.uniform(0, 2 * math.pi, len(families)))
        }

    def _order_date(self, year: int) -> date:
        month_weights = np.mean(list(self.seasonality.values()), axis=0)
        month = int(self.rng.choice(12, p=month_weights / month_weights.sum())) + 1
        start = date(year, month, 1)
        days = (date(year + month // 12, month % 12 + 1, 1) - start).days
        return start + timedelta(days=int(self.rng.integers(days)))

    def _pick_products(self, month: int) -> List[Dict[str, Any]]:
        products = self.catalog.to_dicts()
        weights = np.array([
            p["popularity"] * self.seasonality[p["family"]][month - 1] for p in products
        ])
        first = products[int(self.rng.choice(len(products), p=weights / weights.sum()))]
        picked = [first]

        companions = [p for p in products if p["family"] == first["family"] and p is not first]
        for companion in companions:
            if self.rng.random() < 0.35:
                picked.append(companion)
        return picked[:4]

    def generate(
        self,
        n_orders: int = 1500,
        year: int = 2024,
        with_order_ids: bool = True,
        locale_strings: bool = False,
        dirty_fraction: float = 0.0,
    ) -> List[Dict[str, Any]]:
        """
        Generate raw sales lines.

        Args:
            n_orders: Number of orders
            year: Calendar year of the orders
            with_order_ids: Emit an ``order_id`` per line (enables basket mining)
            locale_strings: Format numbers as "1234,50" strings
            dirty_fraction: Share of lines with a broken date or quantity

        Returns:
            List of row mappings with the default field names
        """
        rows = []
        for order_number in range(1, n_orders + 1):
            order_date = self._order_date(year)
            customer = self.random.choice(self.customers)

            for product in self._pick_products(order_date.month):
                quantity = int(self.rng.poisson(3)) + 1
                unit_value = product["unit_value"]
                line_amount = round(quantity * unit_value, 2)

                row = {
                    "customer": customer,
                    "product": product["product"],
                    "city": self.customer_city[customer],
                    "finish": product["finish"],
                    "quantity": quantity,
                    "unit_value": unit_value,
                    "line_amount": line_amount,
                    "date": order_date.isoformat(),
                }
                if with_order_ids:
                    row["order_id"] = f"PED-{order_number:06d}"
                if locale_strings:
                    row["unit_value"] = f"{unit_value:.2f}".replace(".", ",")
                    row["line_amount"] = f"{line_amount:.2f}".replace(".", ",")
                    row["date"] = order_date.strftime("%d/%m/%Y")
                if dirty_fraction and self.rng.random() < dirty_fraction:
                    if self.rng.random() < 0.5:
                        row["date"] = "not a date"
                    else:
                        row["quantity"] = "n/a"
                rows.append(row)

        return rows


def generate_sales(
    n_orders: int = 1500,
    year: int = 2024,
    seed: int = 42,
    **kwargs,
) -> List[Dict[str, Any]]:
    """Convenience function: seeded sales lines"""
    return SalesGenerator(seed=seed).generate(n_orders=n_orders, year=year, **kwargs)
