"""
Unit Tests - Engine, Cache, Settings and Synthetic Data
"""
from datetime import date

import polars as pl
import pytest
from pydantic import ValidationError

from merch_analytics import MerchandisingEngine
from merch_analytics.analytics.abc import ABCClass
from merch_analytics.analytics.correlation import AssociationKind
from merch_analytics.analytics.safety import MarginType
from merch_analytics.cache import CacheManager, dataset_fingerprint
from merch_analytics.config import ABC_PROFILES, ABCThresholds, Settings
from merch_analytics.config.settings import (
    KitSettings,
    SafetyMarginSettings,
    WindowSettings,
)
from merch_analytics.data import SalesGenerator, generate_sales
from merch_analytics.quality.validators import ValidationStatus


@pytest.fixture
def steady_rows():
    """Three SKUs selling a constant amount every month of 2024"""
    rows = []
    for month in range(1, 13):
        for product, quantity in (("A", 100), ("B", 50), ("C", 10)):
            rows.append({
                "customer": "ACME" if product != "C" else "Beta",
                "product": product,
                "city": "Recife",
                "finish": "Chrome",
                "quantity": quantity,
                "unit_value": 10,
                "date": date(2024, month, 10).isoformat(),
            })
    return rows


class TestMerchandisingEngine:
    """Tests for MerchandisingEngine"""

    def test_steady_dataset(self, steady_rows, test_settings):
        result = MerchandisingEngine(test_settings).recompute(steady_rows)

        assert [m.sku for m in result.sku_metrics] == ["A", "B", "C"]
        assert [m.class_label for m in result.sku_metrics] == [ABCClass.A, ABCClass.B, ABCClass.C]
        assert result.association_mode == AssociationKind.CORRELATION
        assert result.summary["class_counts"] == {"A": 1, "B": 1, "C": 1}
        assert result.summary["total_skus"] == 3
        assert result.summary["total_sales"] == 1920

    def test_sku_metrics_frame_is_validated(self, steady_rows, test_settings):
        result = MerchandisingEngine(test_settings).recompute(steady_rows)

        assert result.sku_validation.status == ValidationStatus.PASSED
        assert result.sku_validation.total_checks == 6

    def test_empty_input_skips_sku_validation(self, test_settings):
        assert MerchandisingEngine(test_settings).recompute([]).sku_validation is None

    def test_safety_margins_and_forecasts_attached(self, steady_rows, test_settings):
        result = MerchandisingEngine(test_settings).recompute(steady_rows)
        top = result.get("A")

        assert top.safety_margin.margin_type == MarginType.SAFE
        assert top.safety_margin.recommended_safety_stock == 200
        assert result.get("C").safety_margin.margin_type == MarginType.CONSERVATIVE
        assert top.forecast.adjusted_forecast == top.recommended_stock
        assert result.summary["safety_threshold"] == 100

    def test_small_catalog_has_no_kits(self, steady_rows, test_settings):
        result = MerchandisingEngine(test_settings).recompute(steady_rows)

        assert result.kits == []
        assert result.kit_frame().height == 0

    def test_sku_frame(self, steady_rows, test_settings):
        frame = MerchandisingEngine(test_settings).recompute(steady_rows).sku_frame()

        assert frame.height == 3
        assert frame["sku"].to_list() == ["A", "B", "C"]
        assert "January" in frame.columns
        assert frame["margin_type"].to_list() == ["safe", "conservative", "conservative"]

    def test_basket_mode_with_order_ids(self, generated_sales, test_settings):
        result = MerchandisingEngine(test_settings).recompute(generated_sales)

        assert result.association_mode == AssociationKind.BASKET
        assert result.summary["association_mode"] == "basket"
        assert all(
            a.kind == AssociationKind.BASKET
            for rules in result.associations.values()
            for a in rules
        )

    def test_correlation_mode_without_order_ids(self, test_settings):
        rows = generate_sales(n_orders=300, seed=3, with_order_ids=False)
        result = MerchandisingEngine(test_settings).recompute(rows)

        assert result.association_mode == AssociationKind.CORRELATION

    def test_generated_dataset_invariants(self, generated_sales, test_settings):
        result = MerchandisingEngine(test_settings).recompute(generated_sales)

        ranks = [m.rank for m in result.sku_metrics]
        assert ranks == list(range(1, len(ranks) + 1))
        assert all(m.recommended_stock >= 0 for m in result.sku_metrics)
        assert all(m.forecast.adjusted_forecast >= 0 for m in result.sku_metrics)
        assert len(result.kits) <= test_settings.kits.top_k
        assert all(k.sku_a < k.sku_b for k in result.kits)

    def test_dirty_rows_are_counted(self, test_settings):
        rows = generate_sales(n_orders=200, seed=5, dirty_fraction=0.2)
        result = MerchandisingEngine(test_settings).recompute(rows)

        assert result.quality.dates_invalid > 0
        assert result.quality.skipped_from_aggregation == result.quality.dates_invalid
        assert result.summary["skipped_records"] == result.quality.dates_invalid

    def test_empty_input(self, test_settings):
        result = MerchandisingEngine(test_settings).recompute([])

        assert result.sku_metrics == []
        assert result.kits == []
        assert result.summary["total_skus"] == 0

    def test_analyze_memoises(self, steady_rows, test_settings):
        engine = MerchandisingEngine(test_settings)

        first = engine.analyze(steady_rows)
        second = engine.analyze(steady_rows)

        assert first is second
        assert engine.cache.hits == 1

    def test_settings_change_replaces_result(self, steady_rows, test_settings):
        engine = MerchandisingEngine(test_settings)
        first = engine.analyze(steady_rows)

        engine.update_settings(Settings(app_env="testing", safety=SafetyMarginSettings(threshold=1000)))
        second = engine.analyze(steady_rows)

        assert second is not first
        assert second.get("A").safety_margin.margin_type == MarginType.CONSERVATIVE
        assert len(engine.cache) == 1

    def test_data_change_replaces_result(self, steady_rows, test_settings):
        engine = MerchandisingEngine(test_settings)
        first = engine.analyze(steady_rows)
        second = engine.analyze(steady_rows[:-1])

        assert second is not first
        assert len(engine.cache) == 1

    def test_classify_entities(self, steady_rows, test_settings):
        result = MerchandisingEngine(test_settings).classify_entities(steady_rows, "customer")

        assert [e.key for e in result.entities] == ["ACME", "Beta"]
        assert result.entities[0].total_value == 18000

    def test_trailing_window(self, steady_rows):
        settings = Settings(app_env="testing", window=WindowSettings(anchor="trailing", months=6))
        result = MerchandisingEngine(settings).recompute(steady_rows)

        assert result.periods[0] == "2024-07"
        assert result.get("A").total_geral == 600


class TestSettings:
    """Tests for configuration validation"""

    def test_thresholds_must_partition(self):
        with pytest.raises(ValidationError):
            ABCThresholds(class_a_boundary=90, class_b_boundary=80)

    def test_shares_must_sum_to_hundred(self):
        with pytest.raises(ValueError):
            ABCThresholds.from_shares(20, 30, 40)

    def test_spreadsheet_profile_boundaries(self):
        profile = ABC_PROFILES["spreadsheet"]
        assert (profile.class_a_boundary, profile.class_b_boundary) == (20, 50)

    def test_unknown_profile_rejected(self):
        with pytest.raises(ValidationError):
            Settings(abc={"entity_profile": "nonsense"})

    def test_window_must_span_a_month(self):
        with pytest.raises(ValidationError):
            WindowSettings(months=0)

    def test_safety_window_must_fit_analysis_window(self):
        with pytest.raises(ValidationError):
            Settings(window=WindowSettings(anchor="trailing", months=3))

    def test_auto_kit_strength_needs_three_months(self):
        with pytest.raises(ValidationError):
            Settings(
                window=WindowSettings(anchor="trailing", months=2),
                safety=SafetyMarginSettings(trailing_months=1),
            )

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(app_env="moon")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("MERCH_WINDOW_MONTHS", "6")
        monkeypatch.setenv("MERCH_KIT_MIN_STRENGTH", "0.7")

        assert WindowSettings().months == 6
        assert KitSettings().min_strength == 0.7

    def test_fingerprint_tracks_analytic_settings(self):
        base = Settings(app_env="testing")
        changed = Settings(app_env="testing", kits=KitSettings(top_k=5))

        assert base.fingerprint() == Settings(app_env="testing").fingerprint()
        assert base.fingerprint() != changed.fingerprint()


class TestCacheManager:
    """Tests for CacheManager"""

    def test_get_or_set_computes_once(self):
        cache = CacheManager("test")
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert cache.get_or_set("k", factory) == "value"
        assert cache.get_or_set("k", factory) == "value"
        assert len(calls) == 1

    def test_eviction(self):
        cache = CacheManager("test", max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("c") == 3

    def test_invalidate_all(self):
        cache = CacheManager("test")
        cache.set("a", 1)

        assert cache.invalidate_all() == 1
        assert len(cache) == 0

    def test_dataset_fingerprint(self, steady_rows):
        assert dataset_fingerprint(steady_rows) == dataset_fingerprint(list(steady_rows))
        assert dataset_fingerprint(steady_rows) != dataset_fingerprint(steady_rows[1:])
        assert dataset_fingerprint(pl.DataFrame(steady_rows)) == dataset_fingerprint(steady_rows)


class TestSalesGenerator:
    """Tests for synthetic data"""

    def test_seeded_output_is_reproducible(self):
        assert generate_sales(n_orders=20, seed=11) == generate_sales(n_orders=20, seed=11)

    def test_rows_have_default_fields(self):
        row = generate_sales(n_orders=1)[0]
        assert {"customer", "product", "city", "finish", "quantity", "unit_value",
                "line_amount", "date", "order_id"} <= set(row)

    def test_locale_strings(self):
        rows = SalesGenerator(seed=2).generate(n_orders=5, locale_strings=True)
        assert all("," in row["unit_value"] for row in rows)
        assert all("/" in row["date"] for row in rows)
