"""
Unit Tests - Kit Recommendation
"""
from dataclasses import replace

import pytest

from merch_analytics.analytics.abc import ABCClass
from merch_analytics.analytics.basket import BasketAssociationMiner
from merch_analytics.analytics.correlation import AssociationKind
from merch_analytics.analytics.kits import (
    BasketStrength,
    CorrelationStrength,
    KitRecommender,
)
from merch_analytics.analytics.metrics import SKUMetricsBuilder
from merch_analytics.analytics.stats import round_half_up
from merch_analytics.config.settings import KitSettings

PATTERN = list(range(1, 13))


@pytest.fixture
def metrics(make_series):
    """P1 and P2 move together, P3 moves the other way, P4 is flat"""
    series = {
        "P1": make_series("P1", [10 * v for v in PATTERN]),
        "P2": make_series("P2", [5 * v for v in PATTERN]),
        "P3": make_series("P3", [8 * v for v in PATTERN[::-1]]),
        "P4": make_series("P4", [5] * 12),
    }
    return SKUMetricsBuilder().build(series)


@pytest.fixture
def recommender():
    return KitRecommender(KitSettings(pool_fraction=1.0))


class TestCandidatePool:
    """Tests for pool selection"""

    def test_pool_holds_best_sellers_and_class_a(self, metrics, recommender):
        pool = recommender.candidate_pool(metrics)
        assert [m.sku for m in pool] == ["P1", "P3", "P2"]

    def test_pool_cap_from_fraction(self, metrics):
        pool = KitRecommender(KitSettings(pool_fraction=0.5)).candidate_pool(metrics)
        assert len(pool) == 2

    def test_pool_cap_absolute(self, metrics):
        pool = KitRecommender(KitSettings(pool_fraction=1.0, pool_cap=1)).candidate_pool(metrics)
        assert len(pool) == 1


class TestKitRecommender:
    """Tests for KitRecommender"""

    def test_only_positive_strong_pairs_kept(self, metrics, recommender):
        result = recommender.recommend(metrics)

        assert len(result.kits) == 1
        kit = result.kits[0]
        assert (kit.sku_a, kit.sku_b) == ("P1", "P2")
        assert kit.kind == AssociationKind.CORRELATION
        assert kit.association_strength == pytest.approx(1.0)
        assert kit.kit_id == "kit_1"

    def test_auto_minimum_for_twelve_months(self, metrics, recommender):
        result = recommender.recommend(metrics)
        assert result.min_strength == pytest.approx(0.576, abs=1e-3)

    def test_kit_metrics(self, metrics, recommender):
        kit = recommender.recommend(metrics).kits[0]

        assert kit.sales_a == 780
        assert kit.sales_b == 390
        assert kit.combined_sales == 1170
        assert kit.combined_average_monthly == pytest.approx(48.75)
        assert kit.recommended_stock == round_half_up(65 * 2.5 * 1.3)
        assert kit.sales_potential == round_half_up(48.75 * kit.association_strength * 12 * 1.5)

    def test_fixed_minimum_strength(self, metrics):
        recommender = KitRecommender(KitSettings(pool_fraction=1.0, min_strength=1.01))
        assert recommender.recommend(metrics).kits == []

    def test_pair_evaluation_budget(self, metrics):
        recommender = KitRecommender(KitSettings(pool_fraction=1.0, max_pair_evaluations=1))
        result = recommender.recommend(metrics)

        assert result.pairs_evaluated == 1

    def test_empty_pool(self, recommender):
        result = recommender.recommend([])

        assert result.kits == []
        assert result.versatile_products == []

    def test_canonical_member_order(self, make_series, recommender):
        series = {
            "zeta": make_series("zeta", [10 * v for v in PATTERN]),
            "alpha": make_series("alpha", [9 * v for v in PATTERN]),
        }
        metrics = [replace(m, is_best_seller=True) for m in SKUMetricsBuilder().build(series)]
        kit = recommender.recommend(metrics).kits[0]

        assert (kit.sku_a, kit.sku_b) == ("alpha", "zeta")

    def test_flat_fractional_series_make_no_kit(self, make_series, recommender):
        series = {
            "WIRE": make_series("WIRE", [0.1] * 12),
            "TAPE": make_series("TAPE", [0.2] * 12),
        }
        metrics = [replace(m, is_best_seller=True) for m in SKUMetricsBuilder().build(series)]
        result = recommender.recommend(metrics)

        assert result.pairs_evaluated == 1
        assert result.kits == []

    def test_versatile_products(self, make_series, recommender):
        series = {
            "A": make_series("A", [10 * v for v in PATTERN]),
            "B": make_series("B", [6 * v for v in PATTERN]),
            "C": make_series("C", [3 * v for v in PATTERN]),
        }
        metrics = [replace(m, is_best_seller=True) for m in SKUMetricsBuilder().build(series)]
        result = recommender.recommend(metrics)

        assert len(result.kits) == 3
        assert {v.sku for v in result.versatile_products} == {"A", "B", "C"}
        assert all(v.kit_count == 2 for v in result.versatile_products)

    def test_kits_sorted_by_potential(self, make_series, recommender):
        series = {
            "A": make_series("A", [10 * v for v in PATTERN]),
            "B": make_series("B", [6 * v for v in PATTERN]),
            "C": make_series("C", [3 * v for v in PATTERN]),
        }
        metrics = [replace(m, is_best_seller=True) for m in SKUMetricsBuilder().build(series)]
        kits = recommender.recommend(metrics).kits

        potentials = [k.sales_potential for k in kits]
        assert potentials == sorted(potentials, reverse=True)
        assert len({(k.sku_a, k.sku_b) for k in kits}) == len(kits)

    def test_basket_strength(self, make_record, metrics, recommender):
        records = [
            make_record("P1", order_id="O1"),
            make_record("P2", order_id="O1"),
            make_record("P1", order_id="O2"),
            make_record("P3", order_id="O3"),
        ]
        source = BasketStrength(BasketAssociationMiner().statistics(records))
        by_sku = {m.sku: m for m in metrics}

        assert source.strength(by_sku["P1"], by_sku["P2"]) == pytest.approx(1.0)
        assert source.strength(by_sku["P1"], by_sku["P3"]) == 0.0

        result = recommender.recommend(metrics, source, min_confidence=0.25)
        assert result.min_strength == 0.25
        assert [(k.sku_a, k.sku_b) for k in result.kits] == [("P1", "P2")]
        assert result.kits[0].kind == AssociationKind.BASKET

    def test_to_frame(self, metrics, recommender):
        frame = recommender.recommend(metrics).to_frame()
        assert frame["kit_id"].to_list() == ["kit_1"]

    def test_tiers(self):
        settings = KitSettings()
        assert settings.tier_for(0.85).stock_bonus == 1.3
        assert settings.tier_for(0.75).impact_multiplier == 1.3
        assert settings.tier_for(0.6).stock_bonus == 1.1


class TestCorrelationStrength:
    def test_signed(self, metrics):
        by_sku = {m.sku: m for m in metrics}
        assert CorrelationStrength().strength(by_sku["P1"], by_sku["P3"]) == pytest.approx(-1.0)

    def test_class_labels_carried(self, metrics, recommender):
        kit = recommender.recommend(metrics).kits[0]
        assert kit.class_a_label == ABCClass.A
