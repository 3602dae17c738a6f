# -*- coding: utf-8 -*-
"""Tests for price-ordering of the recommender's three tiers."""

import copy

from carfinance.utils.tier_normalizer import (
    is_normalizable,
    iter_plans,
    normalize_tiers,
    offer_price,
    summarize_offer,
)


def _car(model, price, **extra):
    car = {"year": 2025, "make": "Toyota", "model": model, "trim": "LE", "price": price}
    car.update(extra)
    return car


def _prices(doc, keys=("Budget", "Balanced", "Premium")):
    return [offer_price(doc[k]) for k in keys]


class TestNormalizeTiers:
    def test_sorts_by_price(self):
        doc = {
            "Budget": _car("RAV4", 35000),
            "Balanced": _car("Corolla", 23000),
            "Premium": _car("Highlander", 52000),
        }
        out = normalize_tiers(doc)
        assert [out[k]["model"] for k in ("Budget", "Balanced", "Premium")] == ["Corolla", "RAV4", "Highlander"]
        assert _prices(out) == sorted(_prices(out))

    def test_already_sorted_is_unchanged(self):
        doc = {"Budget": _car("A", 1), "Balanced": _car("B", 2), "Premium": _car("C", 3)}
        assert normalize_tiers(doc) == doc

    def test_idempotent(self):
        doc = {"Budget": _car("A", 30), "Balanced": _car("B", 10), "Premium": _car("C", 20)}
        once = normalize_tiers(doc)
        assert normalize_tiers(once) == once

    def test_ties_keep_original_order(self):
        doc = {
            "Budget": _car("First", 20000),
            "Balanced": _car("Second", 20000),
            "Premium": _car("Cheap", 10000),
        }
        out = normalize_tiers(doc)
        assert [out[k]["model"] for k in ("Budget", "Balanced", "Premium")] == ["Cheap", "First", "Second"]

    def test_missing_price_counts_as_zero(self):
        doc = {
            "Budget": _car("A", 25000),
            "Balanced": {"model": "NoPrice"},
            "Premium": _car("C", "not a number"),
        }
        out = normalize_tiers(doc)
        assert out["Budget"]["model"] == "NoPrice"
        assert out["Balanced"]["model"] == "C"
        assert out["Premium"]["model"] == "A"

    def test_missing_slot_passes_through(self):
        doc = {"Budget": _car("A", 30), "Premium": _car("C", 10)}
        assert normalize_tiers(doc) is doc
        assert not is_normalizable(doc)

    def test_non_mapping_passes_through(self):
        assert normalize_tiers(None) is None
        assert normalize_tiers([1, 2, 3]) == [1, 2, 3]

    def test_input_not_mutated(self):
        doc = {"Budget": _car("A", 30), "Balanced": _car("B", 10), "Premium": _car("C", 20)}
        snapshot = copy.deepcopy(doc)
        normalize_tiers(doc)
        assert doc == snapshot

    def test_extra_keys_pass_through(self):
        doc = {
            "Budget": _car("A", 30),
            "Balanced": _car("B", 10),
            "Premium": _car("C", 20),
            "Affordability": {"monthly_cap": 600},
            "Recommendation": {"primary": "Finance"},
        }
        out = normalize_tiers(doc)
        assert out["Affordability"] == {"monthly_cap": 600}
        assert out["Recommendation"] == {"primary": "Finance"}

    def test_display_labels_accepted(self):
        doc = {"Essential": _car("A", 30), "Comfort": _car("B", 10), "Premium": _car("C", 20)}
        out = normalize_tiers(doc)
        assert _prices(out, ("Essential", "Comfort", "Premium")) == [10, 20, 30]


class TestPresentation:
    def test_iter_plans_uses_display_labels(self):
        doc = normalize_tiers({"Budget": _car("A", 3), "Balanced": _car("B", 1), "Premium": _car("C", 2)})
        plans = list(iter_plans(doc))
        assert [p[0] for p in plans] == ["Essential", "Comfort", "Premium"]
        assert [p[1] for p in plans] == ["Budget", "Balanced", "Premium"]
        assert [p[2]["model"] for p in plans] == ["B", "C", "A"]

    def test_iter_plans_on_incomplete_document(self):
        assert list(iter_plans({"Budget": _car("A", 1)})) == []

    def test_summarize_offer(self):
        assert summarize_offer(_car("Camry", 28000)) == "2025 Toyota Camry LE"
        assert summarize_offer({"make": "Toyota", "model": "Prius"}) == "Toyota Prius"
        assert summarize_offer(None) == "Unknown vehicle"

    def test_offer_price_rejects_bool(self):
        assert offer_price({"price": True}) == 0.0
        assert offer_price({"price": "31000"}) == 31000.0
