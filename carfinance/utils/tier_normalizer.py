# -*- coding: utf-8 -*-
"""Re-sort the recommender's three tiers by price.

The LLM is asked for Budget/Balanced/Premium but does not reliably keep the
cheapest car in the Budget slot, so the slots are reassigned by price:
cheapest -> Budget (shown as "Essential"), middle -> Balanced ("Comfort"),
most expensive -> Premium.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

# LLM slot keys in canonical order, with their display labels.
TIER_SLOTS: Tuple[str, ...] = ("Budget", "Balanced", "Premium")
DISPLAY_SLOTS: Tuple[str, ...] = ("Essential", "Comfort", "Premium")
TIER_LABELS: Dict[str, str] = dict(zip(TIER_SLOTS, DISPLAY_SLOTS))


def offer_price(offer: Any) -> float:
    """Price of a tier entry; absent or non-numeric prices count as 0."""
    if not isinstance(offer, Mapping):
        return 0.0
    value = offer.get("price")
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def _slot_keys(document: Any) -> Optional[Tuple[str, ...]]:
    if not isinstance(document, Mapping):
        return None
    for keys in (TIER_SLOTS, DISPLAY_SLOTS):
        if all(document.get(k) is not None for k in keys):
            return keys
    return None


def is_normalizable(document: Any) -> bool:
    return _slot_keys(document) is not None


def normalize_tiers(document: Any) -> Any:
    """
    Return a copy of ``document`` with its three tier slots ordered by price.

    Equal prices keep their original relative order. Documents missing any of
    the three slots are returned unchanged.
    """
    keys = _slot_keys(document)
    if keys is None:
        return document

    entries = [(key, document[key], offer_price(document[key])) for key in keys]
    # sorted() is stable, which gives the tie-break.
    ordered = sorted(entries, key=lambda entry: entry[2])

    normalized = dict(document)
    for slot, (_label, offer, _price) in zip(keys, ordered):
        normalized[slot] = offer
    return normalized


def iter_plans(document: Any) -> Iterator[Tuple[str, str, Mapping[str, Any]]]:
    """Yield ``(display_label, slot_key, offer)`` in tier order."""
    keys = _slot_keys(document)
    if keys is None:
        return
    for display, key in zip(DISPLAY_SLOTS, keys):
        yield display, key, document[key]


def summarize_offer(offer: Any) -> str:
    """Short "2025 Toyota Camry LE" string used for list columns."""
    if not isinstance(offer, Mapping):
        return "Unknown vehicle"
    parts = [offer.get("year"), offer.get("make"), offer.get("model"), offer.get("trim")]
    text = " ".join(str(p).strip() for p in parts if p not in (None, "") and str(p).strip())
    return text or "Unknown vehicle"
