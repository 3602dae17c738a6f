"""Sanitization utilities.

This module is used to harden model/LLM output before it is stored and
returned to the front-end. It enforces *strict allowlisting* and *deep
sanitization* to reduce XSS/injection risk and to keep payload sizes bounded.

Notes:
- We escape HTML in all strings.
- We clamp numeric ranges.
- We bound string lengths.
- Unknown keys are dropped.
- A missing or unusable price stays ``None`` (shown as "Price TBD").
"""

from __future__ import annotations

import math
from html import escape
from typing import Any, Dict, Mapping, Optional

from carfinance.utils.payment_estimator import (
    MAX_ANNUAL_MILEAGE,
    MAX_APR_PERCENT,
    MAX_MONTHLY_PAYMENT,
    MAX_TERM_MONTHS,
    MAX_VEHICLE_PRICE,
)
from carfinance.utils.tier_normalizer import DISPLAY_SLOTS, TIER_SLOTS


# -------------------------
# Generic sanitizers
# -------------------------

DEFAULT_MAX_STR_LEN = 1200



def _to_str(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v
    return str(v)


def sanitize_string(
    v: Any,
    *,
    max_len: int = DEFAULT_MAX_STR_LEN,
    allow_newlines: bool = True,
) -> str:
    """Escape and bound a string."""
    s = _to_str(v)
    if not allow_newlines:
        s = s.replace("\r", " ").replace("\n", " ")
    # Escape HTML special chars to prevent XSS.
    s = escape(s, quote=True)
    s = s.strip()
    if len(s) > max_len:
        s = s[:max_len]
    return s


def clamp_number(
    v: Any,
    *,
    min_value: float,
    max_value: float,
    as_int: bool = False,
    default: Optional[float] = 0.0,
) -> Optional[float | int]:
    """Clamp ``v`` into range; unusable values become ``default``."""
    if isinstance(v, bool):
        n = None
    else:
        try:
            n = float(v)
        except (TypeError, ValueError):
            n = None
    if n is None or not math.isfinite(n):
        if default is None:
            return None
        n = float(default)
    if n < min_value:
        n = min_value
    if n > max_value:
        n = max_value
    if as_int:
        return int(round(n))
    return n


# -------------------------
# Deep sanitizers for known payloads
# -------------------------


def sanitize_finance_terms(v: Any) -> Dict[str, Any]:
    if not isinstance(v, Mapping):
        return {}
    return {
        "apr_percent": clamp_number(v.get("apr_percent"), min_value=0, max_value=MAX_APR_PERCENT, default=None),
        "term_months": clamp_number(v.get("term_months"), min_value=1, max_value=MAX_TERM_MONTHS, as_int=True, default=None),
        "estimated_monthly_payment": clamp_number(
            v.get("estimated_monthly_payment"), min_value=0, max_value=MAX_MONTHLY_PAYMENT, default=None
        ),
    }


def sanitize_lease_terms(v: Any) -> Dict[str, Any]:
    if not isinstance(v, Mapping):
        return {}
    out = {
        "term_months": clamp_number(v.get("term_months"), min_value=1, max_value=MAX_TERM_MONTHS, as_int=True, default=None),
        "estimated_monthly_payment": clamp_number(
            v.get("estimated_monthly_payment"), min_value=0, max_value=MAX_MONTHLY_PAYMENT, default=None
        ),
        "annual_mileage_limit": clamp_number(
            v.get("annual_mileage_limit"), min_value=0, max_value=MAX_ANNUAL_MILEAGE, as_int=True, default=None
        ),
    }
    # lease_score is an opaque upstream indicator; keep it if numeric.
    score = clamp_number(v.get("lease_score"), min_value=-1e6, max_value=1e6, default=None)
    out["lease_score"] = score
    return out


def sanitize_vehicle_offer(v: Any) -> Dict[str, Any]:
    """Sanitize a single tier entry.

    Expected shape:
    {
      year, make, model, trim, price, mileage, seats, headline_feature,
      finance: {apr_percent, term_months, estimated_monthly_payment},
      lease: {term_months, estimated_monthly_payment, annual_mileage_limit, lease_score}
    }
    """
    if not isinstance(v, Mapping):
        return {}

    out: Dict[str, Any] = {
        "year": clamp_number(v.get("year"), min_value=1950, max_value=2100, as_int=True, default=None),
        "make": sanitize_string(v.get("make", ""), max_len=60, allow_newlines=False),
        "model": sanitize_string(v.get("model", ""), max_len=80, allow_newlines=False),
        "trim": sanitize_string(v.get("trim", ""), max_len=80, allow_newlines=False),
        "price": None,
        "mileage": sanitize_string(v.get("mileage", ""), max_len=60, allow_newlines=False),
        "seats": clamp_number(v.get("seats"), min_value=1, max_value=15, as_int=True, default=None),
        "headline_feature": sanitize_string(v.get("headline_feature", ""), max_len=60, allow_newlines=False),
        "finance": sanitize_finance_terms(v.get("finance")),
        "lease": sanitize_lease_terms(v.get("lease")),
    }
    # Negative prices are unusable rather than free.
    price = clamp_number(v.get("price"), min_value=-1, max_value=MAX_VEHICLE_PRICE, default=None)
    if price is not None and price >= 0:
        out["price"] = price
    return out


def sanitize_affordability(v: Any) -> Dict[str, Any]:
    if not isinstance(v, Mapping):
        return {}
    out: Dict[str, Any] = {
        "monthly_cap": clamp_number(v.get("monthly_cap"), min_value=0, max_value=MAX_MONTHLY_PAYMENT, default=None),
        "price_max": clamp_number(v.get("price_max"), min_value=0, max_value=MAX_VEHICLE_PRICE, default=None),
        "financing_term_months": clamp_number(
            v.get("financing_term_months"), min_value=1, max_value=MAX_TERM_MONTHS, as_int=True, default=None
        ),
        "apr_percent": clamp_number(v.get("apr_percent"), min_value=0, max_value=MAX_APR_PERCENT, default=None),
    }
    bands = v.get("price_bands")
    if isinstance(bands, Mapping):
        out["price_bands"] = {
            k: clamp_number(bands.get(k), min_value=0, max_value=MAX_VEHICLE_PRICE, default=None)
            for k in TIER_SLOTS
            if k in bands
        }
    return out


def sanitize_advice(v: Any) -> Dict[str, Any]:
    if not isinstance(v, Mapping):
        return {}
    primary = sanitize_string(v.get("primary", ""), max_len=20, allow_newlines=False)
    out: Dict[str, Any] = {
        "primary": primary if primary.lower() in ("finance", "lease") else "",
        "lease_score": clamp_number(v.get("lease_score"), min_value=-1e6, max_value=1e6, default=None),
        "reason": sanitize_string(v.get("reason", ""), max_len=400),
    }
    return out


def sanitize_recommendation_response(payload: Any) -> Dict[str, Any]:
    """Strictly allowlist and deeply sanitize a recommender document.

    Tier slots are kept under whichever key set the document uses
    (``Budget``/``Balanced``/``Premium`` or the display labels).
    """
    if not isinstance(payload, Mapping):
        return {}

    out: Dict[str, Any] = {}
    for key in TIER_SLOTS + DISPLAY_SLOTS:
        if key in payload and payload.get(key) is not None:
            out[key] = sanitize_vehicle_offer(payload.get(key))

    if "Affordability" in payload:
        out["Affordability"] = sanitize_affordability(payload.get("Affordability"))
    if "Recommendation" in payload:
        out["Recommendation"] = sanitize_advice(payload.get("Recommendation"))
    return out
