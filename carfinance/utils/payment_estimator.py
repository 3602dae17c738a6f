# -*- coding: utf-8 -*-
"""Monthly payment estimates for the finance and lease views.

Recomputed on every slider change (down payment, term, mileage), so
everything here is pure and cheap.
"""

from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from carfinance.domain import VehicleOffer
from carfinance.exceptions import InvalidInputError

# ── Lease reference values ────────────────────────────────────────────
LEASE_REFERENCE_MILEAGE = 12000
LEASE_REFERENCE_TERM_MONTHS = 36
LEASE_MILEAGE_STEP = 2500
LEASE_MILEAGE_STEP_RATE = 0.03
LEASE_TERM_STEP_MONTHS = 6
LEASE_SHORT_TERM_STEP_RATE = 0.015
LEASE_LONG_TERM_STEP_RATE = 0.01

DEFAULT_FINANCE_TERM_MONTHS = 60

# ── Input limits (shared with LLM output sanitizing) ─────────────────
MAX_VEHICLE_PRICE = 1_000_000
MAX_APR_PERCENT = 40
MAX_TERM_MONTHS = 120
MAX_MONTHLY_PAYMENT = 50_000
MAX_ANNUAL_MILEAGE = 100_000


def _require_number(field: str, value: Any, *, allow_zero: bool = True, max_value: Optional[float] = None) -> float:
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field} must be a number", field=field)
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must be a number", field=field)
    if not math.isfinite(n):
        raise InvalidInputError(f"{field} must be a finite number", field=field)
    if n < 0 or (n == 0 and not allow_zero):
        raise InvalidInputError(f"{field} must be {'non-negative' if allow_zero else 'positive'}", field=field)
    if max_value is not None and n > max_value:
        raise InvalidInputError(f"{field} must be at most {max_value:,.0f}", field=field)
    return n


def _require_term(field: str, value: Any) -> int:
    n = _require_number(field, value, allow_zero=False, max_value=MAX_TERM_MONTHS)
    if n != int(n):
        raise InvalidInputError(f"{field} must be a whole number of months", field=field)
    return int(n)


def round_currency(value: float) -> int:
    """Round to the nearest whole currency unit, halves going up."""
    if isinstance(value, bool) or not math.isfinite(value):
        raise InvalidInputError("amount must be a finite number", field="amount")
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_currency(amount: Optional[float]) -> str:
    if amount is None:
        return "Price TBD"
    return f"${round_currency(amount):,}"


# ── Finance ───────────────────────────────────────────────────────────

def finance_payment(price: Any, apr_percent: Any, term_months: Any, down_payment: Any = 0) -> int:
    """
    Fixed-rate amortized monthly payment on ``price - down_payment``.
    A zero rate falls back to straight-line repayment.
    """
    price = _require_number("price", price, max_value=MAX_VEHICLE_PRICE)
    apr = _require_number("apr_percent", apr_percent, max_value=MAX_APR_PERCENT)
    term = _require_term("term_months", term_months)
    down = _require_number("down_payment", down_payment, max_value=MAX_VEHICLE_PRICE)

    loan_amount = max(price - down, 0)
    if loan_amount == 0:
        return 0

    monthly_rate = apr / 100 / 12
    if monthly_rate == 0:
        return round_currency(loan_amount / term)

    growth = (1 + monthly_rate) ** term
    payment = loan_amount * monthly_rate * growth / (growth - 1)
    return round_currency(payment)


# ── Lease ─────────────────────────────────────────────────────────────

def lease_mileage_multiplier(annual_mileage: float) -> float:
    excess = max(0, annual_mileage - LEASE_REFERENCE_MILEAGE)
    return 1 + (excess / LEASE_MILEAGE_STEP) * LEASE_MILEAGE_STEP_RATE


def lease_term_multiplier(term_months: int) -> float:
    # Signed: terms under the reference come out below 1.
    rate = LEASE_SHORT_TERM_STEP_RATE if term_months < LEASE_REFERENCE_TERM_MONTHS else LEASE_LONG_TERM_STEP_RATE
    return 1 + (term_months - LEASE_REFERENCE_TERM_MONTHS) / LEASE_TERM_STEP_MONTHS * rate


def lease_payment(base_payment: Any, annual_mileage: Any, term_months: Any) -> int:
    """
    Adjust the upstream base lease payment for the selected mileage allowance
    and term. A missing or zero base payment yields 0.
    """
    if base_payment is None:
        return 0
    base = _require_number("base_payment", base_payment, max_value=MAX_MONTHLY_PAYMENT)
    miles = _require_number("annual_mileage", annual_mileage, max_value=MAX_ANNUAL_MILEAGE)
    term = _require_term("lease_term_months", term_months)
    if base == 0:
        return 0
    return round_currency(base * lease_mileage_multiplier(miles) * lease_term_multiplier(term))


# ── Offer quotes ──────────────────────────────────────────────────────

def quote_offer(
    offer: VehicleOffer,
    down_payment: Any = None,
    term_months: Any = None,
    annual_mileage: Any = None,
    lease_term_months: Any = None,
) -> Dict[str, Any]:
    """
    Recompute finance and lease payments for one offer from slider values.
    Unset sliders fall back to the offer's own terms (or the lease
    reference values).
    """
    down = _require_number("down_payment", 0 if down_payment is None else down_payment, max_value=MAX_VEHICLE_PRICE)
    term = _require_term(
        "term_months",
        term_months if term_months is not None else (offer.finance.term_months or DEFAULT_FINANCE_TERM_MONTHS),
    )
    miles = _require_number(
        "annual_mileage",
        annual_mileage if annual_mileage is not None else (offer.lease.annual_mileage_limit or LEASE_REFERENCE_MILEAGE),
        max_value=MAX_ANNUAL_MILEAGE,
    )
    lease_term = _require_term(
        "lease_term_months",
        lease_term_months if lease_term_months is not None else (offer.lease.term_months or LEASE_REFERENCE_TERM_MONTHS),
    )

    finance_monthly = None
    if offer.price is not None:
        finance_monthly = finance_payment(offer.price, offer.finance.apr_percent or 0, term, down)

    lease_monthly = lease_payment(offer.lease.estimated_monthly_payment, miles, lease_term)

    return {
        "vehicle": offer.title,
        "price": offer.price,
        "price_display": format_currency(offer.price),
        "finance": {
            "apr_percent": offer.finance.apr_percent,
            "term_months": term,
            "down_payment": down,
            "monthly_payment": finance_monthly,
            "monthly_payment_display": format_currency(finance_monthly),
        },
        "lease": {
            "term_months": lease_term,
            "annual_mileage": miles,
            "lease_score": offer.lease.lease_score,
            "monthly_payment": lease_monthly,
            "monthly_payment_display": format_currency(lease_monthly),
        },
    }
