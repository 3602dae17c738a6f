# -*- coding: utf-8 -*-
"""Value types for vehicle offers returned by the recommender."""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional


def _num(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _int(value: Any) -> Optional[int]:
    n = _num(value)
    return int(n) if n is not None else None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


@dataclass(frozen=True)
class FinanceTerms:
    apr_percent: Optional[float] = None
    term_months: Optional[int] = None
    estimated_monthly_payment: Optional[float] = None

    @classmethod
    def from_llm(cls, raw: Any) -> "FinanceTerms":
        raw = raw if isinstance(raw, Mapping) else {}
        return cls(
            apr_percent=_num(raw.get("apr_percent")),
            term_months=_int(raw.get("term_months")),
            estimated_monthly_payment=_num(raw.get("estimated_monthly_payment")),
        )


@dataclass(frozen=True)
class LeaseTerms:
    term_months: Optional[int] = None
    estimated_monthly_payment: Optional[float] = None
    annual_mileage_limit: Optional[int] = None
    # Opaque upstream indicator, passed through untouched.
    lease_score: Optional[float] = None

    @classmethod
    def from_llm(cls, raw: Any) -> "LeaseTerms":
        raw = raw if isinstance(raw, Mapping) else {}
        return cls(
            term_months=_int(raw.get("term_months")),
            estimated_monthly_payment=_num(raw.get("estimated_monthly_payment")),
            annual_mileage_limit=_int(raw.get("annual_mileage_limit")),
            lease_score=_num(raw.get("lease_score")),
        )


@dataclass(frozen=True)
class VehicleOffer:
    """One tier's vehicle as proposed by the LLM.

    ``price`` is ``None`` when the upstream document did not carry a usable
    number; callers display that as "Price TBD".
    """

    year: Optional[int]
    make: str
    model: str
    trim: str
    price: Optional[float]
    mileage_rating: str
    seat_count: Optional[int]
    headline_feature: str
    finance: FinanceTerms
    lease: LeaseTerms

    @classmethod
    def from_llm(cls, raw: Any) -> "VehicleOffer":
        raw = raw if isinstance(raw, Mapping) else {}
        price = _num(raw.get("price"))
        seats = _int(raw.get("seats"))
        return cls(
            year=_int(raw.get("year")),
            make=_text(raw.get("make")),
            model=_text(raw.get("model")),
            trim=_text(raw.get("trim")),
            price=price if price is not None and price >= 0 else None,
            mileage_rating=_text(raw.get("mileage")),
            seat_count=seats if seats is not None and seats > 0 else None,
            headline_feature=_text(raw.get("headline_feature")),
            finance=FinanceTerms.from_llm(raw.get("finance")),
            lease=LeaseTerms.from_llm(raw.get("lease")),
        )

    @property
    def title(self) -> str:
        parts = [str(self.year) if self.year else "", self.make, self.model, self.trim]
        return " ".join(p for p in parts if p) or "Unknown vehicle"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
