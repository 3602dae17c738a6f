# -*- coding: utf-8 -*-
"""Recommendation history helpers."""

import json
from typing import Any, Dict, List, Optional

from flask import current_app

from carfinance.exceptions import InvalidInputError
from carfinance.models import CarRecommendation
from carfinance.services.recommendation_service import build_plan_quotes
from carfinance.utils.http_helpers import get_request_id
from carfinance.utils.tier_normalizer import normalize_tiers


def safe_json_obj(value, default=None):
    """Safely decode value into dict/list, including a double-encoded JSON string."""
    fallback = {} if default is None else default
    try:
        if isinstance(value, (dict, list)):
            return value
        if not isinstance(value, str):
            return fallback
        stripped = value.strip()
        if not stripped:
            return fallback
        result = json.loads(stripped)
        if isinstance(result, str):
            try:
                result = json.loads(result)
            except ValueError:
                return fallback
        return result if isinstance(result, (dict, list)) else fallback
    except ValueError:
        return fallback


def recommendation_document(record: CarRecommendation) -> Dict[str, Any]:
    # Normalization is idempotent, so rows written before it existed come out sorted too.
    return normalize_tiers(safe_json_obj(record.recommendation_data))


def summarize_recommendation(record: CarRecommendation) -> Dict[str, Any]:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "profile_id": record.profile_id,
        "budget_car": record.budget_car,
        "balanced_car": record.balanced_car,
        "premium_car": record.premium_car,
        "duration_ms": record.duration_ms,
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


def serialize_recommendation(
    record: CarRecommendation,
    sliders: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Full view: summary columns, the tier document and per-tier quotes."""
    document = recommendation_document(record)
    try:
        quotes = build_plan_quotes(document, sliders)
    except InvalidInputError as e:
        # Stored offers with unusable terms; the document is still returned.
        current_app.logger.warning(
            "[AI] quote unavailable request_id=%s rec_id=%s field=%s", get_request_id(), record.id, e.field
        )
        quotes = []
    data = summarize_recommendation(record)
    data.update({
        "recommendation_id": record.id,
        "plans": {k: v for k, v in document.items() if k not in ("Affordability", "Recommendation")},
        "affordability": document.get("Affordability") or {},
        "advice": document.get("Recommendation") or {},
        "quotes": quotes,
    })
    return data


def list_recommendations(user_id: Optional[int] = None, limit: int = 50) -> List[CarRecommendation]:
    query = CarRecommendation.query
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.order_by(CarRecommendation.created_at.desc(), CarRecommendation.id.desc()).limit(limit).all()
