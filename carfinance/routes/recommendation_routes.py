# -*- coding: utf-8 -*-
"""Recommender, history and payment quote routes."""

from typing import Optional

from flask import Blueprint, current_app, request

from carfinance.access import current_principal, ensure_can_access, principal_required
from carfinance.exceptions import ModelOutputInvalidError
from carfinance.extensions import db
from carfinance.models import CarRecommendation
from carfinance.quota import enforce_ip_rate_limit, log_access_decision
from carfinance.services import recommendation_service as rec_svc
from carfinance.services.history_service import (
    list_recommendations,
    recommendation_document,
    serialize_recommendation,
    summarize_recommendation,
)
from carfinance.services.profile_service import get_profile
from carfinance.utils.http_helpers import api_error, api_ok, get_request_id
from carfinance.utils.payment_estimator import (
    LEASE_REFERENCE_MILEAGE,
    LEASE_REFERENCE_TERM_MONTHS,
    finance_payment,
    format_currency,
    lease_payment,
)
from carfinance.utils.validation import (
    validate_profile_request,
    validate_quote_request,
    validate_slider_request,
)

bp = Blueprint('recommendations', __name__, url_prefix='/api')


def _load_recommendation(rec_id: int, route_name: str) -> Optional[CarRecommendation]:
    """Owner is resolved first; AccessGate runs before anything is returned."""
    rec = db.session.get(CarRecommendation, rec_id)
    if rec is None:
        return None
    ensure_can_access(current_principal(), rec.user_id, route_name)
    return rec


@bp.route('/generate', methods=['POST'])
@principal_required
def generate():
    principal = current_principal()
    request_id = get_request_id()

    limited = enforce_ip_rate_limit()
    if limited is not None:
        return limited

    answers = validate_profile_request(request.get_json(silent=True) or {})
    profile = get_profile(principal.id)
    inputs = rec_svc.merge_profile_inputs(answers, profile)
    log_access_decision("recommendations.generate", principal.id, "allowed")

    try:
        record, _document = rec_svc.generate_recommendation(principal.id, inputs, profile)
    except ModelOutputInvalidError as e:
        db.session.rollback()
        return api_error("ai_error", "The recommendation service is unavailable, please try again.", status=502,
                         details={"reason": str(e)})
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[AI] generate failed request_id=%s", request_id)
        return api_error("server_error", "Failed to generate recommendations", status=500)

    return api_ok(serialize_recommendation(record, {"down_payment": inputs.get("down_payment")}), status=201)


@bp.route('/recommendations')
@principal_required
def recommendations():
    records = list_recommendations(current_principal().id)
    return api_ok({"recommendations": [summarize_recommendation(r) for r in records]})


@bp.route('/recommendations/<int:rec_id>')
@principal_required
def recommendation_detail(rec_id):
    rec = _load_recommendation(rec_id, "recommendations.detail")
    if rec is None:
        return api_error("not_found", "Recommendation not found", status=404)
    return api_ok(serialize_recommendation(rec))


@bp.route('/recommendations/<int:rec_id>/quote', methods=['POST'])
@principal_required
def recommendation_quote(rec_id):
    rec = _load_recommendation(rec_id, "recommendations.quote")
    if rec is None:
        return api_error("not_found", "Recommendation not found", status=404)
    sliders = validate_slider_request(request.get_json(silent=True))
    quotes = rec_svc.build_plan_quotes(recommendation_document(rec), sliders)
    return api_ok({"recommendation_id": rec.id, "sliders": sliders, "quotes": quotes})


@bp.route('/quote', methods=['POST'])
def quote():
    """Stateless finance/lease calculator for slider values."""
    data = validate_quote_request(request.get_json(silent=True))
    down = data.get("down_payment", 0)

    finance_monthly = finance_payment(data["price"], data["apr_percent"], data["term_months"], down)
    payload = {
        "price_display": format_currency(data["price"]),
        "finance": {
            "apr_percent": data["apr_percent"],
            "term_months": data["term_months"],
            "down_payment": down,
            "monthly_payment": finance_monthly,
            "monthly_payment_display": format_currency(finance_monthly),
        },
        "lease": None,
    }
    if "base_lease_payment" in data:
        miles = data.get("annual_mileage", LEASE_REFERENCE_MILEAGE)
        term = data.get("lease_term_months", LEASE_REFERENCE_TERM_MONTHS)
        lease_monthly = lease_payment(data["base_lease_payment"], miles, term)
        payload["lease"] = {
            "term_months": term,
            "annual_mileage": miles,
            "monthly_payment": lease_monthly,
            "monthly_payment_display": format_currency(lease_monthly),
        }
    return api_ok(payload)
