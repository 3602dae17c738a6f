# -*- coding: utf-8 -*-
"""Dealership directory and lead referrals."""

from flask import Blueprint, current_app, request

from carfinance.access import current_principal, ensure_can_access, principal_required
from carfinance.data.dealerships import DEALERSHIPS, get_dealership
from carfinance.exceptions import Forbidden
from carfinance.extensions import db
from carfinance.models import CarRecommendation, DealerReferral
from carfinance.quota import log_access_decision
from carfinance.utils.http_helpers import api_error, api_ok, get_request_id
from carfinance.utils.validation import validate_referral_request

bp = Blueprint('dealerships', __name__, url_prefix='/api')


@bp.route('/dealerships')
def list_dealerships():
    return api_ok({"dealerships": DEALERSHIPS})


@bp.route('/dealerships/<dealer_id>/referrals', methods=['POST'])
@principal_required
def create_referral(dealer_id):
    principal = current_principal()
    dealer = get_dealership(dealer_id)
    if dealer is None:
        return api_error("not_found", "Dealership not found", status=404)

    data = validate_referral_request(request.get_json(silent=True))
    rec_id = data["recommendation_id"]
    if rec_id is not None:
        rec = db.session.get(CarRecommendation, rec_id)
        if rec is None:
            return api_error("not_found", "Recommendation not found", status=404)
        ensure_can_access(principal, rec.user_id, "dealerships.create_referral")
        # Leads are only ever sent for the customer's own selection.
        if rec.user_id != principal.id:
            log_access_decision("dealerships.create_referral", principal.id, "rejected", f"not owner rec_id={rec_id}")
            raise Forbidden("You can only refer your own recommendation.")

    referral = DealerReferral(
        user_id=principal.id,
        dealer_id=dealer["id"],
        recommendation_id=rec_id,
        selected_tier=data["selected_tier"],
        payment_mode=data["payment_mode"],
        note=data["note"],
    )
    db.session.add(referral)
    db.session.commit()
    current_app.logger.info(
        "[REFERRAL] created request_id=%s referral_id=%s user_id=%s dealer_id=%s",
        get_request_id(), referral.id, principal.id, dealer["id"],
    )
    return api_ok({"referral": referral.to_dict(), "dealership": dealer}, status=201)


@bp.route('/referrals')
@principal_required
def list_referrals():
    referrals = (
        DealerReferral.query.filter_by(user_id=current_principal().id)
        .order_by(DealerReferral.created_at.desc(), DealerReferral.id.desc())
        .all()
    )
    return api_ok({"referrals": [r.to_dict() for r in referrals]})
