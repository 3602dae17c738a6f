# -*- coding: utf-8 -*-
"""Sales portal: read-only views over every customer's data."""

from flask import Blueprint

from carfinance.access import ROLE_SALES, ROLE_USER, role_required
from carfinance.extensions import db
from carfinance.models import DealerReferral, Document, User, UserProfile
from carfinance.services.history_service import list_recommendations, summarize_recommendation
from carfinance.utils.http_helpers import api_error, api_ok

bp = Blueprint('sales', __name__, url_prefix='/api/sales')

SALES_LIST_LIMIT = 500


def _with_owner(item: dict, user: User) -> dict:
    item["user"] = {"id": user.id, "email": user.email, "name": user.display_name} if user else None
    return item


def _get_customer(user_id: int):
    return db.session.get(User, user_id)


@bp.route('/users')
@role_required(ROLE_SALES)
def users():
    rows = User.query.filter_by(role=ROLE_USER).order_by(User.created_at.desc()).limit(SALES_LIST_LIMIT).all()
    return api_ok({"users": [u.to_dict() for u in rows]})


@bp.route('/profiles')
@role_required(ROLE_SALES)
def profiles():
    rows = UserProfile.query.order_by(UserProfile.updated_at.desc()).limit(SALES_LIST_LIMIT).all()
    return api_ok({"profiles": [_with_owner(p.to_dict(), p.user) for p in rows]})


@bp.route('/documents')
@role_required(ROLE_SALES)
def documents():
    rows = Document.query.order_by(Document.uploaded_at.desc()).limit(SALES_LIST_LIMIT).all()
    return api_ok({"documents": [_with_owner(d.to_dict(), d.user) for d in rows]})


@bp.route('/recommendations')
@role_required(ROLE_SALES)
def recommendations():
    rows = list_recommendations(limit=SALES_LIST_LIMIT)
    return api_ok({"recommendations": [_with_owner(summarize_recommendation(r), r.user) for r in rows]})


@bp.route('/referrals')
@role_required(ROLE_SALES)
def referrals():
    rows = DealerReferral.query.order_by(DealerReferral.created_at.desc()).limit(SALES_LIST_LIMIT).all()
    return api_ok({"referrals": [_with_owner(r.to_dict(), r.user) for r in rows]})


@bp.route('/users/<int:user_id>')
@role_required(ROLE_SALES)
def user_detail(user_id):
    user = _get_customer(user_id)
    if user is None:
        return api_error("not_found", "User not found", status=404)
    return api_ok({"user": user.to_dict()})


@bp.route('/users/<int:user_id>/profile')
@role_required(ROLE_SALES)
def user_profile(user_id):
    user = _get_customer(user_id)
    if user is None:
        return api_error("not_found", "User not found", status=404)
    if user.profile is None:
        return api_error("not_found", "Profile not found", status=404)
    return api_ok({"profile": user.profile.to_dict()})


@bp.route('/users/<int:user_id>/documents')
@role_required(ROLE_SALES)
def user_documents(user_id):
    user = _get_customer(user_id)
    if user is None:
        return api_error("not_found", "User not found", status=404)
    docs = sorted(user.documents, key=lambda d: (d.uploaded_at, d.id), reverse=True)
    return api_ok({"documents": [d.to_dict() for d in docs]})


@bp.route('/users/<int:user_id>/recommendations')
@role_required(ROLE_SALES)
def user_recommendations(user_id):
    user = _get_customer(user_id)
    if user is None:
        return api_error("not_found", "User not found", status=404)
    rows = list_recommendations(user.id)
    return api_ok({"recommendations": [summarize_recommendation(r) for r in rows]})


@bp.route('/users/<int:user_id>/overview')
@role_required(ROLE_SALES)
def user_overview(user_id):
    user = _get_customer(user_id)
    if user is None:
        return api_error("not_found", "User not found", status=404)
    return api_ok({
        "user": user.to_dict(),
        "profile": user.profile.to_dict() if user.profile else None,
        "documents": [d.to_dict() for d in sorted(user.documents, key=lambda d: (d.uploaded_at, d.id), reverse=True)],
        "recommendations": [summarize_recommendation(r) for r in list_recommendations(user.id)],
        "referrals": [r.to_dict() for r in sorted(user.referrals, key=lambda r: (r.created_at, r.id), reverse=True)],
    })
