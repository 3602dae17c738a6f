# -*- coding: utf-8 -*-
"""Financial questionnaire routes."""

from flask import Blueprint, request

from carfinance.access import current_principal, principal_required
from carfinance.services import profile_service
from carfinance.utils.http_helpers import api_error, api_ok
from carfinance.utils.validation import validate_profile_request

bp = Blueprint('profile', __name__, url_prefix='/api/profile')


@bp.route('', methods=['GET'])
@principal_required
def get_profile():
    profile = profile_service.get_profile(current_principal().id)
    if profile is None:
        return api_error("not_found", "Profile not found", status=404)
    return api_ok({"profile": profile.to_dict()})


@bp.route('', methods=['POST', 'PUT'])
@principal_required
def save_profile():
    fields = validate_profile_request(request.get_json(silent=True))
    profile, created = profile_service.upsert_profile(current_principal().id, fields)
    return api_ok({"profile": profile.to_dict()}, status=201 if created else 200)
