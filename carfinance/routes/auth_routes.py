# -*- coding: utf-8 -*-
"""Account routes: register, login, logout, current user, token refresh."""

from flask import Blueprint, current_app, request
from flask_login import login_user, logout_user

from carfinance.access import current_principal, principal_required
from carfinance.auth import DuplicateEmailError, authenticate, issue_token, register_user
from carfinance.extensions import db
from carfinance.models import User
from carfinance.quota import enforce_ip_rate_limit, log_access_decision
from carfinance.utils.http_helpers import api_error, api_ok, get_request_id, log_rejection
from carfinance.utils.validation import validate_login_request, validate_registration_request

bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _session_payload(user: User) -> dict:
    return {
        "token": issue_token(user),
        "user": user.to_dict(),
        "has_profile": user.profile is not None,
    }


@bp.route('/register', methods=['POST'])
def register():
    limited = enforce_ip_rate_limit()
    if limited is not None:
        return limited

    data = validate_registration_request(request.get_json(silent=True))
    try:
        user = register_user(
            data['email'],
            data['password'],
            data['first_name'],
            data['last_name'],
        )
    except DuplicateEmailError as e:
        log_rejection("validation", "duplicate email")
        return api_error(e.code, e.message, status=409)

    login_user(user)
    return api_ok(_session_payload(user), status=201)


@bp.route('/login', methods=['POST'])
def login():
    limited = enforce_ip_rate_limit()
    if limited is not None:
        return limited

    data = validate_login_request(request.get_json(silent=True))
    user, reason = authenticate(data['email'], data['password'])
    if user is None:
        current_app.logger.info("[AUTH] login rejected request_id=%s reason=%s", get_request_id(), reason)
        return api_error("invalid_credentials", "Invalid email or password", status=401)

    login_user(user)
    log_access_decision("auth.login", user.id, "allowed")
    return api_ok(_session_payload(user))


@bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return api_ok({"logged_out": True})


@bp.route('/me')
@principal_required
def me():
    principal = current_principal()
    user = db.session.get(User, principal.id)
    return api_ok({"user": user.to_dict(), "has_profile": user.profile is not None})


@bp.route('/token', methods=['POST'])
@principal_required
def refresh_token():
    user = db.session.get(User, current_principal().id)
    return api_ok({"token": issue_token(user)})
