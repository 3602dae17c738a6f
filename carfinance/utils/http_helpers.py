# -*- coding: utf-8 -*-
"""HTTP helper functions shared by all blueprints."""

from typing import Optional, Mapping, Any, Dict
from flask import jsonify, g, current_app, request
from flask_login import current_user


def get_request_id() -> str:
    """Get the current request_id from Flask g object."""
    return getattr(g, 'request_id', 'unknown')


def api_ok(payload: Optional[dict] = None, status: int = 200, request_id: Optional[str] = None):
    """Standard API success response."""
    rid = request_id or get_request_id()
    resp = jsonify({"ok": True, "data": payload, "request_id": rid})
    resp.status_code = status
    resp.headers["X-Request-ID"] = rid
    return resp


def api_error(code: str, message: str, status: int = 400, details: Optional[Mapping[str, Any]] = None, request_id: Optional[str] = None):
    """Standard API error response."""
    rid = request_id or get_request_id()
    body: Dict[str, Any] = {"ok": False, "error": {"code": code, "message": message}, "request_id": rid}
    if details is not None:
        body["error"]["details"] = details
    resp = jsonify(body)
    resp.status_code = status
    resp.headers["X-Request-ID"] = rid
    return resp


def rate_limited_response(limit: int, used: int, resets_at):
    from datetime import datetime
    retry_after = max(0, int((resets_at - datetime.utcnow()).total_seconds()))
    resp = api_error(
        "rate_limited",
        "Too many requests, please slow down.",
        status=429,
        details={
            "limit": limit,
            "used": used,
            "remaining": max(0, limit - used),
            "resets_at": resets_at.isoformat(),
        },
    )
    resp.headers["Retry-After"] = str(retry_after)
    return resp


def log_rejection(reason: str, details: str = "") -> None:
    """
    Safely log rejection reasons without exposing sensitive data.

    Args:
        reason: Short category (unauthenticated, forbidden, validation, server_error)
        details: Safe description of the issue (no secrets, tokens, or DB details)
    """
    user_id = current_user.id if current_user.is_authenticated else "anonymous"
    endpoint = request.endpoint or "unknown"
    request_id = get_request_id()
    current_app.logger.warning(f"[REJECT] request_id={request_id} endpoint={endpoint} user={user_id} reason={reason} details={details}")
