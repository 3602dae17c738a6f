# -*- coding: utf-8 -*-
"""
Public routes blueprint - health check.
"""

from flask import Blueprint

from carfinance.utils.http_helpers import api_ok

bp = Blueprint('public', __name__)


@bp.route('/healthz')
def healthz():
    return api_ok({"status": "ok"})
