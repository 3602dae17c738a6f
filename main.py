# -*- coding: utf-8 -*-
# Entry point for gunicorn ("main:create_app()") and `flask --app main`.

import os

from carfinance.factory import create_app
from carfinance.extensions import db
from carfinance.models import User, UserProfile, Document, CarRecommendation, DealerReferral

__all__ = ["create_app", "db", "User", "UserProfile", "Document", "CarRecommendation", "DealerReferral"]


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5001))
    debug = os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true', 'yes')
    app.run(host='0.0.0.0', port=port, debug=debug)
