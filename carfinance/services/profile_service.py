# -*- coding: utf-8 -*-
"""Financial profile persistence."""

from typing import Any, Dict, Optional, Tuple

from flask import current_app

from carfinance.extensions import db
from carfinance.models import UserProfile


def get_profile(user_id: int) -> Optional[UserProfile]:
    return UserProfile.query.filter_by(user_id=user_id).first()


def upsert_profile(user_id: int, fields: Dict[str, Any]) -> Tuple[UserProfile, bool]:
    """Create or update the user's profile. Returns (profile, created)."""
    profile = get_profile(user_id)
    created = profile is None
    if created:
        profile = UserProfile(user_id=user_id)
        db.session.add(profile)
    for field, value in fields.items():
        if field in UserProfile.FIELDS:
            setattr(profile, field, value)
    db.session.commit()
    current_app.logger.info(
        "[PROFILE] %s user_id=%s fields=%s", "created" if created else "updated", user_id, sorted(fields)
    )
    return profile, created
