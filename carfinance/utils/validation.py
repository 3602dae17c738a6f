"""Utility functions for validating incoming request payloads.

Every validator takes the parsed JSON body and returns a cleaned ``dict``;
failures raise :class:`carfinance.exceptions.ValidationError`, which the app
factory turns into a 400 response.
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any, Dict, Mapping, Optional

from carfinance.exceptions import ValidationError
from carfinance.utils.tier_normalizer import DISPLAY_SLOTS, TIER_LABELS

# Upper bounds for the questionnaire's money fields (USD)
_PROFILE_INT_FIELDS = {
    'gross_monthly_income': 1_000_000,
    'other_monthly_income': 1_000_000,
    'fixed_monthly_expenses': 1_000_000,
    'liquid_savings': 100_000_000,
    'down_payment': 10_000_000,
}

# Field length limits for DoS prevention
_PROFILE_TEXT_FIELDS = {
    'credit_score': 32,
    'ownership_horizon': 64,
    'annual_mileage': 64,
    'passenger_needs': 64,
    'commute_profile': 128,
}

# Question ids used by the questionnaire front-end
_PROFILE_ALIASES = {
    'income': 'gross_monthly_income',
    'other_income': 'other_monthly_income',
    'expenses': 'fixed_monthly_expenses',
    'savings': 'liquid_savings',
    'vehicle_ownership': 'ownership_horizon',
    'annual_miles': 'annual_mileage',
    'driving_profile': 'commute_profile',
}

PROFILE_FIELDS = tuple(_PROFILE_INT_FIELDS) + tuple(_PROFILE_TEXT_FIELDS)

_QUOTE_FIELDS = {
    'price', 'apr_percent', 'term_months', 'down_payment',
    'base_lease_payment', 'annual_mileage', 'lease_term_months',
}
_SLIDER_FIELDS = {'down_payment', 'term_months', 'annual_mileage', 'lease_term_months'}

PAYMENT_MODES = ('finance', 'lease')
MAX_NOTE_LENGTH = 500
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 120

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
_ALLOWED_TEXT_PATTERN = re.compile(r"^[A-Za-z0-9\s\-.,/'\"()&:+]+$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _require_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object", field="payload")
    return payload


def _reject_unexpected(payload: Mapping[str, Any], allowed: set) -> None:
    unexpected = {k for k in payload.keys() if k not in allowed}
    if unexpected:
        raise ValidationError(f"Unexpected fields: {', '.join(sorted(unexpected))}", field="payload")


def _check_field_length(field: str, value: Any, max_length: int) -> None:
    if value is None:
        return
    str_value = str(value)
    if len(str_value) > max_length:
        raise ValidationError(
            f"Field exceeds maximum length of {max_length} characters (got {len(str_value)})",
            field=field,
        )


def _validate_int_range(field: str, value: Any, *, min_val: int, max_val: int) -> int:
    """Validate that a field is an int within the allowed range."""
    if isinstance(value, bool):
        raise ValidationError("Field must be a number", field=field)
    try:
        n = float(str(value).replace(',', '').strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise ValidationError("Field must be a number", field=field)
    if not math.isfinite(n):
        raise ValidationError("Field must be a number", field=field)
    n = int(round(n))
    if n < min_val or n > max_val:
        raise ValidationError(f"Value must be between {min_val} and {max_val}", field=field)
    return n


def _normalize_text(value: Any) -> str:
    text = unicodedata.normalize("NFKC", str(value))
    text = text.translate({
        ord("\u2013"): "-",
        ord("\u2014"): "-",
        ord("\u2018"): "'",
        ord("\u2019"): "'",
        ord("\u201c"): '"',
        ord("\u201d"): '"',
        ord("\u00a0"): " ",
    })
    # Drop any remaining control/format chars
    text = ''.join(ch for ch in text if ch in "\n\t" or not unicodedata.category(ch).startswith('C'))
    text = _CONTROL_CHARS.sub('', text)
    return re.sub(r'\s+', ' ', text).strip()


def _normalize_and_validate_text(field: str, value: Any, max_length: int) -> str:
    """
    Normalize text fields: strip control chars, collapse whitespace,
    enforce allowlist, and length limit.
    """
    if value is None:
        return ''
    text = _normalize_text(value)
    _check_field_length(field, text, max_length)
    if text and not _ALLOWED_TEXT_PATTERN.match(text):
        raise ValidationError(
            "Field contains invalid characters. Use letters, numbers, spaces, and basic punctuation only.",
            field=field,
        )
    return text


# ── Profile ───────────────────────────────────────────────────────────

def validate_profile_request(payload: Any) -> Dict[str, Any]:
    """Validate questionnaire answers.

    Accepts both the stored column names and the questionnaire's question
    ids. Fields that are absent are left out of the result so callers can
    apply partial updates; an explicit ``null`` clears the field.
    """
    payload = _require_mapping(payload)
    canonical: Dict[str, Any] = {}
    for key, value in payload.items():
        field = _PROFILE_ALIASES.get(key, key)
        if field not in PROFILE_FIELDS:
            raise ValidationError(f"Unexpected fields: {key}", field="payload")
        canonical[field] = value

    validated: Dict[str, Any] = {}
    for field, value in canonical.items():
        if value is None or value == '':
            validated[field] = None
        elif field in _PROFILE_INT_FIELDS:
            validated[field] = _validate_int_range(field, value, min_val=0, max_val=_PROFILE_INT_FIELDS[field])
        else:
            validated[field] = _normalize_and_validate_text(field, value, _PROFILE_TEXT_FIELDS[field]) or None
    return validated


# ── Quotes ────────────────────────────────────────────────────────────

def validate_quote_request(payload: Any) -> Dict[str, Any]:
    """Shape check for ``POST /api/quote``.

    Numeric checks are left to the payment estimator, which raises
    ``InvalidInputError`` with the offending field.
    """
    payload = _require_mapping(payload)
    _reject_unexpected(payload, _QUOTE_FIELDS)
    for field in ('price', 'apr_percent', 'term_months'):
        if payload.get(field) is None:
            raise ValidationError("Field is required", field=field, code="invalid_input")
    return {k: payload.get(k) for k in _QUOTE_FIELDS if payload.get(k) is not None}


def validate_slider_request(payload: Any) -> Dict[str, Any]:
    if payload is None:
        return {}
    payload = _require_mapping(payload)
    _reject_unexpected(payload, _SLIDER_FIELDS)
    return {k: payload.get(k) for k in _SLIDER_FIELDS if payload.get(k) is not None}


# ── Accounts ──────────────────────────────────────────────────────────

def validate_registration_request(payload: Any) -> Dict[str, str]:
    payload = _require_mapping(payload)
    out: Dict[str, str] = {}
    for field, max_len in (('email', MAX_EMAIL_LENGTH), ('first_name', MAX_NAME_LENGTH), ('last_name', MAX_NAME_LENGTH)):
        value = payload.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Field is required", field=field)
        out[field] = value.strip().lower() if field == 'email' else _normalize_text(value)
        _check_field_length(field, out[field], max_len)
    if len(out['email']) > MAX_EMAIL_LENGTH or not _EMAIL_PATTERN.match(out['email']):
        raise ValidationError("A valid email is required", field="email")
    password = payload.get('password')
    if not isinstance(password, str) or not password:
        raise ValidationError("Field is required", field="password")
    out['password'] = password
    return out


def validate_login_request(payload: Any) -> Dict[str, str]:
    payload = _require_mapping(payload)
    email = payload.get('email')
    password = payload.get('password')
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Field is required", field="email")
    if not isinstance(password, str) or not password:
        raise ValidationError("Field is required", field="password")
    return {'email': email.strip().lower(), 'password': password}


# ── Referrals ─────────────────────────────────────────────────────────

def normalize_tier_label(value: Any) -> Optional[str]:
    """Map ``Budget``/``Essential`` etc. to the display label, case-insensitively."""
    if not isinstance(value, str):
        return None
    v = value.strip().lower()
    for slot, label in TIER_LABELS.items():
        if v in (slot.lower(), label.lower()):
            return label
    return None


def validate_referral_request(payload: Any) -> Dict[str, Any]:
    payload = {} if payload is None else _require_mapping(payload)
    _reject_unexpected(payload, {'recommendation_id', 'selected_tier', 'payment_mode', 'note'})

    recommendation_id = payload.get('recommendation_id')
    if recommendation_id is not None:
        recommendation_id = _validate_int_range('recommendation_id', recommendation_id, min_val=1, max_val=2**31 - 1)

    selected_tier = None
    if payload.get('selected_tier') is not None:
        selected_tier = normalize_tier_label(payload.get('selected_tier'))
        if selected_tier is None:
            raise ValidationError(f"Must be one of: {', '.join(DISPLAY_SLOTS)}", field="selected_tier")

    payment_mode = payload.get('payment_mode') or 'finance'
    if not isinstance(payment_mode, str) or payment_mode.strip().lower() not in PAYMENT_MODES:
        raise ValidationError("Must be 'finance' or 'lease'", field="payment_mode")

    note = _normalize_text(payload.get('note') or '')
    _check_field_length('note', note, MAX_NOTE_LENGTH)

    return {
        'recommendation_id': recommendation_id,
        'selected_tier': selected_tier,
        'payment_mode': payment_mode.strip().lower(),
        'note': note or None,
    }
