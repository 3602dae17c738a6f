# -*- coding: utf-8 -*-
"""Recommendation service – questionnaire prompt, Gemini call, tier normalization."""

import atexit
import concurrent.futures
import json
import os
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from flask import current_app
from json_repair import repair_json

import carfinance.extensions as ext
from carfinance.domain import VehicleOffer
from carfinance.exceptions import ModelOutputInvalidError
from carfinance.extensions import db
from carfinance.models import CarRecommendation, UserProfile
from carfinance.utils.http_helpers import get_request_id
from carfinance.utils.payment_estimator import quote_offer
from carfinance.utils.prompt_defense import build_answers_block, create_data_only_instruction
from carfinance.utils.sanitization import sanitize_recommendation_response
from carfinance.utils.tier_normalizer import iter_plans, normalize_tiers, summarize_offer
from carfinance.utils.validation import PROFILE_FIELDS

AI_CALL_TIMEOUT_SEC = 60
AI_EXECUTOR_WORKERS = int(os.environ.get("AI_EXECUTOR_WORKERS", "4"))
AI_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=AI_EXECUTOR_WORKERS)
atexit.register(lambda: AI_EXECUTOR.shutdown(wait=False))

_NUMERIC_INPUTS = (
    "gross_monthly_income",
    "other_monthly_income",
    "fixed_monthly_expenses",
    "liquid_savings",
    "down_payment",
)


# ── Inputs ────────────────────────────────────────────────────────────

def merge_profile_inputs(payload: Mapping[str, Any], profile: Optional[UserProfile]) -> Dict[str, Any]:
    """Questionnaire values from the request win; gaps are filled from the stored profile."""
    merged: Dict[str, Any] = {}
    for field in PROFILE_FIELDS:
        value = payload.get(field)
        if value is None and profile is not None:
            value = getattr(profile, field, None)
        merged[field] = value
    return merged


def build_recommendation_prompt(inputs: Mapping[str, Any]) -> str:
    user_block = build_answers_block(((f, inputs.get(f)) for f in PROFILE_FIELDS), _NUMERIC_INPUTS)

    return f"""You are an automotive data and finance assistant focused on Toyota vehicles sold in the United States.

Task:
Return Toyota models and trims that fit within three price categories: "Budget", "Balanced", and "Premium".
Each category must contain exactly 1 car, with estimated financing and leasing details.

{create_data_only_instruction()}

USER FINANCIAL INPUT PARAMETERS (use them to refine affordability tiers and financing terms):
{user_block}

Use only current model year data for MSRP (USD), mileage (MPG), trim and seating capacity.

OUTPUT FORMAT
Return ONLY valid JSON with actual numbers (no expressions, no markdown):
{{
  "Budget": {{
    "mileage": "string (e.g. '32 MPG combined')",
    "year": number,
    "make": "Toyota",
    "model": "string",
    "trim": "string",
    "headline_feature": "1-2 words",
    "price": number,
    "seats": number,
    "finance": {{"apr_percent": number, "term_months": number, "estimated_monthly_payment": number}},
    "lease": {{"term_months": number, "estimated_monthly_payment": number, "annual_mileage_limit": number, "lease_score": number}}
  }},
  "Balanced": {{ same structure }},
  "Premium": {{ same structure }},
  "Affordability": {{
    "monthly_cap": number,
    "price_max": number,
    "price_bands": {{"Budget": number, "Balanced": number, "Premium": number}},
    "financing_term_months": number,
    "apr_percent": number
  }},
  "Recommendation": {{"primary": "Finance or Lease", "lease_score": number, "reason": "1-2 line explanation"}}
}}

RULES
- Only real, currently available Toyota models. Exclude Lexus, discontinued and concept models.
- The three cars must be in different price ranges.
- Prices and APR estimates must reflect current U.S. averages.
- headline_feature must be at most 2 words.
"""


# ── Gemini call ───────────────────────────────────────────────────────

def parse_model_json(raw: str) -> Tuple[Optional[dict], Optional[str]]:
    if not raw:
        return None, "MODEL_JSON_INVALID"
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        try:
            parsed = json.loads(repair_json(raw))
        except Exception:
            return None, "MODEL_JSON_INVALID"
    if not isinstance(parsed, dict):
        return None, "MODEL_JSON_INVALID"
    return parsed, None


def _execute_with_timeout(fn, timeout_sec: int):
    try:
        work_queue = getattr(AI_EXECUTOR, "_work_queue", None)
        if work_queue is not None and work_queue.qsize() >= AI_EXECUTOR_WORKERS:
            return None, "EXECUTOR_SATURATED"
        future = AI_EXECUTOR.submit(fn)
    except RuntimeError:
        return None, "EXECUTOR_SATURATED"
    try:
        return future.result(timeout=timeout_sec), None
    except concurrent.futures.TimeoutError:
        # cancel() won't stop already-running work
        future.cancel()
        return None, "CALL_TIMEOUT"
    except Exception as e:
        return None, e


def call_gemini_recommendations(prompt: str) -> Tuple[Optional[dict], Optional[str]]:
    """Returns (parsed_document, error_code)."""
    client = ext.ai_client
    if client is None:
        return None, "CLIENT_NOT_INITIALIZED"

    from google.genai import types as genai_types

    model_id = current_app.config.get("GEMINI_RECOMMENDER_MODEL_ID", ext.GEMINI_RECOMMENDER_MODEL_ID)
    config = genai_types.GenerateContentConfig(
        temperature=0.4,
        max_output_tokens=4096,
        response_mime_type="application/json",
    )

    def _invoke():
        return client.models.generate_content(model=model_id, contents=prompt, config=config)

    timeout_sec = int(current_app.config.get("AI_CALL_TIMEOUT_SEC", AI_CALL_TIMEOUT_SEC))
    resp, err = _execute_with_timeout(_invoke, timeout_sec)
    if err == "EXECUTOR_SATURATED":
        return None, "SERVER_BUSY"
    if err == "CALL_TIMEOUT":
        return None, "CALL_TIMEOUT"
    if isinstance(err, Exception):
        return None, f"CALL_FAILED:{type(err).__name__}"
    if resp is None:
        return None, "CALL_FAILED:EMPTY"
    return parse_model_json((getattr(resp, "text", "") or "").strip())


# ── Quotes ────────────────────────────────────────────────────────────

def build_plan_quotes(document: Mapping[str, Any], sliders: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
    """
    Quote every tier of a normalized document with the same slider values.
    Raises InvalidInputError for bad slider values.
    """
    sliders = sliders or {}
    plans = []
    for label, key, raw_offer in iter_plans(document):
        offer = VehicleOffer.from_llm(raw_offer)
        plans.append({
            "tier": label,
            "slot": key,
            "headline_feature": offer.headline_feature,
            "mileage": offer.mileage_rating,
            "seats": offer.seat_count,
            "quote": quote_offer(
                offer,
                down_payment=sliders.get("down_payment"),
                term_months=sliders.get("term_months"),
                annual_mileage=sliders.get("annual_mileage"),
                lease_term_months=sliders.get("lease_term_months"),
            ),
        })
    return plans


# ── Generation ────────────────────────────────────────────────────────

def generate_recommendation(
    user_id: int,
    inputs: Mapping[str, Any],
    profile: Optional[UserProfile] = None,
) -> Tuple[CarRecommendation, Dict[str, Any]]:
    """
    Run the recommender for ``inputs`` and persist the result.

    Raises ModelOutputInvalidError when Gemini is unavailable or returns
    something other than a JSON object; the message carries the error code.
    """
    logger = current_app.logger
    request_id = get_request_id()
    started = time.perf_counter()

    prompt = build_recommendation_prompt(inputs)
    parsed, err = call_gemini_recommendations(prompt)
    duration_ms = int((time.perf_counter() - started) * 1000)
    if err or parsed is None:
        logger.error("[AI] recommender failed request_id=%s user_id=%s err=%s", request_id, user_id, err)
        raise ModelOutputInvalidError(err or "MODEL_JSON_INVALID")

    document = normalize_tiers(sanitize_recommendation_response(parsed))
    summaries = [summarize_offer(offer) for _label, _key, offer in iter_plans(document)]
    if len(summaries) != 3:
        logger.warning("[AI] recommender returned incomplete tiers request_id=%s", request_id)
        summaries = ["Unknown vehicle"] * 3

    record = CarRecommendation(
        user_id=user_id,
        profile_id=profile.id if profile is not None else None,
        budget_car=summaries[0][:255],
        balanced_car=summaries[1][:255],
        premium_car=summaries[2][:255],
        recommendation_data=document,
        model_name=current_app.config.get("GEMINI_RECOMMENDER_MODEL_ID", ext.GEMINI_RECOMMENDER_MODEL_ID),
        duration_ms=duration_ms,
    )
    db.session.add(record)
    db.session.commit()
    logger.info(
        "[AI] recommendation saved request_id=%s user_id=%s rec_id=%s duration_ms=%s",
        request_id, user_id, record.id, duration_ms,
    )

    return record, document
