# app/services/scoring.py
"""Rubric scoring rules.

Pure functions only: the live preview shown to a judge, the persisted
ScoreItem values and the results report all go through
``compute_criterion_score`` so the numbers can never drift apart.

Criteria are handled as plain dicts (see ``normalize_criterion``) and
responses as ``{criterion_id: {"value": ..., "comment": ...}}``.
"""
from __future__ import annotations

import math
from typing import Iterable

ANSWER_TRUE_FALSE = "true_false"
ANSWER_NUMERIC = "numeric_scale"
ANSWER_DROPDOWN = "dropdown"
ANSWER_TYPES = (ANSWER_TRUE_FALSE, ANSWER_NUMERIC, ANSWER_DROPDOWN)

CRITERION_CATEGORIES = {
    "abstract": "Abstract / Introduction",
    "methodology": "Methodology / Approach",
    "results": "Results / Conclusion / Discussion",
    "presentation": "Presentation / Organization",
    "significance": "Significance / Importance",
    "understanding": "Understanding & Professionalism",
}

DEFAULT_CATEGORY = "abstract"
DEFAULT_WEIGHT = 1.0
DEFAULT_SCORE_MIN = 0.0
DEFAULT_SCORE_MAX = 5.0
DEFAULT_TRUE_POINTS = 1.0
DEFAULT_FALSE_POINTS = 0.0


def to_number(value, fallback: float = 0.0) -> float:
    if value is None or value == "":
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if math.isfinite(parsed) else fallback


def _field(criterion, key):
    if isinstance(criterion, dict):
        return criterion.get(key)
    return getattr(criterion, key, None)


def normalize_criterion(criterion) -> dict:
    """Accepts a Criterion row or a dict and returns the canonical criterion dict."""
    def get(key):
        return _field(criterion, key)

    return {
        "id": get("id"),
        "name": get("name") or "",
        "description": get("description") or "",
        "category": get("category") or DEFAULT_CATEGORY,
        "answer_type": get("answer_type") or ANSWER_NUMERIC,
        "answer_config": get("answer_config") or None,
        "weight": to_number(get("weight"), DEFAULT_WEIGHT),
        "score_min": to_number(get("score_min"), DEFAULT_SCORE_MIN),
        "score_max": to_number(get("score_max"), DEFAULT_SCORE_MAX),
        "display_order": get("display_order"),
    }


def _config(criterion: dict) -> dict:
    return criterion.get("answer_config") or {}


def _dropdown_options(criterion: dict) -> list:
    return list(_config(criterion).get("options") or [])


def _is_true(raw_answer) -> bool:
    if isinstance(raw_answer, str):
        return raw_answer.strip().lower() == "true"
    return raw_answer is True


def compute_criterion_score(criterion: dict, raw_answer, clamp: bool = False) -> float:
    """Weighted points for one answer.

    ``clamp`` pins numeric_scale answers into [score_min, score_max] before
    weighting; other answer types are unaffected.
    """
    weight = to_number(criterion.get("weight"), DEFAULT_WEIGHT)
    answer_type = criterion.get("answer_type")

    if answer_type == ANSWER_TRUE_FALSE:
        cfg = _config(criterion)
        true_points = to_number(cfg.get("truePoints"), DEFAULT_TRUE_POINTS)
        false_points = to_number(cfg.get("falsePoints"), DEFAULT_FALSE_POINTS)
        return (true_points if _is_true(raw_answer) else false_points) * weight

    if answer_type == ANSWER_DROPDOWN:
        # the answer is the chosen option's points value
        return to_number(raw_answer, 0.0) * weight

    value = to_number(raw_answer, 0.0)
    if clamp:
        low = to_number(criterion.get("score_min"), DEFAULT_SCORE_MIN)
        high = to_number(criterion.get("score_max"), DEFAULT_SCORE_MAX)
        value = min(max(value, low), high)
    return value * weight


def compute_criterion_max_points(criterion: dict) -> float:
    weight = to_number(criterion.get("weight"), 0.0)
    answer_type = criterion.get("answer_type")

    if answer_type == ANSWER_TRUE_FALSE:
        return to_number(_config(criterion).get("truePoints"), DEFAULT_TRUE_POINTS) * weight

    if answer_type == ANSWER_DROPDOWN:
        options = _dropdown_options(criterion)
        if not options:
            return 0.0
        return max(to_number(opt.get("points"), 0.0) for opt in options) * weight

    return to_number(criterion.get("score_max"), 0.0) * weight


def compute_rubric_max_points(criteria: Iterable[dict]) -> float:
    return sum(compute_criterion_max_points(c) for c in (criteria or []))


def response_for(responses: dict | None, criterion_id):
    """Looks up a response keyed by criterion id; JSON payloads key by string."""
    if not responses:
        return None
    if criterion_id in responses:
        return responses[criterion_id]
    return responses.get(str(criterion_id))


def response_value(response):
    if isinstance(response, dict):
        return response.get("value")
    return response


def validate_responses(criteria: Iterable[dict], responses: dict | None) -> tuple[bool, list]:
    """Returns ``(ok, missing_ids)``; a response is missing when absent, None or ""."""
    missing = []
    for criterion in criteria or []:
        value = response_value(response_for(responses, criterion["id"]))
        if value is None or value == "":
            missing.append(criterion["id"])
    return not missing, missing


def find_out_of_range(criteria: Iterable[dict], responses: dict | None) -> list:
    """Ids of numeric_scale criteria whose answer falls outside [score_min, score_max]."""
    out = []
    for criterion in criteria or []:
        if criterion.get("answer_type") != ANSWER_NUMERIC:
            continue
        value = response_value(response_for(responses, criterion["id"]))
        if value is None or value == "":
            continue
        number = to_number(value, math.nan)
        if math.isnan(number):
            out.append(criterion["id"])
            continue
        if number < criterion["score_min"] or number > criterion["score_max"]:
            out.append(criterion["id"])
    return out


def compute_score(criteria: Iterable[dict], responses: dict | None, clamp: bool = False) -> float:
    """Total for a response set; unanswered criteria contribute nothing."""
    total = 0.0
    for criterion in criteria or []:
        response = response_for(responses, criterion["id"])
        if response is None:
            continue
        total += compute_criterion_score(criterion, response_value(response), clamp=clamp)
    return total


def resolve_track_rubric(links: Iterable) -> object | None:
    """Default track-rubric link if one is flagged, else the first link."""
    links = list(links or [])
    if not links:
        return None
    for link in links:
        if getattr(link, "is_default", False):
            return link
    return links[0]


def score_items_to_responses(items: Iterable) -> dict:
    return {
        item.criterion_id: {
            "value": item.raw_value if item.raw_value is not None else item.score_value,
            "comment": item.comment or "",
        }
        for item in items or []
    }
