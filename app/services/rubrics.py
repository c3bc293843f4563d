# app/services/rubrics.py
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.errors import ConsistencyError, NotFoundError, ValidationError
from app.extensions import db
from app.models import Criterion, Rubric, Track, TrackRubric
from app.services.scoring import (
    ANSWER_DROPDOWN,
    ANSWER_NUMERIC,
    ANSWER_TRUE_FALSE,
    ANSWER_TYPES,
    CRITERION_CATEGORIES,
    DEFAULT_CATEGORY,
    DEFAULT_SCORE_MAX,
    DEFAULT_SCORE_MIN,
    DEFAULT_TRUE_POINTS,
    DEFAULT_FALSE_POINTS,
    compute_rubric_max_points,
    normalize_criterion,
    to_number,
)
from app.utils.time import to_iso

log = logging.getLogger(__name__)


def _dropdown_options(raw) -> list:
    options = []
    for option in raw or []:
        label = str((option or {}).get("label") or "").strip()
        if label:
            options.append({"label": label, "points": to_number(option.get("points"), 0.0)})
    return options


def normalize_criteria_payload(criteria) -> list:
    """Request-shaped criteria to stored shape. Range only applies to numeric_scale."""
    normalized = []
    for criterion in criteria or []:
        answer_type = criterion.get("answer_type") or ANSWER_NUMERIC
        config = criterion.get("answer_config") or {}

        answer_config = None
        if answer_type == ANSWER_TRUE_FALSE:
            answer_config = {
                "trueLabel": config.get("trueLabel") or "True",
                "falseLabel": config.get("falseLabel") or "False",
                "truePoints": to_number(config.get("truePoints"), DEFAULT_TRUE_POINTS),
                "falsePoints": to_number(config.get("falsePoints"), DEFAULT_FALSE_POINTS),
            }
        elif answer_type == ANSWER_DROPDOWN:
            answer_config = {"options": _dropdown_options(config.get("options"))}

        numeric = answer_type == ANSWER_NUMERIC
        normalized.append({
            "name": str(criterion.get("name") or "").strip(),
            "description": str(criterion.get("description") or "").strip(),
            "category": criterion.get("category") or DEFAULT_CATEGORY,
            "answer_type": answer_type,
            "answer_config": answer_config,
            "weight": criterion.get("weight"),
            "score_min": to_number(criterion.get("score_min"), DEFAULT_SCORE_MIN) if numeric else DEFAULT_SCORE_MIN,
            "score_max": to_number(criterion.get("score_max"), DEFAULT_SCORE_MAX) if numeric else DEFAULT_SCORE_MAX,
        })
    return normalized


def validate_criteria(criteria) -> list:
    """Normalise and check a criteria list; raises before anything is written."""
    if not isinstance(criteria, list) or not criteria:
        raise ConsistencyError("A rubric needs at least one criterion.")

    normalized = normalize_criteria_payload(criteria)
    for index, criterion in enumerate(normalized, start=1):
        if not criterion["name"]:
            raise ValidationError(f"Criterion {index} needs a name.")
        if criterion["category"] not in CRITERION_CATEGORIES:
            raise ValidationError(f"Criterion {index} has an unknown category.")
        if criterion["answer_type"] not in ANSWER_TYPES:
            raise ValidationError(f"Criterion {index} has an unknown answer type.")
        if criterion["answer_type"] == ANSWER_DROPDOWN and not criterion["answer_config"]["options"]:
            raise ConsistencyError(f"Criterion {index} is a dropdown without options.")
        if criterion["score_min"] > criterion["score_max"]:
            raise ValidationError(f"Criterion {index} has a minimum above its maximum.")
        try:
            criterion["weight"] = float(criterion["weight"] if criterion["weight"] not in (None, "") else 1)
        except (TypeError, ValueError):
            raise ValidationError(f"Criterion {index} has a non-numeric weight.") from None
    return normalized


def _criterion_rows(rubric_id: int, criteria: list) -> list:
    return [
        Criterion(
            rubric_id=rubric_id,
            name=c["name"],
            description=c["description"] or None,
            category=c["category"],
            answer_type=c["answer_type"],
            answer_config=c["answer_config"],
            weight=c["weight"],
            score_min=c["score_min"],
            score_max=c["score_max"],
            display_order=index,
        )
        for index, c in enumerate(criteria, start=1)
    ]


def _link_track(track_id: int, rubric_id: int, is_default: bool) -> TrackRubric:
    if is_default:
        (
            TrackRubric.query
            .filter(TrackRubric.track_id == track_id, TrackRubric.rubric_id != rubric_id)
            .update({TrackRubric.is_default: False}, synchronize_session=False)
        )
    link = TrackRubric.query.filter_by(track_id=track_id, rubric_id=rubric_id).first()
    if link is None:
        link = TrackRubric(track_id=track_id, rubric_id=rubric_id)
        db.session.add(link)
    link.is_default = bool(is_default)
    db.session.flush()
    return link


def _require_track(track_id: int) -> Track:
    track = db.session.get(Track, track_id)
    if track is None:
        raise NotFoundError(f"Track {track_id} not found.")
    return track


def create_rubric_for_track(track_id, name, criteria, description=None, version=1, is_default=True) -> dict:
    """Insert a rubric, its criteria and the track link.

    The rubric row is committed first; if the criteria or the track link
    cannot be written it is deleted again so no empty rubric is left behind.
    """
    _require_track(track_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Rubric name is required.")
    criteria = validate_criteria(criteria)

    rubric = Rubric(
        name=name,
        description=description or None,
        version=int(version or 1),
        is_active=True,
        max_total_points=compute_rubric_max_points(normalize_criterion(c) for c in criteria),
    )
    db.session.add(rubric)
    db.session.commit()
    rubric_id = rubric.id

    try:
        db.session.add_all(_criterion_rows(rubric_id, criteria))
        db.session.flush()
        link = _link_track(track_id, rubric_id, is_default)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.warning("criteria or track link insert failed; removing rubric %s", rubric_id)
        Rubric.query.filter(Rubric.id == rubric_id).delete(synchronize_session=False)
        db.session.commit()
        raise

    log.info("rubric %s created for track %s (max %.2f)", rubric_id, track_id, rubric.max_total_points)
    return {"rubric_id": rubric_id, "track_rubric_id": link.id}


def update_rubric_for_track(track_id, rubric_id, name, criteria, description=None, version=1, is_default=True) -> dict:
    _require_track(track_id)
    rubric = db.session.get(Rubric, rubric_id)
    if rubric is None:
        raise NotFoundError(f"Rubric {rubric_id} not found.")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Rubric name is required.")
    criteria = validate_criteria(criteria)

    try:
        rubric.name = name
        rubric.description = description or None
        rubric.version = int(version or rubric.version or 1)
        rubric.is_active = True
        rubric.max_total_points = compute_rubric_max_points(normalize_criterion(c) for c in criteria)

        Criterion.query.filter(Criterion.rubric_id == rubric.id).delete(synchronize_session=False)
        db.session.add_all(_criterion_rows(rubric.id, criteria))
        link = _link_track(track_id, rubric.id, is_default)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    return {"rubric_id": rubric.id, "track_rubric_id": link.id}


def rubric_to_dict(rubric: Rubric, link: TrackRubric) -> dict:
    return {
        "track_rubric_id": link.id,
        "track_id": link.track_id,
        "rubric_id": rubric.id,
        "name": rubric.name,
        "description": rubric.description or "",
        "version": rubric.version,
        "max_total_points": rubric.max_total_points,
        "is_active": rubric.is_active,
        "is_default": bool(link.is_default),
        "created_at": to_iso(rubric.created_at),
        "criteria": [normalize_criterion(c) for c in rubric.criteria],
    }


def list_track_rubrics(track_id: int) -> list:
    """Rubrics linked to a track, newest version first."""
    links = TrackRubric.query.filter(TrackRubric.track_id == track_id).all()
    rows = [rubric_to_dict(link.rubric, link) for link in links if link.rubric is not None]
    return sorted(rows, key=lambda r: r["version"] or 0, reverse=True)
