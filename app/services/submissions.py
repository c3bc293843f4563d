# app/services/submissions.py
from __future__ import annotations

import logging
import re

from sqlalchemy.exc import SQLAlchemyError

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models import (
    ROLE_STUDENT,
    SUBMISSION_STATUSES,
    SUBMISSION_SUBMITTED,
    FacetOption,
    Person,
    PersonEventRole,
    Submission,
    SubmissionFacetValue,
    Track,
    TrackFacet,
)
from app.services.facets import VALUE_KIND_DATE, VALUE_KIND_NUMBER
from app.utils.time import parse_date, to_iso, utcnow

log = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "prescoring": "pre_scoring",
    "prescored": "pre_scored",
    "eventscoring": "event_scoring",
}


def normalize_submission_status(value) -> str:
    """Tolerant status parsing; anything unknown becomes ``submitted``."""
    normalized = re.sub(r"[\s-]+", "_", str(value or "").strip().lower())
    if normalized in SUBMISSION_STATUSES:
        return normalized
    return _STATUS_ALIASES.get(normalized, SUBMISSION_SUBMITTED)


def _has_value(value: dict) -> bool:
    return bool(
        value.get("facet_option_id")
        or str(value.get("value_text") or "").strip()
        or value.get("value_date")
        or value.get("value_number") not in (None, "")
    )


def build_submission_facet_values(track_facets, facet_values: dict | None) -> list:
    """Typed facet rows for a new submission; raises when a required facet is empty."""
    facet_values = facet_values or {}
    rows = []
    for tf in track_facets:
        facet = tf.facet
        current = facet_values.get(tf.facet_id) or facet_values.get(str(tf.facet_id)) or {}
        if not _has_value(current):
            if tf.is_required:
                raise ValidationError(f"{facet.name} is required.", facet_id=tf.facet_id)
            continue

        row = {"facet_id": tf.facet_id, "facet_option_id": None,
               "value_text": None, "value_number": None, "value_date": None}
        option_id = current.get("facet_option_id")
        if option_id:
            option = db.session.get(FacetOption, int(option_id))
            if option is None or option.facet_id != tf.facet_id:
                raise ValidationError(f"Unknown option for {facet.name}.", facet_id=tf.facet_id)
            row["facet_option_id"] = option.id
            row["value_text"] = option.label or option.value
        elif (facet.value_kind or "").lower() == VALUE_KIND_NUMBER:
            try:
                row["value_number"] = float(current.get("value_number"))
            except (TypeError, ValueError):
                raise ValidationError(f"{facet.name} must be a number.", facet_id=tf.facet_id) from None
        elif (facet.value_kind or "").lower() == VALUE_KIND_DATE:
            row["value_date"] = parse_date(current.get("value_date"))
            if row["value_date"] is None:
                raise ValidationError(f"{facet.name} must be a date.", facet_id=tf.facet_id)
        else:
            row["value_text"] = str(current.get("value_text") or "").strip() or None
        rows.append(row)
    return rows


def _display_name_from_email(email: str) -> str:
    return email.split("@")[0] or email


def find_or_create_person(email: str, role: str = "student"):
    """Returns ``(person, created)``."""
    email = email.strip()
    person = Person.query.filter(db.func.lower(Person.email) == email.lower()).first()
    if person is not None:
        return person, False
    person = Person(username=email, email=email, display_name=_display_name_from_email(email), role=role)
    db.session.add(person)
    db.session.flush()
    return person, True


def _ensure_student_role(person_id: int, event_instance_id: int) -> None:
    exists = PersonEventRole.query.filter_by(
        person_id=person_id, event_instance_id=event_instance_id, role_code=ROLE_STUDENT
    ).first()
    if exists is None:
        db.session.add(PersonEventRole(
            person_id=person_id, event_instance_id=event_instance_id, role_code=ROLE_STUDENT
        ))


def _prepare_submission(track_id, row: dict) -> dict:
    """Validate one submission row without writing; returns the values to insert."""
    track = db.session.get(Track, track_id)
    if track is None:
        raise NotFoundError(f"Track {track_id} not found.")
    title = (row.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    if not (row.get("creator_email") or "").strip():
        raise ValidationError("Author email is required.")

    track_facets = (
        TrackFacet.query
        .filter(TrackFacet.track_id == track.id)
        .order_by(TrackFacet.display_order.asc())
        .all()
    )
    return {
        "track": track,
        "title": title,
        "creator_email": row["creator_email"],
        "supervisor_email": row.get("supervisor_email"),
        "description": row.get("description"),
        "keywords": row.get("keywords"),
        "status": normalize_submission_status(row.get("status")),
        "facet_rows": build_submission_facet_values(track_facets, row.get("facet_values")),
    }


def _insert_submission(prepared: dict) -> Submission:
    track = prepared["track"]
    creator, created = find_or_create_person(prepared["creator_email"])
    if created:
        _ensure_student_role(creator.id, track.event_instance_id)
    supervisor = None
    if (prepared["supervisor_email"] or "").strip():
        supervisor, _ = find_or_create_person(prepared["supervisor_email"], role="public")

    submission = Submission(
        track_id=track.id,
        title=prepared["title"],
        description=prepared["description"] or None,
        keywords=prepared["keywords"] or None,
        creator_person_id=creator.id,
        supervisor_person_id=supervisor.id if supervisor else None,
        status=prepared["status"],
        submitted_at=utcnow(),
    )
    db.session.add(submission)
    db.session.flush()

    for row in prepared["facet_rows"]:
        db.session.add(SubmissionFacetValue(submission_id=submission.id, **row))
    return submission


def create_submission(track_id, title, creator_email, supervisor_email=None, facet_values=None,
                      description=None, keywords=None, status=None) -> dict:
    prepared = _prepare_submission(track_id, {
        "title": title,
        "creator_email": creator_email,
        "supervisor_email": supervisor_email,
        "facet_values": facet_values,
        "description": description,
        "keywords": keywords,
        "status": status,
    })
    try:
        submission = _insert_submission(prepared)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    log.info("submission %s created in track %s", submission.id, track_id)
    return submission_to_dict(submission)


def create_submissions(track_id, rows) -> dict:
    """Batch create: every row is validated before anything is written, then one commit."""
    rows = list(rows or [])
    prepared = []
    for index, row in enumerate(rows, start=1):
        if not (row.get("creator_email") or "").strip():
            raise ValidationError(f"Row {index} must include creator_email.")
        try:
            prepared.append(_prepare_submission(track_id, row))
        except ValidationError as exc:
            raise ValidationError(f"Row {index}: {exc.message}", row=index, **exc.extra) from None

    try:
        for item in prepared:
            _insert_submission(item)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    log.info("%d submission(s) created in track %s", len(prepared), track_id)
    return {"inserted": len(prepared)}


def submission_to_dict(submission: Submission) -> dict:
    return {
        "submission_id": submission.id,
        "track_id": submission.track_id,
        "title": submission.title,
        "description": submission.description or "",
        "keywords": submission.keywords or "",
        "status": submission.status,
        "creator_person_id": submission.creator_person_id,
        "supervisor_person_id": submission.supervisor_person_id,
        "submitted_at": to_iso(submission.submitted_at),
        "created_at": to_iso(submission.created_at),
    }
