# app/services/queue.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import or_, select

from app.models import (
    ROLE_JUDGE,
    SUBMISSION_EVENT_SCORING,
    SUBMISSION_PRE_SCORING,
    Facet,
    FacetOption,
    PersonEventRole,
    PersonEventRoleFacetValue,
    ScoreSheet,
    Submission,
    SubmissionFacetValue,
    Track,
)
from app.services import facets as facet_engine
from app.services.status_sync import sync_schedule
from app.utils.time import to_iso

log = logging.getLogger(__name__)

QUEUE_STATUSES = (SUBMISSION_PRE_SCORING, SUBMISSION_EVENT_SCORING)


@dataclass(frozen=True)
class JudgeIdentity:
    """Who is asking. Built by the REST layer from the logged-in user."""

    person_id: int
    role: str = "judge"
    email: str | None = None


@dataclass
class QueueResult:
    submissions: list = field(default_factory=list)
    filtered_submissions: list = field(default_factory=list)
    filter_facets: list = field(default_factory=list)
    default_selected_tokens: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "submissions": self.submissions,
            "filtered_submissions": self.filtered_submissions,
            "filter_facets": self.filter_facets,
            "default_selected_tokens": {str(k): v for k, v in self.default_selected_tokens.items()},
        }


def _maybe_sync() -> None:
    if current_app.config.get("SYNC_ON_READ", True):
        sync_schedule()


def load_facet_lookups(facet_ids, option_ids):
    """``(facet_by_id, option_by_id)`` for the ids actually referenced."""
    facet_ids = {fid for fid in facet_ids if fid}
    option_ids = {oid for oid in option_ids if oid}
    facet_by_id = {f.id: f for f in Facet.query.filter(Facet.id.in_(facet_ids)).all()} if facet_ids else {}
    option_by_id = (
        {o.id: o for o in FacetOption.query.filter(FacetOption.id.in_(option_ids)).all()}
        if option_ids else {}
    )
    return facet_by_id, option_by_id


def judge_facet_rows(person_id: int, event_instance_id: int) -> list:
    return (
        PersonEventRoleFacetValue.query
        .join(PersonEventRole, PersonEventRole.id == PersonEventRoleFacetValue.person_event_role_id)
        .filter(
            PersonEventRole.person_id == person_id,
            PersonEventRole.event_instance_id == event_instance_id,
            PersonEventRole.role_code == ROLE_JUDGE,
            PersonEventRole.is_active.is_(True),
        )
        .all()
    )


def _queue_row(submission: Submission, track_name: str, tokens: dict, display: list) -> dict:
    return {
        "submission_id": submission.id,
        "title": submission.title,
        "description": submission.description or "",
        "status": submission.status,
        "track_id": submission.track_id,
        "track_name": track_name,
        "supervisor_person_id": submission.supervisor_person_id,
        "created_at": to_iso(submission.created_at),
        "facets": display,
        "facet_tokens_by_facet_id": tokens,
    }


def get_eligible_queue(identity: JudgeIdentity, event_instance_id: int, selected_tokens: dict | None = None) -> QueueResult:
    """Submissions this judge may score in an event instance.

    Eligibility is status in (pre_scoring, event_scoring), not supervised by
    the judge and not already scored by them. ``selected_tokens`` only narrows
    ``filtered_submissions``; when omitted the judge's own facet profile is
    used as the selection.
    """
    _maybe_sync()

    tracks = Track.query.filter(Track.event_instance_id == event_instance_id).all()
    if not tracks:
        log.debug("queue: event instance %s has no tracks", event_instance_id)
        return QueueResult()
    track_name_by_id = {t.id: t.name or "Track" for t in tracks}

    scored_ids = select(ScoreSheet.submission_id).where(ScoreSheet.judge_person_id == identity.person_id)
    submissions = (
        Submission.query
        .filter(
            Submission.track_id.in_(list(track_name_by_id)),
            Submission.status.in_(QUEUE_STATUSES),
            or_(
                Submission.supervisor_person_id.is_(None),
                Submission.supervisor_person_id != identity.person_id,
            ),
            ~Submission.id.in_(scored_ids),
        )
        .order_by(Submission.created_at.asc(), Submission.id.asc())
        .all()
    )
    if not submissions:
        return QueueResult()

    submission_rows = SubmissionFacetValue.query.filter(
        SubmissionFacetValue.submission_id.in_([s.id for s in submissions])
    ).all()
    judge_rows = judge_facet_rows(identity.person_id, event_instance_id)

    facet_by_id, option_by_id = load_facet_lookups(
        [r.facet_id for r in submission_rows] + [r.facet_id for r in judge_rows],
        [r.facet_option_id for r in submission_rows] + [r.facet_option_id for r in judge_rows],
    )

    default_filters = facet_engine.build_selected_filters(judge_rows, option_by_id)
    default_tokens = facet_engine.selected_tokens(default_filters)

    tokens_by_sub, display_by_sub = facet_engine.build_facet_maps(
        submission_rows, "submission_id", facet_by_id, option_by_id
    )
    rows = [
        _queue_row(
            s,
            track_name_by_id.get(s.track_id, "Track"),
            tokens_by_sub.get(s.id, {}),
            display_by_sub.get(s.id, []),
        )
        for s in submissions
    ]

    selection = default_tokens if selected_tokens is None else selected_tokens
    return QueueResult(
        submissions=rows,
        filtered_submissions=facet_engine.apply_filters(rows, selection),
        filter_facets=facet_engine.build_filter_facets(rows, facet_by_id, extra_options=default_filters),
        default_selected_tokens=default_tokens,
    )


def filter_queue_submissions(rows: list, selected_tokens: dict | None) -> list:
    return facet_engine.apply_filters(rows, selected_tokens)


def pull_next(identity: JudgeIdentity, event_instance_id: int, selected_tokens: dict | None = None) -> dict | None:
    """Oldest eligible submission after filtering, or None."""
    result = get_eligible_queue(identity, event_instance_id, selected_tokens)
    if not result.filtered_submissions:
        return None
    # rows are already ordered by (created_at, id)
    return result.filtered_submissions[0]
