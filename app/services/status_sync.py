# app/services/status_sync.py
"""Schedule-driven status synchronisation.

One pass:
  1. derive every event instance's status from its windows,
  2. write the instances whose stored status differs (one UPDATE per target),
  3. cascade submissions by track, keyed on the instance status *as stored
     when the pass started*; a phase entered in this pass cascades on the next.

Submission writes are conditional on the current status so a stale pass can
never move a row backwards.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import (
    EVENT_CLOSED,
    EVENT_DONE,
    EVENT_PRE_SCORING,
    EVENT_SCORING,
    EVENT_STATUSES,
    SHEET_SUBMITTED,
    SUBMISSION_DONE,
    SUBMISSION_EVENT_SCORING,
    SUBMISSION_PRE_SCORED,
    SUBMISSION_PRE_SCORING,
    SUBMISSION_SUBMITTED,
    EventInstance,
    ScoreSheet,
    Submission,
    Track,
)
from app.utils.time import to_naive_utc, utcnow

log = logging.getLogger(__name__)

MIN_DISTINCT_JUDGES = 3

PRE_SCORING_FROM = (SUBMISSION_SUBMITTED, SUBMISSION_PRE_SCORING, SUBMISSION_PRE_SCORED)
EVENT_SCORING_FROM = (
    SUBMISSION_SUBMITTED,
    SUBMISSION_PRE_SCORING,
    SUBMISSION_PRE_SCORED,
    SUBMISSION_EVENT_SCORING,
)


@dataclass
class SyncReport:
    """Rows written by one pass, keyed by target status."""

    event_instances: dict = field(default_factory=dict)
    submissions: dict = field(default_factory=dict)

    @property
    def total_writes(self) -> int:
        return sum(self.event_instances.values()) + sum(self.submissions.values())

    def to_dict(self) -> dict:
        return {
            "event_instances": dict(self.event_instances),
            "submissions": dict(self.submissions),
            "total_writes": self.total_writes,
        }


def min_distinct_judges() -> int:
    try:
        return int(current_app.config.get("MIN_DISTINCT_JUDGES", MIN_DISTINCT_JUDGES))
    except RuntimeError:
        # no app context
        return MIN_DISTINCT_JUDGES


def _attr(obj, key):
    return obj.get(key) if isinstance(obj, dict) else getattr(obj, key, None)


def resolve_event_instance_status(instance, now: datetime) -> str:
    """Target status for ``now``; done > event_scoring > pre-scoring > closed."""
    now = to_naive_utc(now)
    start_at = to_naive_utc(_attr(instance, "start_at"))
    end_at = to_naive_utc(_attr(instance, "end_at"))
    pre_start = to_naive_utc(_attr(instance, "pre_scoring_start_at"))
    pre_end = to_naive_utc(_attr(instance, "pre_scoring_end_at"))

    if end_at and now >= end_at:
        return EVENT_DONE
    if start_at and now >= start_at:
        return EVENT_SCORING
    if pre_start and pre_end and pre_start <= now < pre_end:
        return EVENT_PRE_SCORING
    return EVENT_CLOSED


def group_event_instance_ids_by_target_status(instances, now: datetime) -> dict:
    grouped = {status: [] for status in EVENT_STATUSES}
    for instance in instances or []:
        target = resolve_event_instance_status(instance, now)
        if _attr(instance, "status") != target:
            grouped[target].append(_attr(instance, "id"))
    return grouped


def build_submission_track_update_groups(instances, track_ids_by_instance: dict) -> dict:
    """Map each instance's tracks to the submission transition its status drives."""
    groups = {
        SUBMISSION_PRE_SCORING: [],
        SUBMISSION_PRE_SCORED: [],
        SUBMISSION_EVENT_SCORING: [],
        SUBMISSION_DONE: [],
    }
    by_status = {
        EVENT_PRE_SCORING: SUBMISSION_PRE_SCORING,
        EVENT_CLOSED: SUBMISSION_PRE_SCORED,
        EVENT_SCORING: SUBMISSION_EVENT_SCORING,
        EVENT_DONE: SUBMISSION_DONE,
    }
    for instance in instances or []:
        key = by_status.get(_attr(instance, "status"))
        if key is None:
            continue
        for track_id in track_ids_by_instance.get(_attr(instance, "id")) or []:
            if track_id not in groups[key]:
                groups[key].append(track_id)
    return groups


def get_submission_ids_meeting_score_threshold(sheet_rows, min_scores: int = MIN_DISTINCT_JUDGES) -> set:
    """Submission ids with at least ``min_scores`` distinct judges across the given sheet rows."""
    judges_by_submission: dict = {}
    for row in sheet_rows or []:
        submission_id = _attr(row, "submission_id")
        judge_id = _attr(row, "judge_person_id")
        if not submission_id or not judge_id:
            continue
        judges_by_submission.setdefault(submission_id, set()).add(judge_id)
    return {sid for sid, judges in judges_by_submission.items() if len(judges) >= min_scores}


def submitted_sheet_rows(submission_ids) -> list:
    if not submission_ids:
        return []
    return (
        db.session.query(ScoreSheet.submission_id, ScoreSheet.judge_person_id)
        .filter(
            ScoreSheet.submission_id.in_(list(submission_ids)),
            ScoreSheet.status == SHEET_SUBMITTED,
        )
        .all()
    )


def advance_submissions(submission_ids, from_status: str, to_status: str) -> int:
    """Conditional move of specific submissions; rows no longer at ``from_status`` are untouched."""
    if not submission_ids:
        return 0
    return (
        Submission.query
        .filter(Submission.id.in_(list(submission_ids)), Submission.status == from_status)
        .update({Submission.status: to_status}, synchronize_session=False)
    )


def _move_tracks(track_ids, from_statuses, to_status: str) -> int:
    moving = [s for s in from_statuses if s != to_status]
    if not track_ids or not moving:
        return 0
    return (
        Submission.query
        .filter(Submission.track_id.in_(track_ids), Submission.status.in_(moving))
        .update({Submission.status: to_status}, synchronize_session=False)
    )


def _move_tracks_on_threshold(track_ids, from_status: str, to_status: str, min_scores: int) -> int:
    if not track_ids:
        return 0
    candidate_ids = [
        row.id
        for row in db.session.query(Submission.id)
        .filter(Submission.track_id.in_(track_ids), Submission.status == from_status)
        .all()
    ]
    passing = get_submission_ids_meeting_score_threshold(submitted_sheet_rows(candidate_ids), min_scores)
    return advance_submissions(passing, from_status, to_status)


def sync_schedule(now: datetime | None = None) -> SyncReport:
    """Run one synchronisation pass and commit it. Store errors roll back and propagate."""
    now = to_naive_utc(now) if now else utcnow()
    report = SyncReport()
    min_scores = min_distinct_judges()

    try:
        instances = [
            {
                "id": row.id,
                "status": row.status,
                "start_at": row.start_at,
                "end_at": row.end_at,
                "pre_scoring_start_at": row.pre_scoring_start_at,
                "pre_scoring_end_at": row.pre_scoring_end_at,
            }
            for row in db.session.query(
                EventInstance.id,
                EventInstance.status,
                EventInstance.start_at,
                EventInstance.end_at,
                EventInstance.pre_scoring_start_at,
                EventInstance.pre_scoring_end_at,
            ).all()
        ]
        if not instances:
            log.debug("status sync: no event instances")
            return report

        for status, ids in group_event_instance_ids_by_target_status(instances, now).items():
            if not ids:
                continue
            count = (
                EventInstance.query
                .filter(EventInstance.id.in_(ids))
                .update({EventInstance.status: status}, synchronize_session=False)
            )
            report.event_instances[status] = count
            log.info("status sync: %d event instance(s) -> %s", count, status)

        track_ids_by_instance: dict = {}
        for track_id, instance_id in db.session.query(Track.id, Track.event_instance_id).all():
            track_ids_by_instance.setdefault(instance_id, []).append(track_id)

        groups = build_submission_track_update_groups(instances, track_ids_by_instance)
        moves = {
            SUBMISSION_PRE_SCORING: _move_tracks(
                groups[SUBMISSION_PRE_SCORING], PRE_SCORING_FROM, SUBMISSION_PRE_SCORING
            ),
            SUBMISSION_PRE_SCORED: _move_tracks_on_threshold(
                groups[SUBMISSION_PRE_SCORED], SUBMISSION_PRE_SCORING, SUBMISSION_PRE_SCORED, min_scores
            ),
            SUBMISSION_EVENT_SCORING: _move_tracks(
                groups[SUBMISSION_EVENT_SCORING], EVENT_SCORING_FROM, SUBMISSION_EVENT_SCORING
            ),
            SUBMISSION_DONE: _move_tracks_on_threshold(
                groups[SUBMISSION_DONE], SUBMISSION_EVENT_SCORING, SUBMISSION_DONE, min_scores
            ),
        }
        for status, count in moves.items():
            if count:
                report.submissions[status] = count
                log.info("status sync: %d submission(s) -> %s", count, status)

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("status sync pass aborted")
        raise

    return report
