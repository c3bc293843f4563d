# app/services/score_sheets.py
from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.errors import ConflictOfInterestError, MissingResponsesError, NotFoundError, ValidationError
from app.extensions import db
from app.models import (
    SHEET_SUBMITTED,
    SUBMISSION_DONE,
    SUBMISSION_EVENT_SCORING,
    SUBMISSION_PRE_SCORED,
    SUBMISSION_PRE_SCORING,
    Criterion,
    JudgeAssignment,
    Rubric,
    ScoreItem,
    ScoreSheet,
    Submission,
    TrackRubric,
)
from app.services import scoring
from app.services.status_sync import (
    advance_submissions,
    get_submission_ids_meeting_score_threshold,
    min_distinct_judges,
    submitted_sheet_rows,
)
from app.utils.time import utcnow

log = logging.getLogger(__name__)

POLICY_CLAMP = "clamp"
POLICY_REJECT = "reject"
POLICY_PERMISSIVE = "permissive"


def numeric_policy() -> str:
    policy = (current_app.config.get("NUMERIC_SCORE_POLICY") or POLICY_CLAMP).lower()
    return policy if policy in (POLICY_CLAMP, POLICY_REJECT, POLICY_PERMISSIVE) else POLICY_CLAMP


def check_numeric_ranges(criteria, responses) -> bool:
    """Applies the configured numeric policy; returns whether scores should be clamped."""
    policy = numeric_policy()
    if policy == POLICY_REJECT:
        out_of_range = scoring.find_out_of_range(criteria, responses)
        if out_of_range:
            raise ValidationError("Some answers are outside the allowed range.", criterion_ids=out_of_range)
    return policy == POLICY_CLAMP


def preview_score(criteria, responses) -> dict:
    """Live total for an in-progress form; same rules as a submit."""
    criteria = [scoring.normalize_criterion(c) for c in criteria or []]
    clamp = check_numeric_ranges(criteria, responses)
    ok, missing = scoring.validate_responses(criteria, responses)
    return {
        "total": scoring.compute_score(criteria, responses, clamp=clamp),
        "max_total": scoring.compute_rubric_max_points(criteria),
        "complete": ok,
        "missing_ids": missing,
    }


def _get_submission(submission_id: int) -> Submission:
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError(f"Submission {submission_id} not found.")
    return submission


def assert_can_score(submission: Submission, person_id: int) -> None:
    if submission.supervisor_person_id and submission.supervisor_person_id == person_id:
        raise ConflictOfInterestError("Conflict of interest: supervisors cannot score their own submissions.")


def _rubric_criteria(rubric_id: int) -> list:
    rows = (
        Criterion.query
        .filter(Criterion.rubric_id == rubric_id)
        .order_by(Criterion.display_order.asc(), Criterion.id.asc())
        .all()
    )
    return [scoring.normalize_criterion(row) for row in rows]


def get_scoring_context(identity, submission_id: int) -> dict:
    """Everything a scoring form needs: rubric, criteria and this judge's previous answers."""
    submission = _get_submission(submission_id)
    assert_can_score(submission, identity.person_id)

    link = scoring.resolve_track_rubric(
        TrackRubric.query.filter(TrackRubric.track_id == submission.track_id)
        .order_by(TrackRubric.id.asc())
        .all()
    )
    if link is None:
        raise ValidationError("No rubric is linked to this submission's track.")
    rubric = db.session.get(Rubric, link.rubric_id)
    criteria = _rubric_criteria(rubric.id)

    existing = {}
    sheet = ScoreSheet.query.filter_by(
        submission_id=submission.id, judge_person_id=identity.person_id
    ).first()
    if sheet is not None:
        existing = scoring.score_items_to_responses(sheet.items)

    return {
        "submission_id": submission.id,
        "submission_title": submission.title,
        "track_id": submission.track_id,
        "rubric_id": rubric.id,
        "rubric_name": rubric.name,
        "max_total_points": rubric.max_total_points,
        "criteria": criteria,
        "existing_responses": {str(k): v for k, v in existing.items()},
    }


def ensure_judge_assignment(track_id: int, person_id: int, submission_id: int) -> JudgeAssignment:
    assignment = JudgeAssignment.query.filter_by(
        track_id=track_id, person_id=person_id, submission_id=submission_id
    ).first()
    if assignment is None:
        assignment = JudgeAssignment(
            track_id=track_id, person_id=person_id, submission_id=submission_id, assigned_at=utcnow()
        )
        db.session.add(assignment)
        db.session.flush()
    return assignment


def advance_if_threshold_reached(submission_id: int) -> str | None:
    """Moves pre_scoring -> pre_scored or event_scoring -> done once enough judges have submitted."""
    passing = get_submission_ids_meeting_score_threshold(
        submitted_sheet_rows([submission_id]), min_distinct_judges()
    )
    if submission_id not in passing:
        return None
    if advance_submissions([submission_id], SUBMISSION_PRE_SCORING, SUBMISSION_PRE_SCORED):
        return SUBMISSION_PRE_SCORED
    if advance_submissions([submission_id], SUBMISSION_EVENT_SCORING, SUBMISSION_DONE):
        return SUBMISSION_DONE
    return None


def submit_score_sheet(identity, submission_id: int, rubric_id: int | None, criteria, responses, comment=None) -> dict:
    """Validate, persist and score one judge's sheet for a submission.

    ``criteria`` may be None, in which case the rubric's stored criteria are
    used. Resubmitting replaces the judge's previous items.
    """
    submission = _get_submission(submission_id)
    assert_can_score(submission, identity.person_id)

    if rubric_id is None:
        link = scoring.resolve_track_rubric(
            TrackRubric.query.filter(TrackRubric.track_id == submission.track_id)
            .order_by(TrackRubric.id.asc())
            .all()
        )
        if link is None:
            raise ValidationError("No rubric is linked to this submission's track.")
        rubric_id = link.rubric_id
    elif not TrackRubric.query.filter_by(track_id=submission.track_id, rubric_id=rubric_id).first():
        raise ValidationError("This rubric is not linked to the submission's track.")

    if criteria is None:
        criteria = _rubric_criteria(rubric_id)
    else:
        criteria = [scoring.normalize_criterion(c) for c in criteria]

    ok, missing = scoring.validate_responses(criteria, responses)
    if not ok:
        raise MissingResponsesError(missing)
    clamp = check_numeric_ranges(criteria, responses)

    try:
        ensure_judge_assignment(submission.track_id, identity.person_id, submission.id)

        sheet = ScoreSheet.query.filter_by(
            submission_id=submission.id, judge_person_id=identity.person_id
        ).first()
        if sheet is None:
            sheet = ScoreSheet(submission_id=submission.id, judge_person_id=identity.person_id)
            db.session.add(sheet)
        sheet.rubric_id = rubric_id
        sheet.status = SHEET_SUBMITTED
        sheet.overall_comment = comment or None
        sheet.submitted_at = utcnow()
        db.session.flush()

        ScoreItem.query.filter(ScoreItem.score_sheet_id == sheet.id).delete(synchronize_session=False)
        for criterion in criteria:
            response = scoring.response_for(responses, criterion["id"])
            value = scoring.response_value(response)
            db.session.add(ScoreItem(
                score_sheet_id=sheet.id,
                criterion_id=criterion["id"],
                raw_value=value,
                score_value=scoring.compute_criterion_score(criterion, value, clamp=clamp),
                comment=(response.get("comment") if isinstance(response, dict) else None) or None,
            ))
        db.session.flush()

        advanced = advance_if_threshold_reached(submission.id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    log.info(
        "score sheet %s submitted for submission %s by person %s%s",
        sheet.id, submission.id, identity.person_id,
        f" (submission -> {advanced})" if advanced else "",
    )
    return {"score_sheet_id": sheet.id, "submission_status": advanced or submission.status}
