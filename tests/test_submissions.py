from datetime import date

import pytest

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models import Person, PersonEventRole, Submission, SubmissionFacetValue
from app.services.submissions import create_submission, create_submissions, normalize_submission_status


@pytest.mark.parametrize("raw, expected", [
    ("Pre-Scoring", "pre_scoring"),
    ("pre scored", "pre_scored"),
    ("prescored", "pre_scored"),
    ("EventScoring", "event_scoring"),
    ("done", "done"),
    ("archived", "submitted"),
    (None, "submitted"),
])
def test_normalize_submission_status(raw, expected):
    assert normalize_submission_status(raw) == expected


@pytest.fixture
def intake(make):
    track = make.track(make.event("pre-scoring"))
    level = make.facet("LEVEL", "Level", options=["Undergraduate", "Graduate"])
    cohort = make.facet("COHORT", "Cohort", value_kind="number")
    defended = make.facet("DEFENDED", "Defended on", value_kind="date")
    make.track_facet(track, level, required=True, order=1)
    make.track_facet(track, cohort, order=2)
    make.track_facet(track, defended, order=3)
    return track, level, cohort, defended


def test_create_submission_with_facets(make, intake):
    track, level, cohort, defended = intake
    grad = make.option(level, "Graduate")

    created = create_submission(
        track.id,
        "  Soil microbes ",
        "sam@example.edu",
        supervisor_email="prof@example.edu",
        facet_values={
            str(level.id): {"facet_option_id": grad.id},
            cohort.id: {"value_number": "2026"},
            defended.id: {"value_date": "2026-04-30"},
        },
    )

    assert created["title"] == "Soil microbes"
    assert created["status"] == "submitted"
    sub = db.session.get(Submission, created["submission_id"])
    creator = db.session.get(Person, sub.creator_person_id)
    assert creator.role == "student"
    assert PersonEventRole.query.filter_by(person_id=creator.id, role_code="STUDENT").count() == 1
    assert db.session.get(Person, sub.supervisor_person_id).role == "public"

    values = {v.facet_id: v for v in SubmissionFacetValue.query.filter_by(submission_id=sub.id)}
    assert values[level.id].facet_option_id == grad.id
    assert values[level.id].value_text == "Graduate"
    assert values[cohort.id].value_number == 2026
    assert values[defended.id].value_date == date(2026, 4, 30)


def test_required_facet_enforced(intake):
    track, *_ = intake
    with pytest.raises(ValidationError) as excinfo:
        create_submission(track.id, "No level", "sam@example.edu")
    assert excinfo.value.extra["facet_id"] == intake[1].id
    assert Submission.query.count() == 0


def test_option_must_belong_to_facet(make, intake):
    track, level, cohort, _ = intake
    other = make.facet("OTHER", options=["Stray"])
    with pytest.raises(ValidationError):
        create_submission(
            track.id, "T", "sam@example.edu",
            facet_values={level.id: {"facet_option_id": make.option(other, "Stray").id}},
        )


def test_bad_typed_values(make, intake):
    track, level, cohort, defended = intake
    ug = make.option(level, "Undergraduate")
    with pytest.raises(ValidationError):
        create_submission(track.id, "T", "sam@example.edu",
                          facet_values={level.id: {"facet_option_id": ug.id}, cohort.id: {"value_number": "lots"}})
    with pytest.raises(ValidationError):
        create_submission(track.id, "T", "sam@example.edu",
                          facet_values={level.id: {"facet_option_id": ug.id}, defended.id: {"value_date": "soon"}})


def test_existing_people_are_reused(make):
    track = make.track(make.event("pre-scoring"))
    author = make.person(role="student", email="kim@example.edu")

    created = create_submission(track.id, "Paper", "KIM@example.edu", status="Pre-Scoring")

    assert created["creator_person_id"] == author.id
    assert created["status"] == "pre_scoring"
    assert PersonEventRole.query.count() == 0


def test_unknown_track_and_missing_fields(app, make):
    with pytest.raises(NotFoundError):
        create_submission(31337, "T", "a@example.edu")
    track = make.track(make.event("pre-scoring"))
    with pytest.raises(ValidationError):
        create_submission(track.id, " ", "a@example.edu")
    with pytest.raises(ValidationError):
        create_submission(track.id, "T", "")


def test_batch_checks_every_row_first(make):
    track = make.track(make.event("pre-scoring"))
    rows = [
        {"title": "One", "creator_email": "one@example.edu"},
        {"title": "Two"},
    ]
    with pytest.raises(ValidationError):
        create_submissions(track.id, rows)
    assert Submission.query.count() == 0

    rows[1]["creator_email"] = "two@example.edu"
    assert create_submissions(track.id, rows) == {"inserted": 2}
    assert [s.title for s in Submission.query.order_by(Submission.id)] == ["One", "Two"]


def test_batch_facet_failure_writes_nothing(make, intake):
    track, level, *_ = intake
    grad = make.option(level, "Graduate")
    rows = [
        {"title": "One", "creator_email": "one@example.edu", "facet_values": {level.id: {"facet_option_id": grad.id}}},
        {"title": "Two", "creator_email": "two@example.edu"},
    ]

    with pytest.raises(ValidationError) as excinfo:
        create_submissions(track.id, rows)

    assert excinfo.value.extra == {"row": 2, "facet_id": level.id}
    assert Submission.query.count() == 0
    assert Person.query.filter_by(email="one@example.edu").count() == 0
