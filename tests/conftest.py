from __future__ import annotations

from datetime import timedelta

import pytest

from app import create_app
from app.extensions import db
from app.models import (
    SHEET_SUBMITTED,
    SUBMISSION_SUBMITTED,
    Criterion,
    EventInstance,
    Facet,
    FacetOption,
    Person,
    PersonEventRole,
    PersonEventRoleFacetValue,
    Rubric,
    ScoreItem,
    ScoreSheet,
    Submission,
    SubmissionFacetValue,
    Track,
    TrackFacet,
    TrackRubric,
)
from app.services.queue import JudgeIdentity
from app.utils.time import utcnow

PASSWORD = "pw-secret-123"


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Small row builders; every call flushes so ids are available."""

    def __init__(self):
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    def _save(self, row):
        db.session.add(row)
        db.session.flush()
        return row

    def person(self, role="judge", username=None, email=None):
        n = self._next()
        p = Person(
            username=username or f"{role}{n}",
            email=email or f"{role}{n}@example.edu",
            display_name=f"{role.title()} {n}",
            role=role,
        )
        p.set_password(PASSWORD)
        return self._save(p)

    def identity(self, person) -> JudgeIdentity:
        return JudgeIdentity(person_id=person.id, role=person.role, email=person.email)

    def event(self, phase="event_scoring", status=None, now=None):
        """Event whose windows put ``now`` in ``phase``; stored status defaults to the same phase."""
        now = now or utcnow()
        day = timedelta(days=1)
        windows = {
            "closed": dict(pre_scoring_start_at=now - 3 * day, pre_scoring_end_at=now - 2 * day,
                           start_at=now + 2 * day, end_at=now + 3 * day),
            "pre-scoring": dict(pre_scoring_start_at=now - day, pre_scoring_end_at=now + day,
                                start_at=now + 2 * day, end_at=now + 3 * day),
            "event_scoring": dict(pre_scoring_start_at=now - 3 * day, pre_scoring_end_at=now - 2 * day,
                                  start_at=now - day, end_at=now + day),
            "done": dict(pre_scoring_start_at=now - 5 * day, pre_scoring_end_at=now - 4 * day,
                         start_at=now - 3 * day, end_at=now - 2 * day),
        }[phase]
        return self._save(EventInstance(
            name=f"Showcase {self._next()}",
            status=status or phase,
            **windows,
        ))

    def track(self, event, name=None, order=1):
        return self._save(Track(event_instance_id=event.id, name=name or f"Track {self._next()}", display_order=order))

    def facet(self, code, name=None, options=(), value_kind="option"):
        facet = self._save(Facet(code=code, name=name or code.title(), value_kind=value_kind))
        for index, option in enumerate(options, start=1):
            if isinstance(option, tuple):
                label, parent = option
            else:
                label, parent = option, None
            self._save(FacetOption(
                facet_id=facet.id,
                value=label,
                label=label,
                parent_option_id=parent.id if parent else None,
                sort_order=index,
            ))
        db.session.refresh(facet)
        return facet

    def option(self, facet, label):
        return FacetOption.query.filter_by(facet_id=facet.id, label=label).one()

    def track_facet(self, track, facet, required=False, order=1, depends_on=None):
        return self._save(TrackFacet(
            track_id=track.id,
            facet_id=facet.id,
            is_required=required,
            display_order=order,
            depends_on_facet_id=depends_on.id if depends_on else None,
        ))

    def submission(self, track, status=SUBMISSION_SUBMITTED, supervisor=None, title=None,
                   created_at=None, options=(), raw_values=()):
        sub = self._save(Submission(
            track_id=track.id,
            title=title or f"Project {self._next()}",
            status=status,
            supervisor_person_id=supervisor.id if supervisor else None,
            created_at=created_at or utcnow(),
        ))
        for option in options:
            self._save(SubmissionFacetValue(
                submission_id=sub.id, facet_id=option.facet_id, facet_option_id=option.id
            ))
        for facet, raw in raw_values:
            self._save(SubmissionFacetValue(submission_id=sub.id, facet_id=facet.id, **raw))
        return sub

    def judge_role(self, person, event, options=()):
        role = self._save(PersonEventRole(person_id=person.id, event_instance_id=event.id, role_code="JUDGE"))
        for option in options:
            self._save(PersonEventRoleFacetValue(
                person_event_role_id=role.id,
                facet_id=option.facet_id,
                facet_option_id=option.id,
                value_text=option.label,
            ))
        return role

    def rubric(self, track, criteria=None, is_default=True, name="Rubric", version=1):
        criteria = criteria or [
            dict(name="Clear abstract", category="abstract", answer_type="true_false", weight=2),
            dict(name="Method", category="methodology", answer_type="numeric_scale",
                 weight=2, score_min=0, score_max=5),
        ]
        rubric = self._save(Rubric(name=name, version=version, max_total_points=0))
        for index, c in enumerate(criteria, start=1):
            self._save(Criterion(rubric_id=rubric.id, display_order=index, **c))
        self._save(TrackRubric(track_id=track.id, rubric_id=rubric.id, is_default=is_default))
        db.session.refresh(rubric)
        return rubric

    def sheet(self, submission, judge, status=SHEET_SUBMITTED, items=()):
        sheet = self._save(ScoreSheet(submission_id=submission.id, judge_person_id=judge.id, status=status))
        for criterion, value in items:
            self._save(ScoreItem(score_sheet_id=sheet.id, criterion_id=criterion.id,
                                 raw_value=value, score_value=value))
        return sheet


@pytest.fixture
def make(app):
    return Factory()


def login(client, person, password=PASSWORD):
    resp = client.post("/api/auth/login", json={"username": person.username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp


@pytest.fixture
def login_as(client):
    def _login(person):
        db.session.commit()
        return login(client, person)
    return _login

