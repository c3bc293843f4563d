# app/models.py
from __future__ import annotations
from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin

from sqlalchemy import CheckConstraint, UniqueConstraint
from app.extensions import db


# Event instance lifecycle (derived from the schedule windows)
EVENT_CLOSED = "closed"
EVENT_PRE_SCORING = "pre-scoring"
EVENT_SCORING = "event_scoring"
EVENT_DONE = "done"
EVENT_STATUSES = (EVENT_CLOSED, EVENT_PRE_SCORING, EVENT_SCORING, EVENT_DONE)

# Submission lifecycle, in forward order
SUBMISSION_SUBMITTED = "submitted"
SUBMISSION_PRE_SCORING = "pre_scoring"
SUBMISSION_PRE_SCORED = "pre_scored"
SUBMISSION_EVENT_SCORING = "event_scoring"
SUBMISSION_DONE = "done"
SUBMISSION_STATUSES = (
    SUBMISSION_SUBMITTED,
    SUBMISSION_PRE_SCORING,
    SUBMISSION_PRE_SCORED,
    SUBMISSION_EVENT_SCORING,
    SUBMISSION_DONE,
)

SHEET_DRAFT = "draft"
SHEET_SUBMITTED = "submitted"

ROLE_JUDGE = "JUDGE"
ROLE_STUDENT = "STUDENT"


# =================
# Person (auth/roles)
# =================
class Person(UserMixin, db.Model):
    __tablename__ = "people"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True)
    display_name = db.Column(db.String(200), nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="public")  # public|student|judge|admin
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    event_roles = db.relationship(
        "PersonEventRole",
        back_populates="person",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw)


# ==============
# EventInstance
# ==============
class EventInstance(db.Model):
    __tablename__ = "event_instances"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    location = db.Column(db.String(255))
    timezone = db.Column(db.String(64))

    start_at = db.Column(db.DateTime, nullable=False)
    end_at = db.Column(db.DateTime, nullable=False)
    pre_scoring_start_at = db.Column(db.DateTime, nullable=True)
    pre_scoring_end_at = db.Column(db.DateTime, nullable=True)

    # derived on every sync pass; never trusted as input
    status = db.Column(db.String(20), nullable=False, default=EVENT_CLOSED)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    tracks = db.relationship(
        "Track",
        back_populates="event_instance",
        order_by="Track.display_order.asc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========
# Track
# =========
class Track(db.Model):
    __tablename__ = "tracks"

    id = db.Column(db.Integer, primary_key=True)
    event_instance_id = db.Column(
        db.Integer,
        db.ForeignKey("event_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    submission_open_at = db.Column(db.DateTime)
    submission_close_at = db.Column(db.DateTime)
    scoring_open_at = db.Column(db.DateTime)
    scoring_close_at = db.Column(db.DateTime)
    display_order = db.Column(db.Integer, nullable=False, default=1)

    event_instance = db.relationship("EventInstance", back_populates="tracks")
    submissions = db.relationship(
        "Submission",
        back_populates="track",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    rubric_links = db.relationship(
        "TrackRubric",
        back_populates="track",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    facets = db.relationship(
        "TrackFacet",
        back_populates="track",
        order_by="TrackFacet.display_order.asc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# ============
# Submission
# ============
class Submission(db.Model):
    __tablename__ = "submissions"

    id = db.Column(db.Integer, primary_key=True)
    track_id = db.Column(
        db.Integer, db.ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    keywords = db.Column(db.String(300))
    creator_person_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True
    )
    supervisor_person_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status = db.Column(db.String(20), nullable=False, default=SUBMISSION_SUBMITTED, index=True)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    track = db.relationship("Track", back_populates="submissions")
    creator = db.relationship("Person", foreign_keys=[creator_person_id])
    supervisor = db.relationship("Person", foreign_keys=[supervisor_person_id])
    facet_values = db.relationship(
        "SubmissionFacetValue",
        back_populates="submission",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    score_sheets = db.relationship(
        "ScoreSheet",
        back_populates="submission",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========================
# Rubric / Criterion / TrackRubric
# =========================
class Rubric(db.Model):
    __tablename__ = "rubrics"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    version = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # computed from the criteria at save time
    max_total_points = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    criteria = db.relationship(
        "Criterion",
        back_populates="rubric",
        order_by="Criterion.display_order.asc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    track_links = db.relationship(
        "TrackRubric",
        back_populates="rubric",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Criterion(db.Model):
    __tablename__ = "rubric_criteria"

    id = db.Column(db.Integer, primary_key=True)
    rubric_id = db.Column(
        db.Integer, db.ForeignKey("rubrics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(40), nullable=False, default="abstract")
    answer_type = db.Column(db.String(20), nullable=False, default="numeric_scale")
    answer_config = db.Column(db.JSON, nullable=True)
    weight = db.Column(db.Float, nullable=False, default=1.0)
    score_min = db.Column(db.Float, nullable=False, default=0.0)
    score_max = db.Column(db.Float, nullable=False, default=5.0)
    display_order = db.Column(db.Integer, nullable=False, default=1)

    rubric = db.relationship("Rubric", back_populates="criteria")

    __table_args__ = (
        CheckConstraint("score_min <= score_max", name="ck_criterion_score_range"),
    )


class TrackRubric(db.Model):
    __tablename__ = "track_rubrics"

    id = db.Column(db.Integer, primary_key=True)
    track_id = db.Column(
        db.Integer, db.ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rubric_id = db.Column(
        db.Integer, db.ForeignKey("rubrics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    track = db.relationship("Track", back_populates="rubric_links")
    rubric = db.relationship("Rubric", back_populates="track_links")

    __table_args__ = (
        UniqueConstraint("track_id", "rubric_id", name="uq_track_rubric"),
    )


# =========================
# Facets
# =========================
class Facet(db.Model):
    __tablename__ = "facets"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    value_kind = db.Column(db.String(20), nullable=False, default="option")  # text|number|date|option

    options = db.relationship(
        "FacetOption",
        back_populates="facet",
        order_by="FacetOption.sort_order.asc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FacetOption(db.Model):
    __tablename__ = "facet_options"

    id = db.Column(db.Integer, primary_key=True)
    facet_id = db.Column(
        db.Integer, db.ForeignKey("facets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value = db.Column(db.String(200), nullable=False)
    label = db.Column(db.String(200), nullable=True)
    # e.g. a Program option points at its College option
    parent_option_id = db.Column(
        db.Integer, db.ForeignKey("facet_options.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    facet = db.relationship("Facet", back_populates="options")
    parent = db.relationship("FacetOption", remote_side=[id])


class TrackFacet(db.Model):
    __tablename__ = "track_facets"

    id = db.Column(db.Integer, primary_key=True)
    track_id = db.Column(
        db.Integer, db.ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    facet_id = db.Column(
        db.Integer, db.ForeignKey("facets.id", ondelete="CASCADE"), nullable=False
    )
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=1)
    depends_on_facet_id = db.Column(
        db.Integer, db.ForeignKey("facets.id", ondelete="SET NULL"), nullable=True
    )

    track = db.relationship("Track", back_populates="facets")
    facet = db.relationship("Facet", foreign_keys=[facet_id])

    __table_args__ = (
        UniqueConstraint("track_id", "facet_id", name="uq_track_facet"),
    )


class FacetValueMixin:
    """Shared columns for a facet assignment: an option reference or a raw typed value."""

    facet_option_id = db.Column(db.Integer, nullable=True)
    value_text = db.Column(db.String(300), nullable=True)
    value_number = db.Column(db.Float, nullable=True)
    value_date = db.Column(db.Date, nullable=True)


class SubmissionFacetValue(FacetValueMixin, db.Model):
    __tablename__ = "submission_facet_values"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer, db.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    facet_id = db.Column(
        db.Integer, db.ForeignKey("facets.id", ondelete="CASCADE"), nullable=False, index=True
    )

    submission = db.relationship("Submission", back_populates="facet_values")


# =========================
# PersonEventRole (person ↔ event instance, with facet profile)
# =========================
class PersonEventRole(db.Model):
    __tablename__ = "person_event_roles"

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_instance_id = db.Column(
        db.Integer, db.ForeignKey("event_instances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_code = db.Column(db.String(20), nullable=False, default=ROLE_JUDGE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    person = db.relationship("Person", back_populates="event_roles")
    facet_values = db.relationship(
        "PersonEventRoleFacetValue",
        back_populates="person_event_role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("person_id", "event_instance_id", "role_code", name="uq_person_event_role"),
    )


class PersonEventRoleFacetValue(FacetValueMixin, db.Model):
    __tablename__ = "person_event_role_facet_values"

    id = db.Column(db.Integer, primary_key=True)
    person_event_role_id = db.Column(
        db.Integer,
        db.ForeignKey("person_event_roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    facet_id = db.Column(
        db.Integer, db.ForeignKey("facets.id", ondelete="CASCADE"), nullable=False, index=True
    )

    person_event_role = db.relationship("PersonEventRole", back_populates="facet_values")


# =========================
# Scoring
# =========================
class ScoreSheet(db.Model):
    __tablename__ = "score_sheets"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer, db.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    judge_person_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rubric_id = db.Column(
        db.Integer, db.ForeignKey("rubrics.id", ondelete="SET NULL"), nullable=True
    )
    status = db.Column(db.String(20), nullable=False, default=SHEET_DRAFT)  # draft|submitted
    overall_comment = db.Column(db.Text)
    submitted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    submission = db.relationship("Submission", back_populates="score_sheets")
    items = db.relationship(
        "ScoreItem",
        back_populates="score_sheet",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("submission_id", "judge_person_id", name="uq_sheet_submission_judge"),
    )


class ScoreItem(db.Model):
    __tablename__ = "score_items"

    id = db.Column(db.Integer, primary_key=True)
    score_sheet_id = db.Column(
        db.Integer, db.ForeignKey("score_sheets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion_id = db.Column(
        db.Integer, db.ForeignKey("rubric_criteria.id", ondelete="CASCADE"), nullable=False
    )
    # judge answer as given; score_value is the weighted points derived from it
    raw_value = db.Column(db.JSON, nullable=True)
    score_value = db.Column(db.Float, nullable=False, default=0.0)
    comment = db.Column(db.Text)

    score_sheet = db.relationship("ScoreSheet", back_populates="items")
    criterion = db.relationship("Criterion")


class JudgeAssignment(db.Model):
    __tablename__ = "judge_assignments"

    id = db.Column(db.Integer, primary_key=True)
    track_id = db.Column(
        db.Integer, db.ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    person_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True
    )
    submission_id = db.Column(
        db.Integer, db.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("track_id", "person_id", "submission_id", name="uq_judge_assignment"),
    )
