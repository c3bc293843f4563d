#!/usr/bin/env python3
"""
Seed the database with a demo judging event.

Usage (from project root):
  python scripts/seed_db.py             # add/merge demo data
  python scripts/seed_db.py --fresh     # DROP & CREATE tables, then seed
  python scripts/seed_db.py --skip-demo # only ensure the admin/judge logins

Idempotent where possible: rows are looked up by their natural keys
(username, facet code, event name, rubric name) before inserting.
"""

from __future__ import annotations

import os
import sys
from datetime import timedelta

# Ensure project root (where 'app/' lives) is importable
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app import create_app
from app.extensions import db
from app.models import (
    EventInstance,
    Facet,
    FacetOption,
    Person,
    Rubric,
    Submission,
    Track,
    TrackFacet,
)
from app.services.rubrics import create_rubric_for_track
from app.services.submissions import create_submission
from app.utils.time import utcnow

# ----------------------------- helpers -----------------------------

def get_or_create_person(username: str, role: str, password: str, email: str | None = None) -> Person:
    p = Person.query.filter_by(username=username).first()
    if not p:
        p = Person(username=username, role=role, email=email, display_name=username.title())
        p.set_password(password)
        db.session.add(p)
        db.session.flush()
    return p

def get_or_create_facet(code: str, name: str, value_kind: str = "option") -> Facet:
    f = Facet.query.filter_by(code=code).first()
    if not f:
        f = Facet(code=code, name=name, value_kind=value_kind)
        db.session.add(f)
        db.session.flush()
    return f

def get_or_create_option(facet: Facet, value: str, parent: FacetOption | None = None, order: int = 0) -> FacetOption:
    o = FacetOption.query.filter_by(facet_id=facet.id, value=value).first()
    if not o:
        o = FacetOption(
            facet_id=facet.id,
            value=value,
            label=value,
            parent_option_id=parent.id if parent else None,
            sort_order=order,
        )
        db.session.add(o)
        db.session.flush()
    return o

def get_or_create_event(name: str) -> EventInstance:
    e = EventInstance.query.filter(db.func.lower(EventInstance.name) == name.lower()).first()
    if not e:
        now = utcnow()
        e = EventInstance(
            name=name,
            location="Student Union Ballroom",
            timezone="America/Chicago",
            pre_scoring_start_at=now - timedelta(days=1),
            pre_scoring_end_at=now + timedelta(days=6),
            start_at=now + timedelta(days=7),
            end_at=now + timedelta(days=7, hours=8),
        )
        db.session.add(e)
        db.session.flush()
    return e

def get_or_create_track(event: EventInstance, name: str, order: int) -> Track:
    t = Track.query.filter_by(event_instance_id=event.id, name=name).first()
    if not t:
        t = Track(event_instance_id=event.id, name=name, display_order=order)
        db.session.add(t)
        db.session.flush()
    return t

def attach_facet(track: Track, facet: Facet, order: int, required: bool = False, depends_on: Facet | None = None):
    if TrackFacet.query.filter_by(track_id=track.id, facet_id=facet.id).first():
        return
    db.session.add(TrackFacet(
        track_id=track.id,
        facet_id=facet.id,
        display_order=order,
        is_required=required,
        depends_on_facet_id=depends_on.id if depends_on else None,
    ))

DEMO_CRITERIA = [
    {"name": "Clear problem statement", "category": "abstract", "answer_type": "true_false", "weight": 1},
    {"name": "Methodology", "category": "methodology", "answer_type": "numeric_scale",
     "weight": 2, "score_min": 0, "score_max": 5},
    {"name": "Results quality", "category": "results", "answer_type": "dropdown", "weight": 1,
     "answer_config": {"options": [
         {"label": "Weak", "points": 1}, {"label": "Solid", "points": 3}, {"label": "Excellent", "points": 5},
     ]}},
    {"name": "Poster / slides", "category": "presentation", "answer_type": "numeric_scale",
     "weight": 1, "score_min": 0, "score_max": 5},
]

# ----------------------------- main seeding -----------------------------

def seed(fresh: bool = False, skip_demo: bool = False):
    app = create_app()
    with app.app_context():
        if fresh:
            ans = input("⚠️  This will DROP & CREATE all tables. Continue? (y/N): ").strip().lower()
            if ans != "y":
                print("Cancelled.")
                return
            print("Dropping tables...")
            db.drop_all()
            print("Creating tables...")
            db.create_all()

        print("Seeding logins...")
        get_or_create_person("admin", "admin", "change-me-now")
        get_or_create_person("judge", "judge", "judge-pass", email="judge@example.edu")
        db.session.commit()

        if not skip_demo:
            print("Seeding facets...")
            college = get_or_create_facet("COLLEGE", "College")
            program = get_or_create_facet("PROGRAM", "Program")
            level = get_or_create_facet("LEVEL", "Level")
            get_or_create_facet("COHORT_YEAR", "Cohort year", value_kind="number")

            eng = get_or_create_option(college, "Engineering", order=1)
            sci = get_or_create_option(college, "Sciences", order=2)
            get_or_create_option(program, "Computer Science", parent=eng, order=1)
            get_or_create_option(program, "Mechanical Engineering", parent=eng, order=2)
            get_or_create_option(program, "Biology", parent=sci, order=3)
            get_or_create_option(program, "Chemistry", parent=sci, order=4)
            get_or_create_option(level, "Undergraduate", order=1)
            get_or_create_option(level, "Graduate", order=2)

            print("Seeding event and tracks...")
            event = get_or_create_event("Research Showcase")
            posters = get_or_create_track(event, "Posters", 1)
            talks = get_or_create_track(event, "Oral Presentations", 2)
            for track in (posters, talks):
                attach_facet(track, college, 1, required=True)
                attach_facet(track, program, 2, required=True, depends_on=college)
                attach_facet(track, level, 3)
            db.session.commit()

            print("Seeding rubrics...")
            for track in (posters, talks):
                if not track.rubric_links:
                    create_rubric_for_track(track.id, f"{track.name} rubric", DEMO_CRITERIA)

            print("Seeding submissions...")
            if not Submission.query.filter_by(track_id=posters.id).count():
                cs = FacetOption.query.filter_by(value="Computer Science").first()
                bio = FacetOption.query.filter_by(value="Biology").first()
                create_submission(
                    posters.id, "Edge inference for crop monitoring", "ana@example.edu",
                    supervisor_email="prof.lee@example.edu",
                    facet_values={college.id: {"facet_option_id": eng.id}, program.id: {"facet_option_id": cs.id}},
                )
                create_submission(
                    posters.id, "Soil microbiome under drought", "sam@example.edu",
                    facet_values={college.id: {"facet_option_id": sci.id}, program.id: {"facet_option_id": bio.id}},
                )

        db.session.commit()
        print("\n✅ Seed complete!")
        print_counts()

def print_counts():
    print("Counts:")
    print(f"  People:      {Person.query.count()}")
    print(f"  Events:      {EventInstance.query.count()}")
    print(f"  Tracks:      {Track.query.count()}")
    print(f"  Facets:      {Facet.query.count()}")
    print(f"  Rubrics:     {Rubric.query.count()}")
    print(f"  Submissions: {Submission.query.count()}")

# ----------------------------- entrypoint -----------------------------

if __name__ == "__main__":
    import argparse
    p = argparse.ArgumentParser(description="Seed demo data.")
    p.add_argument("--fresh", action="store_true", help="Drop & recreate tables before seeding.")
    p.add_argument("--skip-demo", action="store_true", help="Skip demo data (logins are still ensured).")
    args = p.parse_args()
    seed(fresh=args.fresh, skip_demo=args.skip_demo)
