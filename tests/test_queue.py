from datetime import timedelta

from app.services.queue import get_eligible_queue, pull_next
from app.utils.time import utcnow


def ids(rows):
    return [row["submission_id"] for row in rows]


def test_queue_eligibility(make):
    event = make.event("event_scoring")
    track = make.track(event)
    judge = make.person()
    other_judge = make.person()
    rubric = make.rubric(track)

    open_sub = make.submission(track, status="event_scoring")
    make.submission(track, status="done")
    make.submission(track, status="event_scoring", supervisor=judge)
    scored = make.submission(track, status="event_scoring")
    make.sheet(scored, judge, items=[(rubric.criteria[0], True)])
    other_scored = make.submission(track, status="event_scoring")
    make.sheet(other_scored, other_judge)

    other_event = make.event("event_scoring")
    make.submission(make.track(other_event), status="event_scoring")

    result = get_eligible_queue(make.identity(judge), event.id)

    assert ids(result.submissions) == [open_sub.id, other_scored.id]
    assert ids(result.filtered_submissions) == [open_sub.id, other_scored.id]
    row = result.submissions[0]
    assert row["track_name"] == track.name
    assert row["status"] == "event_scoring"


def test_supervisor_never_sees_own_submission(make):
    event = make.event("event_scoring")
    track = make.track(event)
    supervisor = make.person()
    sub = make.submission(track, status="event_scoring", supervisor=supervisor)

    assert get_eligible_queue(make.identity(supervisor), event.id).submissions == []
    assert ids(get_eligible_queue(make.identity(make.person()), event.id).submissions) == [sub.id]


def test_queue_syncs_before_reading(make):
    event = make.event("pre-scoring")
    track = make.track(event)
    sub = make.submission(track, status="submitted")

    result = get_eligible_queue(make.identity(make.person()), event.id)

    assert ids(result.submissions) == [sub.id]
    assert result.submissions[0]["status"] == "pre_scoring"


def test_queue_without_sync_skips_unsynced(app, make):
    app.config["SYNC_ON_READ"] = False
    event = make.event("pre-scoring")
    track = make.track(event)
    make.submission(track, status="submitted")

    assert get_eligible_queue(make.identity(make.person()), event.id).submissions == []


def test_event_without_tracks(make):
    event = make.event("event_scoring")
    result = get_eligible_queue(make.identity(make.person()), event.id)
    assert result.to_dict() == {
        "submissions": [],
        "filtered_submissions": [],
        "filter_facets": [],
        "default_selected_tokens": {},
    }


def test_judge_profile_drives_default_filters(make):
    college = make.facet("COLLEGE", "College", options=["Arts", "Science", "Law"])
    arts, science, law = (make.option(college, label) for label in ("Arts", "Science", "Law"))
    event = make.event("event_scoring")
    track = make.track(event)
    make.track_facet(track, college)
    a1 = make.submission(track, status="event_scoring", options=[arts])
    make.submission(track, status="event_scoring", options=[science])
    a2 = make.submission(track, status="event_scoring", options=[arts])
    judge = make.person()
    make.judge_role(judge, event, options=[arts, law])

    result = get_eligible_queue(make.identity(judge), event.id)

    assert len(result.submissions) == 3
    assert ids(result.filtered_submissions) == [a1.id, a2.id]
    assert result.default_selected_tokens == {college.id: [str(arts.id), str(law.id)]}

    [descriptor] = result.filter_facets
    assert descriptor["code"] == "COLLEGE"
    counts = {o["label"]: o["count"] for o in descriptor["options"]}
    assert counts == {"Arts": 2, "Science": 1, "Law": 0}


def test_explicit_selection_overrides_defaults(make):
    college = make.facet("COLLEGE", options=["Arts", "Science"])
    arts, science = make.option(college, "Arts"), make.option(college, "Science")
    event = make.event("event_scoring")
    track = make.track(event)
    make.submission(track, status="event_scoring", options=[arts])
    sci = make.submission(track, status="event_scoring", options=[science])
    judge = make.person()
    make.judge_role(judge, event, options=[arts])
    identity = make.identity(judge)

    assert len(get_eligible_queue(identity, event.id, {}).filtered_submissions) == 2
    picked = get_eligible_queue(identity, event.id, {college.id: [str(science.id)]})
    assert ids(picked.filtered_submissions) == [sci.id]


def test_pull_next_takes_oldest_match(make):
    event = make.event("event_scoring")
    track = make.track(event)
    now = utcnow()
    newer = make.submission(track, status="event_scoring", created_at=now - timedelta(hours=1))
    older = make.submission(track, status="event_scoring", created_at=now - timedelta(hours=5))
    judge = make.person()

    assert pull_next(make.identity(judge), event.id)["submission_id"] == older.id

    make.sheet(older, judge)
    assert pull_next(make.identity(judge), event.id)["submission_id"] == newer.id

    make.sheet(newer, judge)
    assert pull_next(make.identity(judge), event.id) is None
