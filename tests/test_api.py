import json

from app.extensions import db
from app.models import ScoreSheet, Submission


def test_health_and_root(client):
    assert client.get("/health").get_json() == {"ok": True}
    assert client.get("/api").get_json()["service"] == "Event Judging API"


def test_login_and_me(client, make, login_as):
    judge = make.person(username="jules")
    login_as(judge)

    me = client.get("/api/auth/me").get_json()
    assert me["username"] == "jules"
    assert me["role"] == "judge"


def test_login_rejects_bad_password(client, make):
    judge = make.person(username="jules")
    resp = client.post("/api/auth/login", json={"username": judge.username, "password": "nope"})
    assert resp.status_code == 401


def test_queue_requires_login(client, make):
    event = make.event("event_scoring")
    resp = client.get(f"/api/event-instances/{event.id}/queue")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "unauthorized"}


def test_students_cannot_read_queue(client, make, login_as):
    event = make.event("event_scoring")
    login_as(make.person(role="student"))
    resp = client.get(f"/api/event-instances/{event.id}/queue")
    assert resp.status_code == 403
    assert resp.get_json()["required"] == ["judge", "admin"]


def test_queue_endpoint_applies_filters(client, make, login_as):
    college = make.facet("COLLEGE", options=["Arts", "Science"])
    arts, science = make.option(college, "Arts"), make.option(college, "Science")
    event = make.event("event_scoring")
    track = make.track(event)
    make.submission(track, status="event_scoring", options=[arts])
    sci = make.submission(track, status="event_scoring", options=[science])
    login_as(make.person())

    query = json.dumps({str(college.id): [str(science.id)]})
    body = client.get(f"/api/event-instances/{event.id}/queue", query_string={"filters": query}).get_json()

    assert len(body["submissions"]) == 2
    assert [r["submission_id"] for r in body["filtered_submissions"]] == [sci.id]

    nxt = client.get(f"/api/event-instances/{event.id}/queue/next", query_string={"filters": query}).get_json()
    assert nxt["submission"]["submission_id"] == sci.id


def test_queue_unknown_event(client, make, login_as):
    login_as(make.person())
    assert client.get("/api/event-instances/999/queue").status_code == 404


def test_score_sheet_round(client, make, login_as):
    event = make.event("event_scoring")
    track = make.track(event)
    rubric = make.rubric(track)
    tf, numeric = rubric.criteria
    sub = make.submission(track, status="event_scoring")
    judge = make.person()
    login_as(judge)

    ctx = client.get(f"/api/submissions/{sub.id}/scoring").get_json()
    assert [c["id"] for c in ctx["criteria"]] == [tf.id, numeric.id]

    incomplete = client.post(
        f"/api/submissions/{sub.id}/score-sheet",
        json={"responses": {str(tf.id): {"value": True}}},
    )
    assert incomplete.status_code == 400
    assert incomplete.get_json()["missing_ids"] == [numeric.id]

    resp = client.post(
        f"/api/submissions/{sub.id}/score-sheet",
        json={
            "rubric_id": rubric.id,
            "responses": {str(tf.id): {"value": True}, str(numeric.id): {"value": 4}},
            "overall_comment": "Great poster",
        },
    )
    assert resp.status_code == 201
    sheet = db.session.get(ScoreSheet, resp.get_json()["score_sheet_id"])
    assert sheet.judge_person_id == judge.id
    assert sheet.overall_comment == "Great poster"


def test_supervisor_gets_403_on_submit(client, make, login_as):
    track = make.track(make.event("event_scoring"))
    make.rubric(track)
    supervisor = make.person()
    sub = make.submission(track, status="event_scoring", supervisor=supervisor)
    login_as(supervisor)

    resp = client.post(f"/api/submissions/{sub.id}/score-sheet", json={"responses": {}})

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "conflict_of_interest"


def test_preview_endpoint(client, make, login_as):
    login_as(make.person())
    criteria = [
        {"id": 1, "answer_type": "true_false", "weight": 2},
        {"id": 2, "answer_type": "dropdown", "weight": 1,
         "answer_config": {"options": [{"label": "Low", "points": 1}, {"label": "High", "points": 5}]}},
    ]
    body = client.post(
        "/api/scoring/preview",
        json={"criteria": criteria, "responses": {"1": {"value": True}, "2": {"value": 5}}},
    ).get_json()
    assert body == {"total": 7, "max_total": 7, "complete": True, "missing_ids": []}

    bad = client.post("/api/scoring/preview", json={"criteria": "nope"})
    assert bad.status_code == 400


def test_rubric_endpoints_admin_only(client, make, login_as):
    track = make.track(make.event("event_scoring"))
    login_as(make.person(role="admin"))
    payload = {
        "name": "Posters",
        "criteria": [{"name": "Clarity", "category": "presentation", "answer_type": "numeric_scale",
                      "weight": 1, "score_min": 0, "score_max": 10}],
    }

    created = client.post(f"/api/tracks/{track.id}/rubrics", json=payload)
    assert created.status_code == 201

    listed = client.get(f"/api/tracks/{track.id}/rubrics").get_json()["rubrics"]
    assert listed[0]["max_total_points"] == 10

    empty = client.post(f"/api/tracks/{track.id}/rubrics", json={"name": "Empty", "criteria": []})
    assert empty.status_code == 422
    assert empty.get_json()["error"] == "inconsistent_rubric"


def test_results_endpoint(client, make, login_as):
    track = make.track(make.event("done"))
    rubric = make.rubric(track)
    tf, numeric = rubric.criteria
    judge = make.person()
    best = make.submission(track, status="done", title="Best")
    make.submission(track, status="done", title="Unscored")
    make.sheet(best, judge, items=[(tf, 2), (numeric, 8)])
    login_as(make.person(role="admin"))

    body = client.get(f"/api/tracks/{track.id}/results").get_json()

    assert [(r["title"], r["rank"]) for r in body["overall_rankings"]] == [("Best", 1), ("Unscored", None)]
    assert len(body["filtered_submissions"]) == 2
    assert {c["code"] for c in body["categories"]} == {"abstract", "methodology"}
    assert client.get("/api/tracks/4040/results").status_code == 404


def test_judge_signup_is_public(client, make):
    college = make.facet("COLLEGE", "College", options=["Arts"])
    arts = make.option(college, "Arts")
    event = make.event("pre-scoring")
    make.track(event)

    form = client.get(f"/api/event-instances/{event.id}/judges").get_json()
    assert [f["code"] for f in form["facets"]] == ["COLLEGE"]

    resp = client.post(
        f"/api/event-instances/{event.id}/judges",
        json={"email": "new@example.edu", "display_name": "New Judge",
              "selections": {str(college.id): [str(arts.id)]}},
    )
    assert resp.status_code == 201
    assert resp.get_json()["selections"] == {str(college.id): [str(arts.id)]}


def test_status_sync_endpoint(client, make, login_as):
    make.event("pre-scoring", status="closed")
    login_as(make.person(role="admin"))

    body = client.post("/api/status-sync", json={}).get_json()

    assert body["report"]["event_instances"] == {"pre-scoring": 1}
    assert client.post("/api/status-sync", json={}).get_json()["report"]["total_writes"] == 0


def test_status_sync_uses_server_clock(client, make, login_as):
    event = make.event("event_scoring")
    sub = make.submission(make.track(event), status="event_scoring")
    login_as(make.person())

    body = client.post("/api/status-sync", json={"now": "2099-01-01T00:00:00Z"}).get_json()

    assert body["report"]["total_writes"] == 0
    assert event.status == "event_scoring"
    assert sub.status == "event_scoring"


def test_only_admins_choose_submission_status(client, make, login_as):
    track = make.track(make.event("event_scoring"))
    payload = {"title": "Shortcut", "creator_email": "s@example.edu", "status": "done"}

    login_as(make.person(role="student"))
    resp = client.post(f"/api/tracks/{track.id}/submissions", json=payload)
    assert resp.status_code == 201
    assert resp.get_json()["submission"]["status"] == "submitted"

    batch = client.post(f"/api/tracks/{track.id}/submissions", json={"submissions": [payload]})
    assert batch.status_code == 201
    assert {s.status for s in Submission.query.all()} == {"submitted"}

    login_as(make.person(role="admin"))
    resp = client.post(f"/api/tracks/{track.id}/submissions", json={**payload, "title": "Imported"})
    assert resp.get_json()["submission"]["status"] == "done"
