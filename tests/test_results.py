import pytest

from app.services.results import filter_track_results, get_track_results_report, narrow_track_results, rank_rows


OVERALL = [dict(name="Overall", category="results", answer_type="numeric_scale",
                weight=1, score_min=0, score_max=100)]
SPLIT = [
    dict(name="Abstract", category="abstract", answer_type="numeric_scale", weight=1, score_min=0, score_max=50),
    dict(name="Talk", category="presentation", answer_type="numeric_scale", weight=1, score_min=0, score_max=50),
]


def by_id(rows):
    return {row["submission_id"]: row for row in rows}


def test_rank_rows_standard_competition():
    rows = [{"id": "a", "s": 90}, {"id": "b", "s": 80}, {"id": "c", "s": None}, {"id": "d", "s": 90}]
    ranked = rank_rows(rows, lambda r: r["s"])
    assert [(r["id"], r["rank"]) for r in ranked] == [("a", 1), ("d", 1), ("b", 3), ("c", None)]


def test_empty_track(make):
    track = make.track(make.event("event_scoring"))
    report = get_track_results_report(track.id)
    assert report["submissions"] == []
    assert report["overall_rankings"] == []
    assert report["categories"] == []


def test_ties_share_rank_and_unscored_sort_last(make):
    track = make.track(make.event("done"))
    [crit] = make.rubric(track, OVERALL).criteria
    judge = make.person()
    subs = [make.submission(track, status="done", title=t) for t in ("A", "B", "C", "D")]
    for sub, value in zip(subs, (90, 80, 90)):
        make.sheet(sub, judge, items=[(crit, value)])

    report = get_track_results_report(track.id)

    ranking = [(r["title"], r["score"], r["rank"]) for r in report["overall_rankings"]]
    assert ranking == [("A", 90, 1), ("C", 90, 1), ("B", 80, 3), ("D", None, None)]


def test_total_is_mean_of_submitted_sheets(make):
    track = make.track(make.event("done"))
    [crit] = make.rubric(track, OVERALL).criteria
    sub = make.submission(track, status="done")
    make.sheet(sub, make.person(), items=[(crit, 80)])
    make.sheet(sub, make.person(), items=[(crit, 100)])
    make.sheet(sub, make.person(), status="draft", items=[(crit, 10)])
    # submitted without items: counts as a judge, not as a total
    make.sheet(sub, make.person())

    [row] = get_track_results_report(track.id)["submissions"]

    assert row["total_score"] == 90
    assert row["score_count"] == 3
    assert row["category_scores"] == {"results": 90}


def test_category_rankings(make):
    track = make.track(make.event("done"))
    abstract, talk = make.rubric(track, SPLIT).criteria
    judge = make.person()
    first = make.submission(track, status="done", title="First")
    second = make.submission(track, status="done", title="Second")
    make.sheet(first, judge, items=[(abstract, 40), (talk, 20)])
    make.sheet(second, judge, items=[(abstract, 30), (talk, 45)])

    report = get_track_results_report(track.id)

    assert report["categories"] == [
        {"code": "abstract", "label": "Abstract / Introduction"},
        {"code": "presentation", "label": "Presentation / Organization"},
    ]
    rankings = report["category_rankings_by_category"]
    assert [r["submission_id"] for r in rankings["abstract"]] == [first.id, second.id]
    assert [r["submission_id"] for r in rankings["presentation"]] == [second.id, first.id]
    assert [r["submission_id"] for r in report["overall_rankings"]] == [second.id, first.id]
    assert by_id(report["submissions"])[first.id]["total_score"] == 60


def test_filtering_keeps_scores(make):
    level = make.facet("LEVEL", "Level", options=["Undergraduate", "Graduate"])
    ug, grad = make.option(level, "Undergraduate"), make.option(level, "Graduate")
    track = make.track(make.event("done"))
    make.track_facet(track, level)
    [crit] = make.rubric(track, OVERALL).criteria
    judge = make.person()
    a = make.submission(track, status="done", options=[ug])
    b = make.submission(track, status="done", options=[grad])
    make.sheet(a, judge, items=[(crit, 70)])
    make.sheet(b, judge, items=[(crit, 75)])

    report = get_track_results_report(track.id)
    [descriptor] = report["filter_facets"]
    assert {o["label"]: o["count"] for o in descriptor["options"]} == {"Graduate": 1, "Undergraduate": 1}

    rows = filter_track_results(report["submissions"], {level.id: [str(ug.id)]})
    assert [(r["submission_id"], r["total_score"]) for r in rows] == [(a.id, 70)]
    assert filter_track_results(report["submissions"], {}) == report["submissions"]


def test_narrowing_filters_ranking_tables(make):
    college = make.facet("COLLEGE", "College", options=["Arts", "Science"])
    arts, science = make.option(college, "Arts"), make.option(college, "Science")
    track = make.track(make.event("done"))
    make.track_facet(track, college)
    abstract, talk = make.rubric(track, SPLIT).criteria
    judge = make.person()
    low = make.submission(track, status="done", options=[arts])
    high = make.submission(track, status="done", options=[science])
    make.sheet(low, judge, items=[(abstract, 10), (talk, 10)])
    make.sheet(high, judge, items=[(abstract, 40), (talk, 40)])

    report = narrow_track_results(get_track_results_report(track.id), {college.id: [str(arts.id)]})

    assert [r["submission_id"] for r in report["filtered_submissions"]] == [low.id]
    assert [(r["submission_id"], r["rank"]) for r in report["overall_rankings"]] == [(low.id, 2)]
    for rows in report["category_rankings_by_category"].values():
        assert [(r["submission_id"], r["rank"]) for r in rows] == [(low.id, 2)]
    assert len(report["submissions"]) == 2


@pytest.mark.parametrize("totals, ranks", [
    ([90, 90, 80], [1, 1, 3]),
    ([50, 60, 70], [3, 2, 1]),
    ([10, 10, 10], [1, 1, 1]),
])
def test_rank_examples(totals, ranks):
    rows = [{"i": i, "s": s} for i, s in enumerate(totals)]
    ranked = {r["i"]: r["rank"] for r in rank_rows(rows, lambda r: r["s"])}
    assert [ranked[i] for i in range(len(totals))] == ranks
