# app/services/results.py
"""Track results: per-submission averages and standard competition rankings."""
from __future__ import annotations

import logging

from app.extensions import db
from app.models import (
    SHEET_SUBMITTED,
    Criterion,
    ScoreItem,
    ScoreSheet,
    Submission,
    SubmissionFacetValue,
)
from app.services import facets as facet_engine
from app.services.queue import load_facet_lookups
from app.services.scoring import CRITERION_CATEGORIES
from app.utils.time import to_iso

log = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"


def empty_report() -> dict:
    return {
        "submissions": [],
        "overall_rankings": [],
        "category_rankings_by_category": {},
        "categories": [],
        "filter_facets": [],
    }


def _average(values):
    if not values:
        return None
    return sum(float(v or 0) for v in values) / len(values)


def rank_rows(rows: list, score_of) -> list:
    """Standard competition ranking (1, 1, 3); rows without a score go last with rank None.

    ``score_of`` extracts the score from a row. Returns new dicts with ``rank`` and ``score``.
    """
    scored = [r for r in rows if score_of(r) is not None]
    unscored = [r for r in rows if score_of(r) is None]
    scored.sort(key=lambda r: score_of(r), reverse=True)

    ranked = []
    previous = None
    rank = 0
    for index, row in enumerate(scored):
        score = score_of(row)
        if previous is None or score != previous:
            rank = index + 1
        previous = score
        ranked.append({**row, "score": score, "rank": rank})
    ranked.extend({**row, "score": None, "rank": None} for row in unscored)
    return ranked


def build_sheet_totals(items, category_by_criterion: dict):
    totals: dict = {}
    category_totals: dict = {}
    for item in items or []:
        value = float(item.score_value or 0)
        totals[item.score_sheet_id] = totals.get(item.score_sheet_id, 0.0) + value
        category = category_by_criterion.get(item.criterion_id) or UNCATEGORIZED
        per_sheet = category_totals.setdefault(item.score_sheet_id, {})
        per_sheet[category] = per_sheet.get(category, 0.0) + value
    return totals, category_totals


def build_submission_aggregates(submissions, sheets, sheet_totals: dict, sheet_category_totals: dict) -> dict:
    aggregates = {
        s.id: {
            "submission_id": s.id,
            "title": s.title or "Untitled Submission",
            "status": s.status,
            "created_at": to_iso(s.created_at),
            "judge_ids": set(),
            "sheet_totals": [],
            "category_sheet_totals": {},
        }
        for s in submissions
    }
    for sheet in sheets or []:
        aggregate = aggregates.get(sheet.submission_id)
        if aggregate is None:
            continue
        if sheet.judge_person_id:
            aggregate["judge_ids"].add(sheet.judge_person_id)
        if sheet.id in sheet_totals:
            aggregate["sheet_totals"].append(sheet_totals[sheet.id])
        for category, value in sheet_category_totals.get(sheet.id, {}).items():
            aggregate["category_sheet_totals"].setdefault(category, []).append(value)
    return aggregates


def _result_row(aggregate: dict, tokens: dict, display: list) -> dict:
    return {
        "submission_id": aggregate["submission_id"],
        "title": aggregate["title"],
        "status": aggregate["status"],
        "created_at": aggregate["created_at"],
        "score_count": len(aggregate["judge_ids"]),
        "total_score": _average(aggregate["sheet_totals"]),
        "category_scores": {
            category: _average(values)
            for category, values in aggregate["category_sheet_totals"].items()
        },
        "facets": display,
        "facet_tokens_by_facet_id": tokens,
    }


def build_overall_rankings(rows: list) -> list:
    return [
        {
            "submission_id": r["submission_id"],
            "title": r["title"],
            "score_count": r["score_count"],
            "score": r["score"],
            "rank": r["rank"],
        }
        for r in rank_rows(rows, lambda r: r["total_score"])
    ]


def build_category_rankings(rows: list):
    categories = sorted({category for r in rows for category in r["category_scores"]})
    rankings = {}
    for category in categories:
        rankings[category] = [
            {
                "submission_id": r["submission_id"],
                "title": r["title"],
                "score": r["score"],
                "rank": r["rank"],
            }
            for r in rank_rows(rows, lambda r, c=category: r["category_scores"].get(c))
        ]
    return categories, rankings


def category_label(category: str) -> str:
    return CRITERION_CATEGORIES.get(category, category.replace("_", " ").title())


def get_track_results_report(track_id: int) -> dict:
    submissions = (
        Submission.query
        .filter(Submission.track_id == track_id)
        .order_by(Submission.created_at.asc(), Submission.id.asc())
        .all()
    )
    if not submissions:
        log.debug("results: track %s has no submissions", track_id)
        return empty_report()
    submission_ids = [s.id for s in submissions]

    sheets = ScoreSheet.query.filter(
        ScoreSheet.submission_id.in_(submission_ids),
        ScoreSheet.status == SHEET_SUBMITTED,
    ).all()
    sheet_ids = [sheet.id for sheet in sheets]
    items = ScoreItem.query.filter(ScoreItem.score_sheet_id.in_(sheet_ids)).all() if sheet_ids else []

    criterion_ids = {item.criterion_id for item in items}
    category_by_criterion = dict(
        db.session.query(Criterion.id, Criterion.category)
        .filter(Criterion.id.in_(criterion_ids))
        .all()
    ) if criterion_ids else {}

    totals, category_totals = build_sheet_totals(items, category_by_criterion)
    aggregates = build_submission_aggregates(submissions, sheets, totals, category_totals)

    facet_rows = SubmissionFacetValue.query.filter(
        SubmissionFacetValue.submission_id.in_(submission_ids)
    ).all()
    facet_by_id, option_by_id = load_facet_lookups(
        [r.facet_id for r in facet_rows], [r.facet_option_id for r in facet_rows]
    )
    tokens_by_sub, display_by_sub = facet_engine.build_facet_maps(
        facet_rows, "submission_id", facet_by_id, option_by_id
    )

    rows = [
        _result_row(aggregates[sid], tokens_by_sub.get(sid, {}), display_by_sub.get(sid, []))
        for sid in submission_ids
    ]
    categories, category_rankings = build_category_rankings(rows)

    return {
        "submissions": rows,
        "overall_rankings": build_overall_rankings(rows),
        "category_rankings_by_category": category_rankings,
        "categories": [{"code": c, "label": category_label(c)} for c in categories],
        "filter_facets": facet_engine.build_filter_facets(rows, facet_by_id),
    }


def filter_track_results(rows: list, selected_tokens: dict | None) -> list:
    """Narrow report rows by facet selection; scores are never recomputed."""
    return facet_engine.apply_filters(rows, selected_tokens)


def narrow_track_results(report: dict, selected_tokens: dict | None) -> dict:
    """Report restricted to the submissions matching ``selected_tokens``.

    Ranking tables keep the ranks and scores computed over the whole track.
    """
    filtered = filter_track_results(report["submissions"], selected_tokens)
    keep = {r["submission_id"] for r in filtered}
    return {
        **report,
        "filtered_submissions": filtered,
        "overall_rankings": [r for r in report["overall_rankings"] if r["submission_id"] in keep],
        "category_rankings_by_category": {
            category: [r for r in rows if r["submission_id"] in keep]
            for category, rows in report["category_rankings_by_category"].items()
        },
    }
