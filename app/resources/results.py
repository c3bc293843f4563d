# app/resources/results.py
from __future__ import annotations

from flask_restful import Resource

from app.extensions import db
from app.models import Track
from app.services.results import get_track_results_report, narrow_track_results
from app.utils.payloads import parse_filters
from app.utils.rest_auth import judging_errors, json_roles_required


class TrackResultsResource(Resource):
    method_decorators = [judging_errors, json_roles_required("admin")]

    def get(self, track_id: int):
        """
        Results report for a track.
        Query: ?filters={"<facet_id>": ["<token>"]} narrows ``filtered_submissions``
        and both ranking tables; ranks stay track-wide.
        """
        if db.session.get(Track, track_id) is None:
            return {"error": "not_found"}, 404
        report = get_track_results_report(track_id)
        return narrow_track_results(report, parse_filters()), 200
