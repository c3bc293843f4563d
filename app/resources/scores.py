# app/resources/scores.py
from __future__ import annotations

from flask_restful import Resource

from app.services.score_sheets import get_scoring_context, preview_score, submit_score_sheet
from app.utils.payloads import json_body, optional_int
from app.utils.rest_auth import current_identity, judging_errors, json_roles_required


class ScoringContextResource(Resource):
    method_decorators = [judging_errors, json_roles_required("judge", "admin")]

    def get(self, submission_id: int):
        return get_scoring_context(current_identity(), submission_id), 200


class ScoreSheetResource(Resource):
    method_decorators = [judging_errors, json_roles_required("judge", "admin")]

    def post(self, submission_id: int):
        """
        Submit (or resubmit) the judge's score sheet.
        Body: { "rubric_id": 3,
                "responses": { "<criterion_id>": { "value": 4, "comment": "" } },
                "overall_comment": "..." }
        """
        data = json_body()
        result = submit_score_sheet(
            current_identity(),
            submission_id,
            optional_int(data.get("rubric_id")),
            None,
            data.get("responses") or {},
            data.get("overall_comment"),
        )
        return {"ok": True, **result}, 201


class ScorePreviewResource(Resource):
    method_decorators = [judging_errors, json_roles_required("judge", "admin")]

    def post(self):
        """Body: { "criteria": [...], "responses": {...} } -> running total."""
        data = json_body()
        criteria = data.get("criteria")
        if not isinstance(criteria, list):
            return {"error": "invalid_request", "detail": "criteria must be a list"}, 400
        return preview_score(criteria, data.get("responses") or {}), 200
