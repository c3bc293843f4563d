# app/resources/rubrics.py
from __future__ import annotations

from flask_restful import Resource

from app.services.rubrics import create_rubric_for_track, list_track_rubrics, update_rubric_for_track
from app.utils.payloads import json_body
from app.utils.rest_auth import judging_errors, json_roles_required


def _rubric_args(data: dict) -> dict:
    return {
        "name": data.get("name"),
        "criteria": data.get("criteria"),
        "description": data.get("description"),
        "version": data.get("version") or 1,
        "is_default": bool(data.get("is_default", True)),
    }


class TrackRubricListResource(Resource):
    method_decorators = [judging_errors, json_roles_required("admin")]

    def get(self, track_id: int):
        return {"rubrics": list_track_rubrics(track_id)}, 200

    def post(self, track_id: int):
        """
        Body: { "name": "...", "description": "...", "version": 1, "is_default": true,
                "criteria": [ { "name", "category", "answer_type", "answer_config",
                                "weight", "score_min", "score_max" } ] }
        """
        result = create_rubric_for_track(track_id, **_rubric_args(json_body()))
        return {"ok": True, **result}, 201


class TrackRubricItemResource(Resource):
    method_decorators = [judging_errors, json_roles_required("admin")]

    def put(self, track_id: int, rubric_id: int):
        result = update_rubric_for_track(track_id, rubric_id, **_rubric_args(json_body()))
        return {"ok": True, **result}, 200
