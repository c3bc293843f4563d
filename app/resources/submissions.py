# app/resources/submissions.py
from __future__ import annotations

from flask_login import current_user
from flask_restful import Resource

from app.services.submissions import create_submission, create_submissions
from app.utils.payloads import json_body
from app.utils.rest_auth import judging_errors, json_roles_required


def _without_status(row: dict) -> dict:
    # only admins may import rows at a later lifecycle status
    if getattr(current_user, "role", None) == "admin":
        return row
    return {k: v for k, v in row.items() if k != "status"}


class TrackSubmissionListResource(Resource):
    method_decorators = [judging_errors, json_roles_required("admin", "student")]

    def post(self, track_id: int):
        """
        One submission:
          { "title", "creator_email", "supervisor_email", "description", "keywords",
            "facet_values": { "<facet_id>": { "facet_option_id" | "value_text" |
                                              "value_number" | "value_date" } } }
        or many: { "submissions": [ ...same shape... ] }
        Admins may also send "status"; everyone else creates at ``submitted``.
        """
        data = json_body()
        if isinstance(data.get("submissions"), list):
            rows = [_without_status(row) for row in data["submissions"] if isinstance(row, dict)]
            return {"ok": True, **create_submissions(track_id, rows)}, 201

        data = _without_status(data)
        created = create_submission(
            track_id,
            data.get("title"),
            data.get("creator_email"),
            supervisor_email=data.get("supervisor_email"),
            facet_values=data.get("facet_values"),
            description=data.get("description"),
            keywords=data.get("keywords"),
            status=data.get("status"),
        )
        return {"ok": True, "submission": created}, 201
