# app/resources/judges.py
from __future__ import annotations

from flask_restful import Resource

from app.extensions import db
from app.models import EventInstance
from app.services.judge_signup import build_signup_facets, register_judge_for_event
from app.utils.payloads import json_body
from app.utils.rest_auth import judging_errors


class JudgeSignupResource(Resource):
    # public: judges sign up before they have an account
    method_decorators = [judging_errors]

    def get(self, event_instance_id: int):
        instance = db.session.get(EventInstance, event_instance_id)
        if instance is None:
            return {"error": "not_found"}, 404
        return {
            "event_instance_id": instance.id,
            "name": instance.name,
            "facets": build_signup_facets(instance.id),
        }, 200

    def post(self, event_instance_id: int):
        """
        Body: { "email": "...", "display_name": "...",
                "selections": { "<facet_id>": ["<option_id>", ...] } }
        """
        data = json_body()
        result = register_judge_for_event(
            event_instance_id,
            data.get("email"),
            data.get("display_name"),
            data.get("selections") or {},
        )
        result["selections"] = {str(k): v for k, v in result["selections"].items()}
        return {"ok": True, **result}, 201
