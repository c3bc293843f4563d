# app/resources/queue.py
from __future__ import annotations

from flask_restful import Resource

from app.extensions import db
from app.models import EventInstance
from app.services.queue import get_eligible_queue, pull_next
from app.utils.payloads import parse_filters
from app.utils.rest_auth import current_identity, judging_errors, json_roles_required


def _require_instance(event_instance_id: int):
    if db.session.get(EventInstance, event_instance_id) is None:
        return {"error": "not_found", "detail": "Event instance not found."}, 404
    return None


class QueueResource(Resource):
    method_decorators = [judging_errors, json_roles_required("judge", "admin")]

    def get(self, event_instance_id: int):
        """
        Eligible submissions for the logged-in judge.
        Query: ?filters={"<facet_id>": ["<token>", ...]}  (defaults to the judge's own facets)
        """
        missing = _require_instance(event_instance_id)
        if missing:
            return missing
        result = get_eligible_queue(current_identity(), event_instance_id, parse_filters())
        return result.to_dict(), 200


class QueueNextResource(Resource):
    method_decorators = [judging_errors, json_roles_required("judge", "admin")]

    def get(self, event_instance_id: int):
        missing = _require_instance(event_instance_id)
        if missing:
            return missing
        row = pull_next(current_identity(), event_instance_id, parse_filters())
        return {"submission": row}, 200
