# app/resources/status_sync.py
from __future__ import annotations

from flask_restful import Resource

from app.services.status_sync import sync_schedule
from app.utils.rest_auth import json_roles_required


class StatusSyncResource(Resource):
    method_decorators = [json_roles_required("admin", "judge")]

    def post(self):
        """Run one schedule sync pass against the server clock. The request body is ignored."""
        report = sync_schedule()
        return {"ok": True, "report": report.to_dict()}, 200
