# app/resources/__init__.py
from flask_restful import Api

from .auth import AuthLogin, AuthLogout, Me
from .status_sync import StatusSyncResource
from .queue import QueueResource, QueueNextResource
from .judges import JudgeSignupResource
from .scores import ScoringContextResource, ScoreSheetResource, ScorePreviewResource
from .rubrics import TrackRubricListResource, TrackRubricItemResource
from .submissions import TrackSubmissionListResource
from .results import TrackResultsResource


def register_resources(api: Api) -> None:
    # Auth
    api.add_resource(AuthLogin,  "/api/auth/login")
    api.add_resource(AuthLogout, "/api/auth/logout")
    api.add_resource(Me,         "/api/auth/me")

    # Schedule sync
    api.add_resource(StatusSyncResource, "/api/status-sync")

    # Judge queue & signup
    api.add_resource(QueueResource,       "/api/event-instances/<int:event_instance_id>/queue")
    api.add_resource(QueueNextResource,   "/api/event-instances/<int:event_instance_id>/queue/next")
    api.add_resource(JudgeSignupResource, "/api/event-instances/<int:event_instance_id>/judges")

    # Scoring
    api.add_resource(ScoringContextResource, "/api/submissions/<int:submission_id>/scoring")
    api.add_resource(ScoreSheetResource,     "/api/submissions/<int:submission_id>/score-sheet")
    api.add_resource(ScorePreviewResource,   "/api/scoring/preview")

    # Tracks
    api.add_resource(TrackRubricListResource, "/api/tracks/<int:track_id>/rubrics")
    api.add_resource(TrackRubricItemResource, "/api/tracks/<int:track_id>/rubrics/<int:rubric_id>")
    api.add_resource(TrackSubmissionListResource, "/api/tracks/<int:track_id>/submissions")
    api.add_resource(TrackResultsResource, "/api/tracks/<int:track_id>/results")
