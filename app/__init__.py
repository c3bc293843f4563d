# app/__init__.py
from flask import Flask, request, current_app
from flask_restful import Api
from flask_login import current_user
from .extensions import db, login_manager
from .resources import register_resources
from .errors import JudgingError
import logging
import os

def create_app(config_object="config.Config") -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)

    os.makedirs(app.instance_path, exist_ok=True)

    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        db_path = os.path.join(app.instance_path, "app.db")
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    # REST API
    api = Api(app)
    register_resources(api)

    # logging …
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "DEBUG")).upper(), logging.DEBUG)
    for h in list(app.logger.handlers):
        app.logger.removeHandler(h)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    app.logger.addHandler(handler)
    app.logger.setLevel(level)
    # services log under "app.services.*"
    services_logger = logging.getLogger("app.services")
    if not services_logger.handlers:
        services_logger.addHandler(handler)
    services_logger.setLevel(level)
    logging.getLogger("werkzeug").setLevel(logging.INFO)

    @app.before_request
    def _log_req():
        app.logger.debug(
            "REQ %s %s endpoint=%s auth=%s role=%s ua=%s",
            request.method, request.path, request.endpoint,
            getattr(current_user, "is_authenticated", False),
            getattr(current_user, "role", None),
            request.headers.get("User-Agent", "")[:80],
        )

    db.init_app(app)
    login_manager.init_app(app)

    # Ensure models are imported
    from . import models  # noqa: F401

    with app.app_context():
        db.create_all()

    @app.errorhandler(403)
    def forbidden(e):
        app.logger.warning(
            "403 Forbidden at %s (endpoint=%s) auth=%s role=%s",
            request.path, request.endpoint,
            getattr(current_user, "is_authenticated", False),
            getattr(current_user, "role", None),
        )
        return {"error": "forbidden"}, 403

    @app.errorhandler(JudgingError)
    def judging_error(e):
        return e.to_payload(), e.status

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    @app.get("/api")
    def api_root():
        return {
            "service": "Event Judging API",
            "version": current_app.config.get("APP_VERSION", "v1"),
        }, 200

    return app
