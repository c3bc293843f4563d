# app/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager

db = SQLAlchemy()
login_manager = LoginManager()

@login_manager.user_loader
def load_user(user_id: str):
    # Local import prevents circular dependency at import time
    from app.models import Person
    try:
        return db.session.get(Person, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return {"error": "unauthorized"}, 401
