# app/resources/auth.py
from __future__ import annotations
from flask import request
from flask_restful import Resource
from flask_login import login_user, logout_user, current_user

from app.extensions import db
from app.models import Person
from app.utils.rest_auth import json_login_required


def _json():
    if not request.is_json:
        return None, {"error": "Content-Type must be application/json"}, 415
    data = request.get_json(silent=True)
    if data is None:
        return None, {"error": "Malformed JSON"}, 400
    return data, None, None


def _person_payload(p: Person) -> dict:
    return {
        "id": p.id,
        "username": p.username,
        "email": p.email,
        "display_name": p.display_name,
        "role": p.role,
    }


class AuthLogin(Resource):
    def post(self):
        data, err_resp, err_code = _json()
        if err_resp:
            return err_resp, err_code

        login = (data.get("username") or data.get("email") or "").strip()
        password = data.get("password") or ""
        if not login or not password:
            return {"error": "username and password required"}, 400

        person = Person.query.filter(
            (Person.username == login) | (db.func.lower(Person.email) == login.lower())
        ).first()
        if not person or not person.check_password(password):
            return {"error": "Invalid credentials"}, 401

        login_user(person)
        return {"ok": True, "user": _person_payload(person)}, 200


class AuthLogout(Resource):
    method_decorators = [json_login_required]

    def post(self):
        logout_user()
        return {"ok": True}, 200


class Me(Resource):
    method_decorators = [json_login_required]

    def get(self):
        return _person_payload(current_user), 200
