#!/usr/bin/env python3
from __future__ import annotations
import os, sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.extensions import db
from app.models import Person

ROLES = ("public", "student", "judge", "admin")

def main() -> None:
    username = os.environ.get("ADMIN_USER", "admin").strip()
    password = os.environ.get("ADMIN_PASS", "admin123")
    role     = (os.environ.get("ADMIN_ROLE", "admin") or "admin").strip()
    email    = (os.environ.get("ADMIN_EMAIL") or "").strip().lower() or None

    if role not in ROLES:
        raise SystemExit(f"Invalid ADMIN_ROLE={role!r}; must be one of {'|'.join(ROLES)}")

    app = create_app()
    with app.app_context():
        p = Person.query.filter_by(username=username).first()
        if p:
            changed = False
            if p.role != role:
                p.role = role
                changed = True
            if email and p.email != email:
                p.email = email
                changed = True
            # update password only if explicitly provided (non-empty env)
            if os.environ.get("ADMIN_PASS") is not None and password:
                p.set_password(password)
                changed = True

            if changed:
                db.session.commit()
                print(f"Person '{username}' updated (role={p.role}).")
            else:
                print(f"Person '{username}' already exists (role={p.role}); no changes.")
        else:
            p = Person(username=username, role=role, email=email)
            p.set_password(password)
            db.session.add(p)
            db.session.commit()
            print(f"Person '{username}' created with role '{role}'.")

if __name__ == "__main__":
    main()
