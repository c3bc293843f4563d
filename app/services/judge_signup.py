# app/services/judge_signup.py
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models import (
    ROLE_JUDGE,
    EventInstance,
    Facet,
    FacetOption,
    Person,
    PersonEventRole,
    PersonEventRoleFacetValue,
    Track,
    TrackFacet,
)
from app.services import facets as facet_engine

log = logging.getLogger(__name__)

SIGNUP_FALLBACK_FACET_CODES = ("COLLEGE", "DEPARTMENT", "PROGRAM")
SIGNUP_REQUIRED_FACET_CODES = ("PROGRAM", "DEPARTMENT")


def _facets_by_codes(codes) -> list:
    rows = Facet.query.filter(Facet.code.in_(list(codes))).all()
    order = {code: i for i, code in enumerate(codes)}
    return sorted(rows, key=lambda f: order.get(f.code, len(order)))


def _append_missing(entries: list, facets, is_required: bool = True) -> None:
    seen = {entry["facet"].id for entry in entries}
    for facet in facets:
        if facet.id in seen:
            continue
        entries.append({"facet": facet, "is_required": is_required, "depends_on_facet_id": None})
        seen.add(facet.id)


def _child_facets(parent_facet_ids) -> list:
    if not parent_facet_ids:
        return []
    parent_option_ids = db.session.query(FacetOption.id).filter(FacetOption.facet_id.in_(parent_facet_ids))
    child_ids = {
        row.facet_id
        for row in db.session.query(FacetOption.facet_id)
        .filter(FacetOption.parent_option_id.in_(parent_option_ids))
        .distinct()
        .all()
    }
    child_ids -= set(parent_facet_ids)
    return Facet.query.filter(Facet.id.in_(child_ids)).order_by(Facet.id.asc()).all() if child_ids else []


def build_signup_facets(event_instance_id: int) -> list:
    """Facets a judge describes themselves with when signing up for an event.

    Option facets configured on the event's tracks, else the fallback codes;
    required codes are always added, as is any facet whose options hang off
    an option already offered.
    """
    track_facets = (
        TrackFacet.query
        .join(Track, Track.id == TrackFacet.track_id)
        .join(Facet, Facet.id == TrackFacet.facet_id)
        .filter(Track.event_instance_id == event_instance_id)
        .order_by(Track.display_order.asc(), TrackFacet.display_order.asc())
        .all()
    )

    entries: list = []
    seen: set = set()
    for tf in track_facets:
        if tf.facet_id in seen or not tf.facet.options:
            continue
        seen.add(tf.facet_id)
        entries.append({
            "facet": tf.facet,
            "is_required": bool(tf.is_required),
            "depends_on_facet_id": tf.depends_on_facet_id,
        })

    if not entries:
        _append_missing(entries, _facets_by_codes(SIGNUP_FALLBACK_FACET_CODES))
    _append_missing(entries, _facets_by_codes(SIGNUP_REQUIRED_FACET_CODES))
    if not entries:
        return []
    _append_missing(entries, _child_facets([e["facet"].id for e in entries]))

    configs = []
    for order, entry in enumerate(entries, start=1):
        config = facet_engine.facet_config(entry["facet"], entry["depends_on_facet_id"])
        config["is_required"] = entry["is_required"]
        config["display_order"] = order
        configs.append(config)
    return configs


def _depth(facet: dict, facets: list) -> int:
    depth = 0
    current = facet
    seen = set()
    while True:
        parent_id = facet_engine.resolve_parent_facet_id(current, facets)
        if parent_id is None or parent_id in seen:
            return depth
        seen.add(parent_id)
        current = next((f for f in facets if f["facet_id"] == parent_id), None)
        if current is None:
            return depth + 1
        depth += 1


def resolve_signup_selections(facets: list, selections: dict) -> dict:
    """Replay a raw selection through the reducer, parents before children.

    Each facet keeps at most two options (primary + secondary). Child options
    that do not belong to the chosen parent are dropped.
    """
    selections = facet_engine.normalize_selection(selections)
    state: dict = {}
    for facet in sorted(facets, key=lambda f: _depth(f, facets)):
        tokens = selections.get(facet["facet_id"]) or []
        valid = {str(opt["id"]) for opt in facet["options"]}
        unknown = [t for t in tokens if t not in valid]
        if unknown:
            raise ValidationError(f"Unknown option for {facet['name'] or facet['code']}.", options=unknown)

        if tokens:
            action = {"type": "select_primary", "facet_id": facet["facet_id"], "value": tokens[0]}
            state = facet_engine.reduce_selection(state, action, facets)
        if len(tokens) > 1:
            action = {"type": "select_secondary", "facet_id": facet["facet_id"], "value": tokens[1]}
            state = facet_engine.reduce_selection(state, action, facets)

        allowed = {str(opt["id"]) for opt in facet_engine.options_for_facet(facet, state, facets)}
        state[facet["facet_id"]] = [t for t in state.get(facet["facet_id"], []) if t in allowed]
    return state


def _find_or_create_person(email: str, display_name: str) -> Person:
    person = Person.query.filter(db.func.lower(Person.email) == email.lower()).first()
    if person is None:
        person = Person(username=email, email=email, display_name=display_name or None, role="judge")
        db.session.add(person)
        db.session.flush()
    elif person.role == "public":
        person.role = "judge"
    if display_name and not person.display_name:
        person.display_name = display_name
    return person


def _find_or_create_role(person_id: int, event_instance_id: int) -> PersonEventRole:
    role = PersonEventRole.query.filter_by(
        person_id=person_id, event_instance_id=event_instance_id, role_code=ROLE_JUDGE
    ).first()
    if role is None:
        role = PersonEventRole(
            person_id=person_id, event_instance_id=event_instance_id, role_code=ROLE_JUDGE, is_active=True
        )
        db.session.add(role)
        db.session.flush()
    role.is_active = True
    return role


def register_judge_for_event(event_instance_id: int, email: str, display_name: str | None, selections: dict | None) -> dict:
    email = (email or "").strip()
    display_name = (display_name or "").strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required.")
    if db.session.get(EventInstance, event_instance_id) is None:
        raise NotFoundError(f"Event instance {event_instance_id} not found.")

    facets = build_signup_facets(event_instance_id)
    state = resolve_signup_selections(facets, selections or {})

    missing = [
        f["name"] or f["code"]
        for f in facets
        if f.get("is_required")
        and facet_engine.options_for_facet(f, state, facets)
        and not state.get(f["facet_id"])
    ]
    if missing:
        raise ValidationError("Please complete: " + ", ".join(missing) + ".", facets=missing)

    option_by_id = {opt["id"]: opt for f in facets for opt in f["options"]}
    try:
        person = _find_or_create_person(email, display_name)
        role = _find_or_create_role(person.id, event_instance_id)

        touched = [f["facet_id"] for f in facets]
        if touched:
            (
                PersonEventRoleFacetValue.query
                .filter(
                    PersonEventRoleFacetValue.person_event_role_id == role.id,
                    PersonEventRoleFacetValue.facet_id.in_(touched),
                )
                .delete(synchronize_session=False)
            )
        for facet_id, tokens in state.items():
            for token in tokens:
                option = option_by_id.get(int(token))
                db.session.add(PersonEventRoleFacetValue(
                    person_event_role_id=role.id,
                    facet_id=facet_id,
                    facet_option_id=int(token),
                    value_text=(option or {}).get("label"),
                ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("This judge is already registered.") from None
    except SQLAlchemyError:
        db.session.rollback()
        raise

    log.info("judge %s registered for event instance %s", person.id, event_instance_id)
    return {"person_id": person.id, "person_event_role_id": role.id, "selections": state}
