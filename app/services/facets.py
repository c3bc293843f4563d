# app/services/facets.py
"""Facet matching over submissions and judge profiles.

Every stored facet value is turned once into a tagged value
(``OptionRef`` / ``Text`` / ``Number`` / ``Date``) and from there into a
*token*, the only thing filters ever compare. Labels are display-only.

Selections are ``{facet_id: [token, ...]}``. Filtering is OR within a facet
and AND across facets; an empty list for a facet means "no constraint".
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional, Union

from app.utils.time import parse_date

COLLEGE_CODE = "COLLEGE"
# facets whose parented options hang off COLLEGE when no explicit dependency is configured
COLLEGE_CHILD_CODES = ("PROGRAM", "DEPARTMENT")

VALUE_KIND_TEXT = "text"
VALUE_KIND_NUMBER = "number"
VALUE_KIND_DATE = "date"
VALUE_KIND_OPTION = "option"


@dataclass(frozen=True)
class OptionRef:
    option_id: int


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Date:
    value: date


FacetValue = Union[OptionRef, Text, Number, Date]


def _get(obj, key, default=None):
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _format_number(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def facet_value_from_row(row) -> Optional[FacetValue]:
    """Option reference wins over raw values; then text, number, date."""
    option_id = _get(row, "facet_option_id")
    if option_id:
        return OptionRef(int(option_id))
    text = _get(row, "value_text")
    if text:
        return Text(str(text))
    number = _get(row, "value_number")
    if number is not None and number != "":
        return Number(float(number))
    raw_date = parse_date(_get(row, "value_date"))
    if raw_date:
        return Date(raw_date)
    return None


def facet_token(value: FacetValue) -> str:
    if isinstance(value, OptionRef):
        return str(value.option_id)
    if isinstance(value, Text):
        return f"text:{value.value}"
    if isinstance(value, Number):
        return f"number:{_format_number(value.value)}"
    if isinstance(value, Date):
        return f"date:{value.value.isoformat()}"
    raise TypeError(f"unknown facet value {value!r}")


def facet_label(value: FacetValue, option_by_id: Mapping) -> str:
    if isinstance(value, OptionRef):
        option = option_by_id.get(value.option_id)
        if option is None:
            return str(value.option_id)
        return _get(option, "label") or _get(option, "value") or str(value.option_id)
    if isinstance(value, Text):
        return value.value
    if isinstance(value, Number):
        return _format_number(value.value)
    if isinstance(value, Date):
        return value.value.isoformat()
    raise TypeError(f"unknown facet value {value!r}")


def scalar_token(value_kind: str, raw) -> Optional[str]:
    """Token for a free-form input (facet without options)."""
    if raw is None or raw == "":
        return None
    if value_kind == VALUE_KIND_NUMBER:
        try:
            return facet_token(Number(float(raw)))
        except (TypeError, ValueError):
            return None
    if value_kind == VALUE_KIND_DATE:
        parsed = parse_date(raw)
        return facet_token(Date(parsed)) if parsed else None
    return facet_token(Text(str(raw)))


def input_kind(facet) -> str:
    """How a facet is entered: an option select, or a typed scalar input."""
    if _get(facet, "options"):
        return "select"
    kind = (_get(facet, "value_kind") or VALUE_KIND_TEXT).lower()
    if kind in (VALUE_KIND_NUMBER, VALUE_KIND_DATE):
        return kind
    return VALUE_KIND_TEXT


# ---------------------------------------------------------------------------
# Entity maps and filter descriptors
# ---------------------------------------------------------------------------

def build_facet_maps(rows: Iterable, entity_key: str, facet_by_id: Mapping, option_by_id: Mapping):
    """Group facet value rows per entity.

    Returns ``(tokens_by_entity, display_by_entity)`` where
    ``tokens_by_entity[entity_id][facet_id]`` is a token list and
    ``display_by_entity[entity_id]`` is the de-duplicated display list.
    """
    tokens_by_entity: dict = {}
    display_by_entity: dict = {}

    for row in rows or []:
        value = facet_value_from_row(row)
        if value is None:
            continue
        entity_id = _get(row, entity_key)
        facet_id = _get(row, "facet_id")
        token = facet_token(value)

        per_facet = tokens_by_entity.setdefault(entity_id, {})
        tokens = per_facet.setdefault(facet_id, [])
        if token in tokens:
            continue
        tokens.append(token)

        meta = facet_by_id.get(facet_id)
        display_by_entity.setdefault(entity_id, []).append({
            "facet_id": facet_id,
            "facet_option_id": value.option_id if isinstance(value, OptionRef) else None,
            "code": _get(meta, "code", "") if meta is not None else "",
            "name": _get(meta, "name", "") if meta is not None else "",
            "label": facet_label(value, option_by_id),
            "token": token,
        })

    return tokens_by_entity, display_by_entity


def build_selected_filters(rows: Iterable, option_by_id: Mapping) -> dict:
    """``{facet_id: [{token, label}]}`` from a profile's facet rows (judge defaults)."""
    selected: dict = {}
    for row in rows or []:
        value = facet_value_from_row(row)
        if value is None:
            continue
        token = facet_token(value)
        current = selected.setdefault(_get(row, "facet_id"), [])
        if any(item["token"] == token for item in current):
            continue
        current.append({"token": token, "label": facet_label(value, option_by_id)})
    return selected


def selected_tokens(selected_filters: Mapping) -> dict:
    return {facet_id: [item["token"] for item in items] for facet_id, items in selected_filters.items()}


def _label_key(option: dict):
    return (option["label"].casefold(), option["label"])


def build_filter_facets(entities: Iterable[dict], facet_by_id: Mapping, extra_options: Mapping | None = None) -> list:
    """Filter descriptors: one per facet seen on the entities.

    ``count`` is the number of entities carrying the token. ``extra_options``
    (``{facet_id: [{token, label}]}``) adds options no entity carries, with
    ``count=0``, so a judge's own defaults stay selectable.
    """
    options_by_facet: dict = {}

    for entity in entities or []:
        for item in entity.get("facets") or []:
            options = options_by_facet.setdefault(item["facet_id"], {})
            existing = options.get(item["token"])
            options[item["token"]] = {
                "token": item["token"],
                "label": item["label"],
                "count": (existing["count"] if existing else 0) + 1,
            }

    for facet_id, items in (extra_options or {}).items():
        options = options_by_facet.setdefault(facet_id, {})
        for item in items:
            options.setdefault(item["token"], {"token": item["token"], "label": item["label"], "count": 0})

    descriptors = []
    for facet_id, options in options_by_facet.items():
        meta = facet_by_id.get(facet_id)
        descriptors.append({
            "facet_id": facet_id,
            "code": _get(meta, "code", "") if meta is not None else "",
            "name": _get(meta, "name", "") if meta is not None else "",
            "options": sorted(options.values(), key=_label_key),
        })
    return sorted(descriptors, key=lambda d: (d["name"] or d["code"]).casefold())


def normalize_selection(raw) -> dict:
    """Coerce a selection from a request (JSON string or dict, string keys) to ``{facet_id: [token]}``."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    if not isinstance(raw, Mapping):
        return {}

    selection = {}
    for key, tokens in raw.items():
        try:
            facet_id = int(key)
        except (TypeError, ValueError):
            facet_id = key
        if tokens is None or tokens == "":
            tokens = []
        elif not isinstance(tokens, (list, tuple, set)):
            tokens = [tokens]
        selection[facet_id] = [str(t) for t in tokens if t is not None and t != ""]
    return selection


def apply_filters(entities: Iterable[dict], selected: Mapping | None) -> list:
    """Entities matching every facet with a non-empty selection (OR within a facet)."""
    active = {facet_id: set(tokens) for facet_id, tokens in (selected or {}).items() if tokens}
    matched = []
    for entity in entities or []:
        tokens_by_facet = entity.get("facet_tokens_by_facet_id") or {}
        if all(wanted.intersection(tokens_by_facet.get(facet_id) or ()) for facet_id, wanted in active.items()):
            matched.append(entity)
    return matched


# ---------------------------------------------------------------------------
# Hierarchical selections
# ---------------------------------------------------------------------------

def facet_config(facet, depends_on_facet_id=None) -> dict:
    """Reducer-facing shape of a Facet row (or dict)."""
    options = [
        {
            "id": _get(opt, "id"),
            "value": _get(opt, "value"),
            "label": _get(opt, "label") or _get(opt, "value"),
            "parent_option_id": _get(opt, "parent_option_id"),
        }
        for opt in (_get(facet, "options") or [])
    ]
    return {
        "facet_id": _get(facet, "facet_id") or _get(facet, "id"),
        "code": _get(facet, "code") or "",
        "name": _get(facet, "name") or "",
        "value_kind": _get(facet, "value_kind") or VALUE_KIND_TEXT,
        "depends_on_facet_id": depends_on_facet_id or _get(facet, "depends_on_facet_id"),
        "options": options,
    }


def _has_parented_options(facet: dict) -> bool:
    return any(opt.get("parent_option_id") for opt in facet.get("options") or [])


def resolve_parent_facet_id(facet: dict, facets: Iterable[dict]):
    """Explicit dependency first; otherwise PROGRAM-like facets with parented options follow COLLEGE."""
    if facet.get("depends_on_facet_id"):
        return facet["depends_on_facet_id"]
    code = (facet.get("code") or "").upper()
    if code not in COLLEGE_CHILD_CODES or not _has_parented_options(facet):
        return None
    for candidate in facets or []:
        if (candidate.get("code") or "").upper() == COLLEGE_CODE:
            return candidate["facet_id"]
    return None


def _as_token_list(value) -> list:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return [str(value)] if value else []


def _allowed_child_tokens(child: dict, parent_tokens: set) -> set:
    return {
        str(opt["id"])
        for opt in child.get("options") or []
        if not opt.get("parent_option_id") or str(opt["parent_option_id"]) in parent_tokens
    }


def _prune_children(state: dict, parent_facet_id, facets: list) -> dict:
    pending = [parent_facet_id]
    seen = set()
    while pending:
        parent_id = pending.pop()
        if parent_id in seen:
            continue
        seen.add(parent_id)
        parent_tokens = set(_as_token_list(state.get(parent_id)))
        for child in facets:
            if child["facet_id"] == parent_id or resolve_parent_facet_id(child, facets) != parent_id:
                continue
            current = _as_token_list(state.get(child["facet_id"]))
            if current:
                allowed = _allowed_child_tokens(child, parent_tokens)
                state[child["facet_id"]] = [token for token in current if token in allowed]
            pending.append(child["facet_id"])
    return state


def reduce_selection(state: Mapping, action: Mapping, facets: Iterable[dict]) -> dict:
    """Pure reducer over ``{facet_id: [token, ...]}`` selections.

    Actions: ``select`` (single value), ``select_primary`` /
    ``select_secondary`` / ``remove_secondary`` (two-slot pickers) and
    ``clear``. Whenever a facet changes, dependent child selections that no
    longer belong to the new parent option are dropped.
    """
    facets = list(facets or [])
    facet_id = action["facet_id"]
    value = action.get("value")
    value = str(value) if value not in (None, "") else ""
    current = _as_token_list(state.get(facet_id))
    kind = action.get("type", "select")

    if kind == "select":
        updated = [value] if value else []
    elif kind == "select_primary":
        second = current[1] if len(current) > 1 else None
        if not value:
            updated = [second] if second else []
        elif second and second != value:
            updated = [value, second]
        else:
            updated = [value]
    elif kind == "select_secondary":
        primary = current[0] if current else ""
        if not primary:
            updated = [value] if value else []
        elif not value or value == primary:
            updated = [primary]
        else:
            updated = [primary, value]
    elif kind == "remove_secondary":
        updated = current[:1]
    elif kind == "clear":
        updated = []
    else:
        raise ValueError(f"unknown selection action {kind!r}")

    next_state = {key: list(_as_token_list(val)) for key, val in state.items()}
    next_state[facet_id] = updated
    return _prune_children(next_state, facet_id, facets)


def options_for_facet(facet: dict, selections: Mapping, facets: Iterable[dict]) -> list:
    """Options a picker should offer given the current parent selection."""
    options = facet.get("options") or []
    if not _has_parented_options(facet):
        return options
    parent_id = resolve_parent_facet_id(facet, facets)
    if parent_id is None:
        return options
    parent_tokens = set(_as_token_list(selections.get(parent_id)))
    if not parent_tokens:
        return []
    allowed = _allowed_child_tokens(facet, parent_tokens)
    return [opt for opt in options if str(opt["id"]) in allowed]
