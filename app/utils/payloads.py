from __future__ import annotations

from typing import Optional, Dict

from flask import request

from app.services.facets import normalize_selection


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_filters(source: Optional[dict] = None) -> Optional[Dict[int, list]]:
    """Facet selection from ``filters`` in the JSON body or query string.

    Accepts ``{"12": ["34"], "15": "text:Robotics"}`` (or the same as a JSON
    string in ``?filters=``). Returns None when no filters were sent, so the
    caller can fall back to its defaults.
    """
    raw = (source or {}).get("filters")
    if raw is None:
        raw = request.args.get("filters")
    if raw is None:
        return None
    return normalize_selection(raw)


def optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
