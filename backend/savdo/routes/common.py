# Overview: Shared helpers for ledger API routes.

from __future__ import annotations

from flask import current_app, jsonify, request

from ..errors import LedgerError, StoreUnavailable, ValidationError
from ..time_utils import parse_iso_datetime


def error_response(exc: LedgerError | StoreUnavailable):
    """Typed JSON error: {"error", "code", "details"} with the error's HTTP status."""
    if isinstance(exc, StoreUnavailable):
        current_app.logger.warning("Ledger store unavailable: %s", exc)
    return jsonify(exc.to_dict()), exc.http_status


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def query_limit(default: int = 100, maximum: int = 500) -> int:
    raw = request.args.get("limit")
    if raw is None:
        return default
    try:
        limit = int(raw)
    except ValueError:
        raise ValidationError("limit must be an integer")
    return max(1, min(limit, maximum))


def query_int(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def query_since():
    try:
        return parse_iso_datetime(request.args.get("since"))
    except ValueError:
        raise ValidationError("since must be an ISO-8601 datetime")
