"""Response helpers for Flask API.

Provides standardized HTTP response formatting for consistent API responses.
"""

import json
from typing import Any, Dict, Optional

from flask import Response, current_app, jsonify

from apps.backend.db import json_default
from contracts.errors import DataAccessError, ErrorKind


def _debug_errors() -> bool:
    return bool(current_app.config.get("API_DEBUG_ERRORS", False))


def _ok(data: Optional[Dict[str, Any]] = None, *, status: int = 200) -> Any:
    """Create a successful JSON response.

    Args:
        data: Optional dictionary to include in the response
        status: HTTP status code (default 200)

    Returns:
        Flask response tuple (json, status)
    """
    payload: Dict[str, Any] = {"ok": True}
    if data:
        payload.update(data)
    return jsonify(payload), status


def _err(
    code: str,
    message: str,
    *,
    status: int,
    extra: Optional[Dict[str, Any]] = None,
) -> Any:
    """Create an error JSON response.

    Args:
        code: Error code (e.g., 'query', 'not_found')
        message: Human-readable error message
        status: HTTP status code
        extra: Optional additional data to include

    Returns:
        Flask response tuple (json, status)
    """
    payload: Dict[str, Any] = {"ok": False, "error": code, "message": message}
    if extra:
        payload.update(extra)
    return jsonify(payload), status


def _pretty_json(document: Any, *, status: int = 200) -> Response:
    """Serialize a document with two-space indentation."""
    body = json.dumps(document, indent=2, ensure_ascii=False, default=json_default)
    return Response(body, status=status, mimetype="application/json")


def _data_access_error_response(exc: DataAccessError) -> Any:
    """Collapse a data access failure into a stable, generic response.

    Details (error text, timeout flag) are only exposed when debug errors are
    enabled.
    """
    extra: Optional[Dict[str, Any]] = None
    if _debug_errors():
        extra = {"detail": str(exc)}
        if getattr(exc, "timed_out", False):
            extra["timed_out"] = True
    if exc.kind is ErrorKind.NOT_FOUND:
        return _err(exc.code, "not found", status=404, extra=extra)
    return _err(exc.code, "internal server error", status=500, extra=extra)


def _api_internal_error_response(exc: Exception) -> Any:
    """Generic 500 for anything that escaped the service layer."""
    extra = {"detail": str(exc)} if _debug_errors() else None
    return _err("internal_error", "internal server error", status=500, extra=extra)
