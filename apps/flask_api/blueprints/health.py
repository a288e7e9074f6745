"""Health and metadata endpoints Blueprint."""

from typing import Any

from flask import Blueprint, jsonify

from apps.backend import queries
from apps.flask_api.utils import _ok, get_runtime, run_async
from version import ENGINE_NAME, ENGINE_VERSION

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health() -> Any:
    """Basic health check endpoint.

    Returns:
        JSON response with ok: true
    """
    return jsonify({"ok": True})


@health_bp.route("/api/health/db", methods=["GET"])
def api_health_db() -> Any:
    """Database health check endpoint.

    Returns:
        JSON response with database health status and connection policy
    """
    runtime = get_runtime()
    row = run_async(runtime.executor.fetch_one(queries.HEALTH_CHECK))
    return _ok(
        {
            "db": bool(row and row.get("ok") == 1),
            "policy": runtime.provider.policy.value,
            "max_parallelism": runtime.provider.max_parallelism,
        }
    )


@health_bp.route("/api/version", methods=["GET"])
def api_version() -> Any:
    return _ok({"engine": ENGINE_NAME, "version": ENGINE_VERSION})
