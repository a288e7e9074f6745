"""flask_app.py

HTTP boundary of the SEAD site aggregator.

Handlers are thin: they call the aggregation services through the runtime
bound at app creation and serialize the result. Every data access failure is
collapsed into ``{"ok": false, "error": <kind>, "message": ...}``; the
underlying error text is only exposed with ``API_DEBUG_ERRORS=1``.

Run
---
sead-data serve --port 8080
"""

from __future__ import annotations

import time
from typing import Any

from flask import Flask, Response, request

from apps.backend.runtime import SiteRuntime, build_runtime
from apps.flask_api.blueprints import health_bp, sites_bp
from apps.flask_api.utils import _api_internal_error_response, _data_access_error_response
from apps.flask_api.utils.context import RUNTIME_EXTENSION
from contracts.errors import DataAccessError
from infra.config import Settings, get_settings
from infra.logging_config import StructuredLogger

log = StructuredLogger(__name__)


def create_app(runtime: SiteRuntime | None = None, *, settings: Settings | None = None) -> Flask:
    """Build the Flask app around a runtime (built from settings when omitted)."""
    settings = settings or (runtime.settings if runtime is not None else get_settings())
    runtime = runtime or build_runtime(settings)

    app = Flask(__name__)
    app.config["API_DEBUG_ERRORS"] = settings.api.debug_errors
    app.extensions[RUNTIME_EXTENSION] = runtime

    app.register_blueprint(health_bp)
    app.register_blueprint(sites_bp)

    @app.before_request
    def _start_timer() -> None:
        request.environ["_sead_t0"] = time.monotonic()

    @app.after_request
    def _log_request(resp: Response) -> Response:
        t0 = float(request.environ.get("_sead_t0") or 0.0)
        ms = int(max(0.0, (time.monotonic() - t0) * 1000.0)) if t0 else None
        log.info(
            "http_request",
            method=request.method,
            path=request.path,
            status=int(resp.status_code or 0),
            ms=ms,
        )
        return resp

    @app.errorhandler(DataAccessError)
    def _handle_data_access_error(exc: DataAccessError) -> Any:
        log.warning("http_request_failed", path=request.path, kind=exc.code, error=str(exc))
        return _data_access_error_response(exc)

    @app.errorhandler(500)
    def _handle_internal_error(exc: Exception) -> Any:
        original = getattr(exc, "original_exception", None) or exc
        log.error("http_internal_error", path=request.path, error=str(original))
        return _api_internal_error_response(original)

    return app
