"""Flask API utilities package.

- responses: Standardized HTTP response helpers
- context: Access to the process runtime from request handlers
"""

from apps.flask_api.utils.context import get_runtime, run_async
from apps.flask_api.utils.responses import (
    _api_internal_error_response,
    _data_access_error_response,
    _err,
    _ok,
    _pretty_json,
)

__all__ = [
    # responses
    "_ok",
    "_err",
    "_pretty_json",
    "_data_access_error_response",
    "_api_internal_error_response",
    # context
    "get_runtime",
    "run_async",
]
