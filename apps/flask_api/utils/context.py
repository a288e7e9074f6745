"""Runtime access for request handlers."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

from flask import current_app

from apps.backend.runtime import SiteRuntime

T = TypeVar("T")

RUNTIME_EXTENSION = "sead_runtime"


def get_runtime() -> SiteRuntime:
    """Return the runtime bound to the current app."""
    return current_app.extensions[RUNTIME_EXTENSION]


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Drive a service coroutine to completion from a sync view."""
    return asyncio.run(coro)
