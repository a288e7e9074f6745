"""Tests for enrichment module registration and invocation."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from contracts.errors import QueryError
from services.enrichment.base import EnrichmentModule
from services.enrichment.registry import (
    BUILTIN_ORDER,
    ModuleRegistry,
    default_registry,
    discover,
    get_module_class,
    list_module_names,
    register_module,
)
from tests._fakes import FakeExecutor


class _Touch(EnrichmentModule):
    def __init__(self, name: str, *, error: BaseException | None = None) -> None:
        self.name = name
        self._error = error

    async def fetch_site_data(self, site: dict[str, Any], executor: Any) -> int:
        if self._error is not None:
            raise self._error
        site.setdefault("touched_by", []).append(self.name)
        return 1


def test_discovery_lists_builtin_modules() -> None:
    discover()
    names = list_module_names()
    for name in BUILTIN_ORDER:
        assert name in names
    assert names == sorted(names)


def test_default_registry_uses_fixed_order() -> None:
    assert default_registry().names() == list(BUILTIN_ORDER)


def test_get_module_class_is_case_insensitive() -> None:
    discover()
    assert get_module_class(" Abundance ") is get_module_class("abundance")
    assert get_module_class("") is None
    assert get_module_class("unknown") is None


def test_register_module_rejects_duplicates() -> None:
    discover()
    with pytest.raises(KeyError):

        @register_module("abundance")
        class _Dup(EnrichmentModule):  # pragma: no cover - never instantiated
            async def fetch_site_data(self, site: dict[str, Any], executor: Any) -> int:
                return 0


def test_registry_rejects_same_name_twice() -> None:
    registry = ModuleRegistry([_Touch("a")])
    with pytest.raises(KeyError):
        registry.register(_Touch("a"))


def test_registry_rejects_unnamed_module() -> None:
    with pytest.raises(ValueError):
        ModuleRegistry([_Touch("")])


def test_invoke_reports_each_module_outcome() -> None:
    registry = ModuleRegistry([_Touch("a"), _Touch("b", error=QueryError("boom")), _Touch("c")])
    site: dict[str, Any] = {"site_id": 1}

    report = asyncio.run(registry.invoke(site, FakeExecutor()))

    assert [o.name for o in report.outcomes] == ["a", "b", "c"]
    assert report.ok is False
    assert [o.name for o in report.failures] == ["b"]
    assert "QueryError: boom" in report.failures[0].message
    # Mutations of the modules that succeeded are kept.
    assert sorted(site["touched_by"]) == ["a", "c"]


def test_invoke_with_empty_registry_is_ok() -> None:
    report = asyncio.run(ModuleRegistry().invoke({"site_id": 1}, FakeExecutor()))
    assert report.ok is True
    assert report.outcomes == ()


def test_invoke_captures_any_module_error_as_outcome() -> None:
    class _Broken(EnrichmentModule):
        name = "broken"

        async def fetch_site_data(self, site: dict[str, Any], executor: Any) -> int:
            return [][0]

    site: dict[str, Any] = {"site_id": 1}
    report = asyncio.run(ModuleRegistry([_Touch("ok"), _Broken()]).invoke(site, FakeExecutor()))

    assert [o.name for o in report.outcomes] == ["ok", "broken"]
    assert [o.name for o in report.failures] == ["broken"]
    assert isinstance(report.failures[0].error, IndexError)
    assert site["touched_by"] == ["ok"]


def test_registry_iterates_in_registration_order() -> None:
    modules = [_Touch("b"), _Touch("a")]
    registry = ModuleRegistry(modules)

    assert list(registry) == modules
    assert len(registry) == 2
