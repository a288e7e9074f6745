"""Tests for the built-in enrichment modules."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from apps.backend import queries
from contracts.errors import QueryError
from services.aggregation.assembler import SiteAssembler
from services.enrichment.modules.abundance import AbundanceModule
from services.enrichment.modules.dendrochronology import DendrochronologyModule
from services.enrichment.modules.measured_values import MeasuredValuesModule
from tests._fakes import sead_executor


def _bare_site(site_id: int) -> dict[str, Any]:
    return asyncio.run(SiteAssembler(sead_executor()).assemble(site_id))


def test_module_without_matching_entities_leaves_site_unchanged() -> None:
    site = _bare_site(1)
    before = copy.deepcopy(site)
    executor = sead_executor()

    touched = asyncio.run(MeasuredValuesModule().fetch_site_data(site, executor))

    assert touched == 0
    assert site == before
    assert executor.calls == []


def test_module_on_empty_site_is_noop() -> None:
    site = _bare_site(2)
    before = copy.deepcopy(site)

    touched = asyncio.run(AbundanceModule().fetch_site_data(site, sead_executor()))

    assert touched == 0
    assert site == before


def test_abundance_module_fetches_each_taxon_once() -> None:
    site = _bare_site(1)
    executor = sead_executor()

    touched = asyncio.run(AbundanceModule().fetch_site_data(site, executor))

    assert touched == 3
    assert sorted(executor.params_for(queries.TAXON_BY_ID)) == [77, 78]


def test_measured_values_module_attaches_rows() -> None:
    site = _bare_site(3)

    touched = asyncio.run(MeasuredValuesModule().fetch_site_data(site, sead_executor()))

    entity = site["sample_groups"][0]["physical_samples"][0]["analysis_entities"][0]
    assert touched == 1
    assert entity["measured_values"][0]["measured_value"] == "12.5"


def test_failed_fetch_leaves_site_untouched() -> None:
    site = _bare_site(1)
    before = copy.deepcopy(site)
    executor = sead_executor()
    executor.fail(queries.DENDRO_BY_ENTITY)

    with pytest.raises(QueryError):
        asyncio.run(DendrochronologyModule().fetch_site_data(site, executor))

    assert site == before


def test_method_ids_can_be_overridden() -> None:
    site = _bare_site(1)
    module = DendrochronologyModule(method_ids=[3])

    touched = asyncio.run(module.fetch_site_data(site, sead_executor()))

    # Entities of dataset 500 (method 3) now match: 1000, 1001, 1003.
    assert touched == 3
