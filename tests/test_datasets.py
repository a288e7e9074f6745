"""Tests for dataset and sample lookups."""

from __future__ import annotations

import asyncio

import pytest

from apps.backend import queries
from contracts.errors import NotFoundError
from services.aggregation.datasets import fetch_dataset, fetch_sample_datasets
from tests._fakes import sead_executor


def test_fetch_sample_datasets_groups_entities() -> None:
    groups = asyncio.run(fetch_sample_datasets(sead_executor(), 101))

    assert [g.to_dict() for g in groups] == [
        {
            "datasetId": 500,
            "analysisEntities": [{"analysis_entity_id": 1001, "physical_sample_id": 101, "dataset_id": 500}],
        },
        {
            "datasetId": 501,
            "analysisEntities": [{"analysis_entity_id": 1002, "physical_sample_id": 101, "dataset_id": 501}],
        },
    ]


def test_fetch_sample_datasets_unknown_sample_is_empty() -> None:
    assert asyncio.run(fetch_sample_datasets(sead_executor(), 999)) == []


def test_fetch_dataset_attaches_related_records() -> None:
    executor = sead_executor()
    dataset = asyncio.run(fetch_dataset(executor, 500))

    assert dataset["method"]["method_name"] == "Palaeoentomology"
    assert dataset["biblio"]["title"] == "Insects of Ageröd"
    assert [e["analysis_entity_id"] for e in dataset["analysis_entities"]] == [1000, 1001, 1003]
    assert [e["physical_sample"]["sample_name"] for e in dataset["analysis_entities"]] == ["A1", "A2", "B1"]
    # Three entities on three distinct samples: one lookup each.
    assert sorted(executor.params_for(queries.PHYSICAL_SAMPLE_BY_ID)) == [100, 101, 110]


def test_fetch_dataset_dating_method_group_adds_periods() -> None:
    dataset = asyncio.run(fetch_dataset(sead_executor(), 501))

    entity = dataset["analysis_entities"][0]
    assert [d["relative_age_name"] for d in entity["dating_to_period"]] == ["Viking Age"]
    assert "biblio" not in dataset


def test_fetch_dataset_other_method_groups_skip_dating() -> None:
    executor = sead_executor()
    dataset = asyncio.run(fetch_dataset(executor, 502))

    assert "dating_to_period" not in dataset["analysis_entities"][0]
    assert executor.count(queries.RELATIVE_DATES_BY_ENTITY) == 0


def test_fetch_dataset_missing_raises_not_found() -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(fetch_dataset(sead_executor(), 404))
