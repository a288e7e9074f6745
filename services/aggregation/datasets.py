"""Dataset and sample lookups served next to the site aggregate."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from apps.backend import queries
from contracts.errors import NotFoundError
from contracts.interfaces import QueryExecutorProtocol
from contracts.site_types import Row
from services.aggregation.grouping import DatasetGroup, group_by_dataset, unique_ordered
from services.enrichment.base import fetch_for_each

logger = logging.getLogger(__name__)

# Method groups whose datasets may carry dating-to-period data.
DATING_METHOD_GROUPS: frozenset[int] = frozenset({3, 19, 20})


async def fetch_sample_datasets(executor: QueryExecutorProtocol, physical_sample_id: Any) -> list[DatasetGroup]:
    """Analysis entities of one physical sample, grouped by dataset."""
    entities = await executor.fetch_all(queries.ANALYSIS_ENTITIES_BY_SAMPLE, (physical_sample_id,))
    return group_by_dataset(entities)


async def _attach_dating_to_period(executor: QueryExecutorProtocol, entities: list[Row]) -> None:
    by_entity = await fetch_for_each(
        executor,
        queries.RELATIVE_DATES_BY_ENTITY,
        [entity["analysis_entity_id"] for entity in entities],
    )
    for entity in entities:
        entity["dating_to_period"] = by_entity[entity["analysis_entity_id"]]


async def _attach_physical_samples(executor: QueryExecutorProtocol, entities: list[Row]) -> None:
    sample_ids = unique_ordered(
        entity["physical_sample_id"] for entity in entities if entity.get("physical_sample_id") is not None
    )
    rows = await asyncio.gather(
        *(executor.fetch_one(queries.PHYSICAL_SAMPLE_BY_ID, (sample_id,)) for sample_id in sample_ids)
    )
    samples = dict(zip(sample_ids, rows, strict=True))
    for entity in entities:
        entity["physical_sample"] = samples.get(entity.get("physical_sample_id"))


async def fetch_dataset(executor: QueryExecutorProtocol, dataset_id: Any) -> Row:
    """Dataset row with its method, analysis entities and related records.

    - ``method``: the producing method
    - ``analysis_entities``: every entity of the dataset, each with its
      ``physical_sample`` and, for dating method groups, ``dating_to_period``
    - ``biblio``: bibliography entry when the dataset references one
    """
    row = await executor.fetch_one(queries.DATASET_BY_ID, (dataset_id,))
    if row is None:
        raise NotFoundError("dataset", dataset_id)
    dataset: Row = dict(row)

    method_id = dataset.get("method_id")
    method, entities = await asyncio.gather(
        executor.fetch_one(queries.METHOD_BY_ID, (method_id,)) if method_id is not None else _none(),
        executor.fetch_all(queries.ANALYSIS_ENTITIES_BY_DATASET, (dataset["dataset_id"],)),
    )
    dataset["method"] = method
    dataset["analysis_entities"] = entities

    if dataset.get("biblio_id") is not None:
        dataset["biblio"] = await executor.fetch_one(queries.BIBLIO_BY_ID, (dataset["biblio_id"],))

    if method is not None and method.get("method_group_id") in DATING_METHOD_GROUPS and entities:
        await _attach_dating_to_period(executor, entities)

    if entities:
        await _attach_physical_samples(executor, entities)
    return dataset


async def _none() -> None:
    return None
