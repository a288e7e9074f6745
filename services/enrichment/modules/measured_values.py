"""Measured values (magnetic susceptibility, loss on ignition, phosphates, ...)."""

from __future__ import annotations

from collections.abc import Iterable

from apps.backend import queries
from contracts.interfaces import QueryExecutorProtocol
from contracts.site_types import Row
from services.enrichment.base import EnrichmentModule, fetch_for_each
from services.enrichment.registry import register_module

MEASURED_VALUE_METHOD_IDS: tuple[int, ...] = (32, 33, 35, 36, 37, 74, 107, 109, 110)


@register_module("measured_values")
class MeasuredValuesModule(EnrichmentModule):
    def __init__(self, method_ids: Iterable[int] | None = None) -> None:
        self.method_ids = tuple(method_ids) if method_ids is not None else MEASURED_VALUE_METHOD_IDS

    async def fetch_site_data(self, site: Row, executor: QueryExecutorProtocol) -> int:
        entities = self.matching_entities(site)
        if not entities:
            return 0

        by_entity = await fetch_for_each(
            executor,
            queries.MEASURED_VALUES_BY_ENTITY,
            [entity["analysis_entity_id"] for entity in entities],
        )
        for entity in entities:
            entity["measured_values"] = by_entity[entity["analysis_entity_id"]]
        return len(entities)
