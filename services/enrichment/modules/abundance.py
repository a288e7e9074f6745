"""Taxon abundance counts (insects, macrofossils, pollen, ...)."""

from __future__ import annotations

from collections.abc import Iterable

from apps.backend import queries
from contracts.interfaces import QueryExecutorProtocol
from contracts.site_types import Row
from services.enrichment.base import EnrichmentModule, fetch_for_each
from services.enrichment.registry import register_module

# Methods whose datasets record abundances per taxon.
ABUNDANCE_METHOD_IDS: tuple[int, ...] = (3, 6, 8, 14, 15, 40, 111)


@register_module("abundance")
class AbundanceModule(EnrichmentModule):
    """Attach ``abundances`` to each entity, each abundance carrying its ``taxon``."""

    def __init__(self, method_ids: Iterable[int] | None = None) -> None:
        self.method_ids = tuple(method_ids) if method_ids is not None else ABUNDANCE_METHOD_IDS

    async def fetch_site_data(self, site: Row, executor: QueryExecutorProtocol) -> int:
        entities = self.matching_entities(site)
        if not entities:
            return 0

        by_entity = await fetch_for_each(
            executor,
            queries.ABUNDANCES_BY_ENTITY,
            [entity["analysis_entity_id"] for entity in entities],
        )
        taxon_ids = [
            row["taxon_id"]
            for rows in by_entity.values()
            for row in rows
            if row.get("taxon_id") is not None
        ]
        taxa_rows = await fetch_for_each(executor, queries.TAXON_BY_ID, taxon_ids)
        taxa = {taxon_id: (rows[0] if rows else None) for taxon_id, rows in taxa_rows.items()}

        for entity in entities:
            abundances = [dict(row) for row in by_entity[entity["analysis_entity_id"]]]
            for abundance in abundances:
                abundance["taxon"] = taxa.get(abundance.get("taxon_id"))
            entity["abundances"] = abundances
        return len(entities)
