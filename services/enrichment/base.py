"""Base contracts for enrichment modules.

An enrichment module attaches method-specific payloads (taxon abundances,
ring-width series, measured values, ...) to the analysis entities of an
assembled site. Modules select their entities through the site's datasets: an
entity matches when its dataset was produced by one of the module's methods.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from contracts.interfaces import QueryExecutorProtocol
from contracts.site_types import Row, iter_analysis_entities


@dataclass(frozen=True)
class ModuleOutcome:
    """Result of running one module against one site."""

    name: str
    ok: bool
    entities: int = 0
    error: BaseException | None = None
    elapsed_ms: float = 0.0

    @property
    def message(self) -> str:
        return "" if self.error is None else f"{type(self.error).__name__}: {self.error}"


@dataclass(frozen=True)
class EnrichmentReport:
    """Per-module outcomes of one enrichment pass, in registry order."""

    outcomes: tuple[ModuleOutcome, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failures(self) -> list[ModuleOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


class EnrichmentModule(ABC):
    """Abstract enrichment module contract."""

    name: str = ""
    method_ids: tuple[int, ...] = ()

    def matching_entities(self, site: Row) -> list[Row]:
        """Analysis entities whose dataset belongs to one of ``method_ids``."""
        dataset_ids = {
            dataset.get("dataset_id")
            for dataset in site.get("datasets") or []
            if dataset.get("method_id") in self.method_ids
        }
        if not dataset_ids:
            return []
        return [entity for entity in iter_analysis_entities(site) if entity.get("dataset_id") in dataset_ids]

    @abstractmethod
    async def fetch_site_data(self, site: Row, executor: QueryExecutorProtocol) -> int:
        """Enrich ``site`` in place and return the number of entities touched.

        Implementations fetch everything first and attach afterwards, so a
        failed fetch leaves the site untouched. With no matching entities the
        site must not be modified at all.
        """
        raise NotImplementedError


async def fetch_for_each(
    executor: QueryExecutorProtocol,
    sql: str,
    keys: Sequence[Any],
) -> dict[Any, list[Row]]:
    """Run ``sql`` once per distinct key concurrently and map key -> rows."""
    distinct = list(dict.fromkeys(keys))
    results = await asyncio.gather(*(executor.fetch_all(sql, (key,)) for key in distinct))
    return dict(zip(distinct, results, strict=True))
