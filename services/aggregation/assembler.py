"""Site assembly pipeline.

Builds one Site document from the normalized SEAD tables in strict stages.
Each stage issues one query per record of its driving collection, runs them
concurrently and waits for all of them (a join barrier) before the next stage
starts:

1. cache lookup (when caching is enabled); a hit returns immediately
2. base site row
3. sample groups of the site
4. per sample group: descriptions, method, physical samples
5. per physical sample: analysis entities, features
6. distinct datasets referenced by the analysis entities
7. distinct methods referenced by the datasets
8. enrichment modules (optional)
9. cache write (best-effort)

Joins are all-or-nothing: the first failing query fails the whole assembly.
Sibling queries already in flight are not cancelled; their results are
dropped. Results are attached only after a whole stage succeeded, so a failed
assembly never leaves a half-filled document behind.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from apps.backend import queries
from apps.backend.db_metrics import measure_stage
from contracts.errors import DataAccessError, EnrichmentError, NotFoundError
from contracts.interfaces import QueryExecutorProtocol, SiteCacheProtocol
from contracts.site_types import Row, iter_analysis_entities, iter_physical_samples
from infra.logging_config import log_context
from services.aggregation.cache import NoopSiteCache
from services.aggregation.grouping import unique_ordered
from services.enrichment.registry import ModuleRegistry

logger = logging.getLogger(__name__)


class SiteAssembler:
    """Assemble complete site documents through a query executor."""

    def __init__(
        self,
        executor: QueryExecutorProtocol,
        *,
        registry: ModuleRegistry | None = None,
        cache: SiteCacheProtocol | None = None,
    ) -> None:
        self._executor = executor
        self._registry = registry if registry is not None else ModuleRegistry()
        self._cache = cache if cache is not None else NoopSiteCache()

    @property
    def executor(self) -> QueryExecutorProtocol:
        return self._executor

    @property
    def cache(self) -> SiteCacheProtocol:
        return self._cache

    @property
    def caching_enabled(self) -> bool:
        return not isinstance(self._cache, NoopSiteCache)

    async def assemble(
        self,
        site_id: Any,
        *,
        verbose: bool = True,
        include_method_specific_data: bool = True,
    ) -> Row:
        """Return the complete site document for ``site_id``.

        Raises :class:`NotFoundError` when the site does not exist, another
        :class:`DataAccessError` subclass when a stage fails, and
        :class:`EnrichmentError` when any enrichment module failed.
        """
        level = logging.INFO if verbose else logging.DEBUG
        with log_context(site_id=site_id):
            logger.log(level, "site_request site_id=%s", site_id)

            if self.caching_enabled:
                cached = await self._cache_get(site_id)
                if cached is not None:
                    logger.log(level, "site_cache_hit site_id=%s", site_id)
                    return cached

            try:
                with measure_stage("site_total", logger=logger, level=level):
                    site = await self._build(site_id, level=level)
                    if include_method_specific_data:
                        await self._enrich(site, verbose=verbose, level=level)
            except DataAccessError as exc:
                logger.warning("site_assembly_failed site_id=%s kind=%s error=%s", site_id, exc.code, exc)
                raise

            if self.caching_enabled:
                await self._cache_put(site)
            return site

    # ---------------------------
    # Stages
    # ---------------------------

    async def _build(self, site_id: Any, *, level: int) -> Row:
        with measure_stage("site_row", logger=logger, level=level):
            row = await self._executor.fetch_one(queries.SITE_BY_ID, (site_id,))
        if row is None:
            raise NotFoundError("site", site_id)
        site: Row = dict(row)

        with measure_stage("sample_groups", logger=logger, level=level):
            site["sample_groups"] = await self._executor.fetch_all(queries.SAMPLE_GROUPS_BY_SITE, (site_id,))
        sample_groups: list[Row] = site["sample_groups"]

        with measure_stage("sample_group_descriptions", logger=logger, level=level):
            await self._attach_many(
                sample_groups, queries.SAMPLE_GROUP_DESCRIPTIONS, key="sample_group_id", target="descriptions"
            )
        with measure_stage("sample_group_methods", logger=logger, level=level):
            await self._attach_one(sample_groups, queries.METHOD_BY_ID, key="method_id", target="method")
        with measure_stage("physical_samples", logger=logger, level=level):
            await self._attach_many(
                sample_groups, queries.PHYSICAL_SAMPLES_BY_GROUP, key="sample_group_id", target="physical_samples"
            )

        physical_samples = list(iter_physical_samples(site))
        with measure_stage("analysis_entities", logger=logger, level=level):
            await self._attach_many(
                physical_samples,
                queries.ANALYSIS_ENTITIES_BY_SAMPLE,
                key="physical_sample_id",
                target="analysis_entities",
            )
        with measure_stage("features", logger=logger, level=level):
            await self._attach_many(
                physical_samples, queries.SAMPLE_FEATURES, key="physical_sample_id", target="features"
            )

        with measure_stage("datasets", logger=logger, level=level):
            dataset_ids = unique_ordered(
                entity["dataset_id"]
                for entity in iter_analysis_entities(site)
                if entity.get("dataset_id") is not None
            )
            site["datasets"] = await self._fetch_distinct(queries.DATASET_BY_ID, dataset_ids, entity="dataset")

        with measure_stage("analysis_methods", logger=logger, level=level):
            method_ids = unique_ordered(
                dataset["method_id"] for dataset in site["datasets"] if dataset.get("method_id") is not None
            )
            site["analysisMethods"] = await self._fetch_distinct(queries.METHOD_BY_ID, method_ids, entity="method")

        return site

    async def _enrich(self, site: Row, *, verbose: bool, level: int) -> None:
        if not len(self._registry):
            return
        with measure_stage("method_specific_data", logger=logger, level=level):
            report = await self._registry.invoke(site, self._executor, verbose=verbose)
        if not report.ok:
            raise EnrichmentError(report.failures, site=site)

    # ---------------------------
    # Fan-out helpers
    # ---------------------------

    async def _attach_many(self, records: Sequence[Row], sql: str, *, key: str, target: str) -> None:
        """Query ``sql`` once per record and store all rows under ``target``."""
        results = await asyncio.gather(
            *(self._executor.fetch_all(sql, (record.get(key),)) for record in records)
        )
        for record, rows in zip(records, results, strict=True):
            record[target] = rows

    async def _attach_one(self, records: Sequence[Row], sql: str, *, key: str, target: str) -> None:
        """Resolve one referenced row per record (None when the key is null)."""

        async def _resolve(record: Row) -> Row | None:
            ref = record.get(key)
            if ref is None:
                return None
            return await self._executor.fetch_one(sql, (ref,))

        results = await asyncio.gather(*(_resolve(record) for record in records))
        for record, row in zip(records, results, strict=True):
            record[target] = row

    async def _fetch_distinct(self, sql: str, ids: Sequence[Any], *, entity: str) -> list[Row]:
        """Fetch one row per distinct id, keeping id order and skipping dangling ids."""
        rows = await asyncio.gather(*(self._executor.fetch_one(sql, (value,)) for value in ids))
        found: list[Row] = []
        for value, row in zip(ids, rows, strict=True):
            if row is None:
                logger.warning("dangling_reference entity=%s id=%s", entity, value)
                continue
            found.append(row)
        return found

    # ---------------------------
    # Cache
    # ---------------------------

    async def _cache_get(self, site_id: Any) -> Row | None:
        try:
            return await asyncio.to_thread(self._cache.get, site_id)
        except (OSError, ValueError) as exc:
            logger.warning("site_cache_lookup_failed site_id=%s error=%s", site_id, exc)
            return None

    async def _cache_put(self, site: Row) -> None:
        # A cache that cannot be written never fails the request.
        try:
            await asyncio.to_thread(self._cache.put, site)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("site_cache_write_failed site_id=%s error=%s", site.get("site_id"), exc)
