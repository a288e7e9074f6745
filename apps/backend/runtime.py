"""Process-wide wiring of the data layer and the aggregation services.

Everything a server or CLI process needs is built once from :class:`Settings`
and handed around explicitly; nothing below this module reads configuration on
its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from apps.backend.db import ConnectionProvider, build_provider
from apps.backend.query_executor import QueryExecutor
from contracts.interfaces import SiteCacheProtocol
from infra.config import Settings, get_settings
from services.aggregation.assembler import SiteAssembler
from services.aggregation.cache import build_site_cache
from services.aggregation.preload import PreloadScheduler
from services.enrichment.registry import ModuleRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass
class SiteRuntime:
    settings: Settings
    provider: ConnectionProvider
    executor: QueryExecutor
    registry: ModuleRegistry
    cache: SiteCacheProtocol
    assembler: SiteAssembler

    def preload_scheduler(self) -> PreloadScheduler:
        return PreloadScheduler(
            self.assembler,
            max_concurrency=self.settings.preload.max_concurrency,
            include_method_specific_data=self.settings.assembly.include_method_specific_data,
        )

    def close(self) -> None:
        self.executor.close()


def build_runtime(settings: Settings | None = None) -> SiteRuntime:
    """Build provider, executor, module registry, cache and assembler."""
    settings = settings or get_settings()
    timeout_s = settings.assembly.query_timeout_seconds
    provider = build_provider(
        settings.db,
        statement_timeout_ms=int(timeout_s * 1000) if timeout_s else None,
    )
    executor = QueryExecutor(provider, timeout_seconds=timeout_s)
    registry = default_registry()
    cache = build_site_cache(settings.cache)
    logger.info(
        "runtime_ready policy=%s modules=%s cache=%s",
        provider.policy.value, ",".join(registry.names()), cache.cache_name(),
    )
    return SiteRuntime(
        settings=settings,
        provider=provider,
        executor=executor,
        registry=registry,
        cache=cache,
        assembler=SiteAssembler(executor, registry=registry, cache=cache),
    )
