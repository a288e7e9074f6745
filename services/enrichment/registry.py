"""Registry for enrichment module implementations.

Built-in module classes register themselves with :func:`register_module` when
their module is imported. A :class:`ModuleRegistry` is the ordered, fixed set
of module *instances* a server runs with; it is built once at startup and
never changes while requests are served.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
import pkgutil
import time
from collections.abc import Callable, Iterable, Iterator

from contracts.interfaces import QueryExecutorProtocol
from contracts.site_types import Row
from services.enrichment.base import EnrichmentModule, EnrichmentReport, ModuleOutcome

logger = logging.getLogger(__name__)

ModuleType = type[EnrichmentModule]

_MODULE_CLASSES: dict[str, ModuleType] = {}

BUILTIN_ORDER: tuple[str, ...] = ("abundance", "dendrochronology", "measured_values")


def register_module(name: str) -> Callable[[ModuleType], ModuleType]:
    """Register an enrichment module class under a name."""

    normalized = str(name or "").strip().lower()
    if not normalized:
        raise ValueError("module name must be non-empty")

    def _decorator(klass: ModuleType) -> ModuleType:
        if normalized in _MODULE_CLASSES:
            raise KeyError(f"Enrichment module already registered for '{normalized}'")
        klass.name = normalized
        _MODULE_CLASSES[normalized] = klass
        return klass

    return _decorator


def discover(package_name: str = "services.enrichment.modules") -> None:
    """Import all modules under the built-in modules package."""
    package = importlib.import_module(package_name)
    package_path = getattr(package, "__path__", None)
    if package_path is None:
        return
    prefix = package.__name__ + "."
    for module_info in pkgutil.walk_packages(package_path, prefix):
        importlib.import_module(module_info.name)


def list_module_names() -> list[str]:
    """Return registered module names in deterministic order."""
    return sorted(_MODULE_CLASSES.keys())


def get_module_class(name: str) -> ModuleType | None:
    key = str(name or "").strip().lower()
    if not key:
        return None
    return _MODULE_CLASSES.get(key)


class ModuleRegistry:
    """Ordered collection of enrichment module instances."""

    def __init__(self, modules: Iterable[EnrichmentModule] = ()) -> None:
        self._modules: list[EnrichmentModule] = []
        for module in modules:
            self.register(module)

    def register(self, module: EnrichmentModule) -> None:
        """Append a module; names must be unique within one registry."""
        if not module.name:
            raise ValueError(f"{type(module).__name__} has no name")
        if any(existing.name == module.name for existing in self._modules):
            raise KeyError(f"Enrichment module '{module.name}' registered twice")
        self._modules.append(module)

    def names(self) -> list[str]:
        return [module.name for module in self._modules]

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[EnrichmentModule]:
        return iter(self._modules)

    async def _run_one(
        self,
        module: EnrichmentModule,
        site: Row,
        executor: QueryExecutorProtocol,
        *,
        verbose: bool,
    ) -> ModuleOutcome:
        start = time.perf_counter()
        try:
            touched = await module.fetch_site_data(site, executor)
        except Exception as exc:  # noqa: BLE001 - every module error becomes its outcome
            elapsed_ms = round((time.perf_counter() - start) * 1000.0, 2)
            logger.warning(
                "enrichment_module_failed module_name=%s elapsed_ms=%.2f error=%s",
                module.name, elapsed_ms, exc,
            )
            return ModuleOutcome(name=module.name, ok=False, error=exc, elapsed_ms=elapsed_ms)
        elapsed_ms = round((time.perf_counter() - start) * 1000.0, 2)
        logger.log(
            logging.INFO if verbose else logging.DEBUG,
            "enrichment_module_done module_name=%s entities=%d elapsed_ms=%.2f",
            module.name, touched, elapsed_ms,
        )
        return ModuleOutcome(name=module.name, ok=True, entities=touched, elapsed_ms=elapsed_ms)

    async def invoke(
        self,
        site: Row,
        executor: QueryExecutorProtocol,
        *,
        verbose: bool = True,
    ) -> EnrichmentReport:
        """Run every module concurrently and capture one outcome per module."""
        outcomes = await asyncio.gather(
            *(self._run_one(module, site, executor, verbose=verbose) for module in self._modules)
        )
        return EnrichmentReport(outcomes=tuple(outcomes))


def default_registry() -> ModuleRegistry:
    """Registry with the built-in modules in their fixed startup order."""
    discover()
    modules: list[EnrichmentModule] = []
    for name in BUILTIN_ORDER:
        klass = get_module_class(name)
        if klass is None:
            raise KeyError(f"Built-in enrichment module missing: {name!r}")
        modules.append(klass())
    return ModuleRegistry(modules)
