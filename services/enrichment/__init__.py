"""Enrichment framework.

This package contains:
- module contracts (`base.py`)
- registry/discovery (`registry.py`)
- built-in modules (`modules/`)
"""

from services.enrichment.base import (
    EnrichmentModule,
    EnrichmentReport,
    ModuleOutcome,
    fetch_for_each,
)
from services.enrichment.registry import (
    ModuleRegistry,
    default_registry,
    list_module_names,
    register_module,
)

__all__ = [
    "EnrichmentModule",
    "EnrichmentReport",
    "ModuleOutcome",
    "fetch_for_each",
    "ModuleRegistry",
    "default_registry",
    "list_module_names",
    "register_module",
]
