"""Site aggregation: assembly pipeline, caching, preloading and dataset lookups."""

from services.aggregation.assembler import SiteAssembler
from services.aggregation.cache import FileSiteCache, InMemorySiteCache, NoopSiteCache, build_site_cache
from services.aggregation.datasets import fetch_dataset, fetch_sample_datasets
from services.aggregation.grouping import DatasetGroup, group_by_dataset
from services.aggregation.preload import PreloadReport, PreloadScheduler

__all__ = [
    "SiteAssembler",
    "FileSiteCache",
    "InMemorySiteCache",
    "NoopSiteCache",
    "build_site_cache",
    "fetch_dataset",
    "fetch_sample_datasets",
    "DatasetGroup",
    "group_by_dataset",
    "PreloadReport",
    "PreloadScheduler",
]
