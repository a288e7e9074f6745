"""
TypedDict definitions for the assembled Site document.

Rows come back from Postgres as plain dicts keyed by column name; the
assembler adds the nested keys below. Only the columns the aggregation logic
relies on are declared, every other column passes through untouched.

Key names follow the JSON document served to the SEAD browser
(``sample_groups``, ``analysisMethods``, ...), so cached files stay compatible.
"""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

Row = dict[str, Any]


class MethodRecord(TypedDict):
    method_id: int
    method_group_id: NotRequired[int | None]
    method_name: NotRequired[str]


class DatasetRecord(TypedDict):
    dataset_id: int
    method_id: int | None
    biblio_id: NotRequired[int | None]
    dataset_name: NotRequired[str]


class AnalysisEntityRecord(TypedDict):
    analysis_entity_id: int
    physical_sample_id: int
    dataset_id: int
    # Attached by enrichment modules
    abundances: NotRequired[list[Row]]
    dendro: NotRequired[list[Row]]
    measured_values: NotRequired[list[Row]]


class PhysicalSampleRecord(TypedDict):
    physical_sample_id: int
    sample_group_id: int
    analysis_entities: NotRequired[list[AnalysisEntityRecord]]
    features: NotRequired[list[Row]]


class SampleGroupRecord(TypedDict):
    sample_group_id: int
    site_id: int
    method_id: int | None
    descriptions: NotRequired[list[Row]]
    method: NotRequired[MethodRecord | None]
    physical_samples: NotRequired[list[PhysicalSampleRecord]]


class SiteDocument(TypedDict):
    """Fully assembled site aggregate."""
    site_id: int
    site_name: NotRequired[str]
    sample_groups: list[SampleGroupRecord]
    datasets: list[DatasetRecord]
    analysisMethods: list[MethodRecord]  # noqa: N815 - wire format key


class DatasetGroupWireFormat(TypedDict):
    datasetId: Any  # noqa: N815
    analysisEntities: list[Row]  # noqa: N815


def iter_physical_samples(site: Row):
    """Yield every physical sample of a site in document order."""
    for sample_group in site.get("sample_groups") or []:
        yield from sample_group.get("physical_samples") or []


def iter_analysis_entities(site: Row):
    """Yield every analysis entity of a site in document order."""
    for physical_sample in iter_physical_samples(site):
        yield from physical_sample.get("analysis_entities") or []


__all__ = [
    "Row",
    "MethodRecord",
    "DatasetRecord",
    "AnalysisEntityRecord",
    "PhysicalSampleRecord",
    "SampleGroupRecord",
    "SiteDocument",
    "DatasetGroupWireFormat",
    "iter_physical_samples",
    "iter_analysis_entities",
]
