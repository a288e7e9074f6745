"""Grouping helpers for analysis entity collections."""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from contracts.site_types import DatasetGroupWireFormat

K = TypeVar("K", bound=Hashable)


@dataclass
class DatasetGroup:
    """Analysis entities sharing one ``dataset_id``."""

    dataset_id: Any
    analysis_entities: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> DatasetGroupWireFormat:
        return {"datasetId": self.dataset_id, "analysisEntities": list(self.analysis_entities)}


def unique_ordered(values: Iterable[K]) -> list[K]:
    """Distinct values in first-seen order."""
    seen: set[K] = set()
    ordered: list[K] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def group_by_dataset(entities: Iterable[Mapping[str, Any]]) -> list[DatasetGroup]:
    """Partition entities by ``dataset_id`` in a single pass.

    Groups come out in order of first appearance of each dataset id and keep
    the input order of their entities.
    """
    groups: dict[Any, DatasetGroup] = {}
    for entity in entities:
        key = entity.get("dataset_id")
        group = groups.get(key)
        if group is None:
            group = groups[key] = DatasetGroup(dataset_id=key)
        group.analysis_entities.append(entity)  # type: ignore[arg-type]
    return list(groups.values())
