"""Site document cache.

One JSON document per site, addressed by its identifier. There is no TTL and
no automatic invalidation: once a site is cached it is served from the cache
until the entry is removed by hand (``evict``/``clear`` or the ``cache-clear``
CLI command). Callers that need fresh data must evict first.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from apps.backend.db import json_default
from infra.config import CacheConfig

logger = logging.getLogger(__name__)

_FILE_PREFIX = "site_"
_FILE_SUFFIX = ".json"


def cache_key(site_id: Any) -> str:
    """Deterministic, filesystem-safe key for a site identifier."""
    text = str(site_id).strip()
    if not text or any(ch in text for ch in ("/", "\\", "\x00")) or text in {".", ".."}:
        raise ValueError(f"invalid site_id for cache key: {site_id!r}")
    return text


class NoopSiteCache:
    """Cache used when caching is disabled: always misses, never stores."""

    def cache_name(self) -> str:
        return "noop"

    def get(self, site_id: Any) -> dict[str, Any] | None:
        _ = site_id
        return None

    def put(self, site: dict[str, Any]) -> None:
        _ = site

    def evict(self, site_id: Any) -> bool:
        _ = site_id
        return False

    def clear(self) -> int:
        return 0

    def site_ids(self) -> Iterator[str]:
        return iter(())


class InMemorySiteCache:
    """In-memory cache; stores serialized JSON so reads never alias writes."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def cache_name(self) -> str:
        return "in_memory"

    def get(self, site_id: Any) -> dict[str, Any] | None:
        raw = self._entries.get(cache_key(site_id))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, site: dict[str, Any]) -> None:
        self._entries[cache_key(site["site_id"])] = json.dumps(site, default=json_default)

    def evict(self, site_id: Any) -> bool:
        return self._entries.pop(cache_key(site_id), None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def site_ids(self) -> Iterator[str]:
        return iter(sorted(self._entries))


class FileSiteCache:
    """File-backed cache writing ``site_<site_id>.json`` under one directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def cache_name(self) -> str:
        return f"file:{self.directory}"

    def path_for(self, site_id: Any) -> Path:
        return self.directory / f"{_FILE_PREFIX}{cache_key(site_id)}{_FILE_SUFFIX}"

    def get(self, site_id: Any) -> dict[str, Any] | None:
        path = self.path_for(site_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("site_cache_read_failed path=%s error=%s", path, exc)
            return None
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("site_cache_corrupt path=%s error=%s", path, exc)
            return None
        if not isinstance(doc, dict):
            logger.warning("site_cache_corrupt path=%s error=not an object", path)
            return None
        return doc

    def put(self, site: dict[str, Any]) -> None:
        """Write atomically (temp file + rename) so readers never see half a file."""
        path = self.path_for(site["site_id"])
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(site, indent=2, ensure_ascii=False, default=json_default)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def evict(self, site_id: Any) -> bool:
        try:
            self.path_for(site_id).unlink()
        except FileNotFoundError:
            return False
        return True

    def clear(self) -> int:
        removed = 0
        for site_id in list(self.site_ids()):
            if self.evict(site_id):
                removed += 1
        return removed

    def site_ids(self) -> Iterator[str]:
        if not self.directory.is_dir():
            return iter(())
        names = sorted(p.name for p in self.directory.glob(f"{_FILE_PREFIX}*{_FILE_SUFFIX}"))
        return iter(name[len(_FILE_PREFIX):-len(_FILE_SUFFIX)] for name in names)


def build_site_cache(config: CacheConfig) -> FileSiteCache | NoopSiteCache:
    """Return the cache selected by configuration."""
    if not config.enabled:
        return NoopSiteCache()
    return FileSiteCache(config.directory)
