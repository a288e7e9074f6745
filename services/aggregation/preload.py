"""Bulk site preloading with a concurrency cap.

Admission is event driven: a semaphore slot is taken before a site id is
dequeued and handed back when its assembly finishes, successfully or not. At
most ``max_concurrency`` assemblies are ever in flight and every id is
processed exactly once. A failing site is logged and recorded in the report;
it never stops the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from apps.backend import queries
from contracts.errors import DataAccessError
from services.aggregation.assembler import SiteAssembler

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5


@dataclass(frozen=True)
class PreloadFailure:
    site_id: Any
    kind: str
    message: str


@dataclass
class PreloadReport:
    """Summary of one preload run."""

    total: int = 0
    succeeded: int = 0
    failures: list[PreloadFailure] = field(default_factory=list)
    max_in_flight: int = 0
    elapsed_s: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "max_in_flight": self.max_in_flight,
            "elapsed_s": round(self.elapsed_s, 3),
            "failures": [
                {"site_id": f.site_id, "kind": f.kind, "message": f.message} for f in self.failures
            ],
        }


class PreloadScheduler:
    """Drive a :class:`SiteAssembler` over many site ids under a concurrency cap."""

    def __init__(
        self,
        assembler: SiteAssembler,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        include_method_specific_data: bool = True,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._assembler = assembler
        self.max_concurrency = max_concurrency
        self._include_method_specific_data = include_method_specific_data

    async def site_ids(self) -> list[Any]:
        """All site ids in ascending order."""
        rows = await self._assembler.executor.fetch_all(queries.ALL_SITE_IDS)
        return [row["site_id"] for row in rows]

    async def preload_all(self) -> PreloadReport:
        ids = await self.site_ids()
        logger.info("preload_start sites=%d max_concurrency=%d", len(ids), self.max_concurrency)
        return await self.run(ids)

    async def run(self, site_ids: Iterable[Any]) -> PreloadReport:
        """Assemble every id once, never more than ``max_concurrency`` at a time."""
        pending = deque(site_ids)
        report = PreloadReport(total=len(pending))
        slots = asyncio.Semaphore(self.max_concurrency)
        in_flight = 0
        tasks: list[asyncio.Task[None]] = []
        started = time.perf_counter()

        async def _assemble(site_id: Any) -> None:
            nonlocal in_flight
            t0 = time.perf_counter()
            try:
                await self._assembler.assemble(
                    site_id,
                    verbose=False,
                    include_method_specific_data=self._include_method_specific_data,
                )
            except DataAccessError as exc:
                report.failures.append(PreloadFailure(site_id=site_id, kind=exc.code, message=str(exc)))
                logger.warning("preload_site_failed site_id=%s kind=%s error=%s", site_id, exc.code, exc)
            except Exception as exc:  # noqa: BLE001 - one broken site must not stop the run
                report.failures.append(PreloadFailure(site_id=site_id, kind="unexpected", message=str(exc)))
                logger.exception("preload_site_crashed site_id=%s", site_id)
            else:
                report.succeeded += 1
                logger.debug(
                    "preload_site_done site_id=%s duration_ms=%.2f",
                    site_id, (time.perf_counter() - t0) * 1000.0,
                )
            finally:
                in_flight -= 1
                slots.release()

        while pending:
            await slots.acquire()
            site_id = pending.popleft()
            in_flight += 1
            report.max_in_flight = max(report.max_in_flight, in_flight)
            tasks.append(asyncio.create_task(_assemble(site_id)))

        if tasks:
            await asyncio.gather(*tasks)

        report.elapsed_s = time.perf_counter() - started
        logger.info(
            "preload_complete total=%d succeeded=%d failed=%d elapsed_s=%.2f",
            report.total, report.succeeded, report.failed, report.elapsed_s,
        )
        return report
