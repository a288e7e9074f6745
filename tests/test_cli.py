"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

import cli
from apps.backend.runtime import SiteRuntime
from infra.config import ConnectionPolicy, Settings, clear_settings_cache
from services.aggregation.assembler import SiteAssembler
from services.aggregation.cache import FileSiteCache, NoopSiteCache
from services.enrichment.registry import ModuleRegistry
from tests._fakes import sead_executor


class _FakeProvider:
    policy = ConnectionPolicy.POOLED
    max_parallelism = 1


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: Any, tmp_path: Path) -> Any:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    clear_settings_cache()
    yield
    clear_settings_cache()


def _fake_runtime(settings: Settings) -> SiteRuntime:
    executor = sead_executor()
    cache = FileSiteCache(settings.cache.directory) if settings.cache.enabled else NoopSiteCache()
    return SiteRuntime(
        settings=settings,
        provider=_FakeProvider(),  # type: ignore[arg-type]
        executor=executor,  # type: ignore[arg-type]
        registry=ModuleRegistry(),
        cache=cache,
        assembler=SiteAssembler(executor, cache=cache),
    )


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_site_command_prints_document(monkeypatch: Any, capsys: Any) -> None:
    monkeypatch.setattr(cli, "build_runtime", _fake_runtime)

    cli.main(["site", "1"])

    doc = json.loads(capsys.readouterr().out)
    assert doc["site_id"] == 1
    assert [d["dataset_id"] for d in doc["datasets"]] == [500, 501]


def test_site_command_exits_on_missing_site(monkeypatch: Any) -> None:
    monkeypatch.setattr(cli, "build_runtime", _fake_runtime)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["site", "99"])

    assert "not_found" in str(excinfo.value.code)


def test_preload_then_cache_clear(monkeypatch: Any, capsys: Any, tmp_path: Path) -> None:
    monkeypatch.setattr(cli, "build_runtime", _fake_runtime)
    cache_dir = tmp_path / "cache"

    cli.main(["preload", "--cache-dir", str(cache_dir), "--max-concurrency", "2"])
    report = json.loads(capsys.readouterr().out)

    assert report["total"] == 3
    assert sorted(p.name for p in cache_dir.iterdir()) == ["site_1.json", "site_2.json", "site_3.json"]

    cli.main(["cache-clear", "--cache-dir", str(cache_dir), "--site", "2"])
    assert "Removed 1 cached site(s)" in capsys.readouterr().out

    cli.main(["cache-clear", "--cache-dir", str(cache_dir)])
    assert "Removed 2 cached site(s)" in capsys.readouterr().out
    assert list(cache_dir.iterdir()) == []
