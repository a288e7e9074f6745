"""
SEAD site aggregator CLI (flat-layout friendly).

Usage
-----
sead-data serve --port 8080
sead-data site 1234 > site_1234.json
sead-data preload --max-concurrency 10
sead-data cache-clear [--site 1234]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from apps.backend.db import json_default
from apps.backend.runtime import SiteRuntime, build_runtime
from contracts.errors import DataAccessError
from infra.config import Settings, get_settings
from infra.logging_config import setup_logging
from services.aggregation.cache import FileSiteCache
from version import ENGINE_NAME, ENGINE_VERSION


def _settings_with(args: argparse.Namespace) -> Settings:
    """Settings from the environment with CLI overrides applied."""
    settings = get_settings()
    updates = {}
    if getattr(args, "no_cache", False):
        updates["cache"] = settings.cache.model_copy(update={"enabled": False})
    if getattr(args, "cache_dir", None):
        updates["cache"] = settings.cache.model_copy(update={"enabled": True, "directory": args.cache_dir})
    if getattr(args, "max_concurrency", None):
        updates["preload"] = settings.preload.model_copy(update={"max_concurrency": args.max_concurrency})
    return settings.model_copy(update=updates) if updates else settings


def cmd_serve(args: argparse.Namespace) -> None:
    from apps.flask_api.flask_app import create_app

    settings = get_settings()
    app = create_app(settings=settings)
    host = args.host or settings.api.host
    port = args.port or settings.api.port
    app.run(host=host, port=port)


def cmd_site(args: argparse.Namespace) -> None:
    runtime: SiteRuntime = build_runtime(_settings_with(args))
    try:
        site = asyncio.run(
            runtime.assembler.assemble(
                args.site_id,
                include_method_specific_data=not args.skip_modules
                and runtime.settings.assembly.include_method_specific_data,
            )
        )
    except DataAccessError as exc:
        raise SystemExit(f"site {args.site_id}: {exc.code}: {exc}") from exc
    finally:
        runtime.close()
    json.dump(site, sys.stdout, indent=2, ensure_ascii=False, default=json_default)
    sys.stdout.write("\n")


def cmd_preload(args: argparse.Namespace) -> None:
    settings = _settings_with(args)
    if not settings.cache.enabled:
        print("Site caching is disabled (USE_SITE_CACHING=0); preloaded sites will not be kept.")
    runtime = build_runtime(settings)
    try:
        scheduler = runtime.preload_scheduler()
        if args.site:
            report = asyncio.run(scheduler.run(args.site))
        else:
            report = asyncio.run(scheduler.preload_all())
    finally:
        runtime.close()
    print(json.dumps(report.to_dict(), indent=2, default=json_default))
    if report.failed:
        raise SystemExit(1)


def cmd_cache_clear(args: argparse.Namespace) -> None:
    settings = _settings_with(args)
    # The cache directory is cleared even when caching is currently disabled.
    cache = FileSiteCache(settings.cache.directory)
    if args.site:
        removed = sum(1 for site_id in args.site if cache.evict(site_id))
    else:
        removed = cache.clear()
    print(f"Removed {removed} cached site(s) from {cache.cache_name()}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sead-data", description=f"{ENGINE_NAME} {ENGINE_VERSION}")
    p.add_argument("--log-level", default=None, help="Log level (or SEAD_LOG_LEVEL env var).")
    p.add_argument("--log-json", action="store_true", help="Emit JSON log lines.")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_cache_dir(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--cache-dir", default=None, help="Site cache directory; enables caching (or SITE_CACHE_DIR env var)."
        )

    sp = sub.add_parser("serve", help="Run the HTTP API.")
    sp.add_argument("--host", default=None, help="Bind address (or API_HOST env var).")
    sp.add_argument("--port", type=int, default=None, help="Port (or API_PORT env var).")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("site", help="Assemble one site and print it as JSON.")
    sp.add_argument("site_id", help="Site identifier.")
    sp.add_argument("--skip-modules", action="store_true", help="Do not run enrichment modules.")
    sp.add_argument("--no-cache", action="store_true", help="Bypass the site cache.")
    add_cache_dir(sp)
    sp.set_defaults(func=cmd_site)

    sp = sub.add_parser("preload", help="Assemble and cache every site (or the given ones).")
    sp.add_argument("--site", action="append", default=None, help="Site id to preload (repeatable).")
    sp.add_argument(
        "--max-concurrency", type=int, default=None, help="Sites in flight (or PRELOAD_MAX_CONCURRENCY env var)."
    )
    add_cache_dir(sp)
    sp.set_defaults(func=cmd_preload)

    sp = sub.add_parser("cache-clear", help="Remove cached site documents.")
    sp.add_argument("--site", action="append", default=None, help="Site id to evict (repeatable).")
    add_cache_dir(sp)
    sp.set_defaults(func=cmd_cache_clear)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, json_logs=True if args.log_json else None)
    args.func(args)


if __name__ == "__main__":
    main()
