"""Site, sample and dataset endpoints Blueprint."""

from typing import Any

from flask import Blueprint

from apps.flask_api.utils import _ok, _pretty_json, get_runtime, run_async
from services.aggregation.datasets import fetch_dataset, fetch_sample_datasets

sites_bp = Blueprint("sites", __name__)


@sites_bp.route("/site/<site_id>", methods=["GET"])
def get_site(site_id: str) -> Any:
    """Assembled site document (served from the cache when enabled)."""
    runtime = get_runtime()
    site = run_async(
        runtime.assembler.assemble(
            site_id,
            include_method_specific_data=runtime.settings.assembly.include_method_specific_data,
        )
    )
    return _pretty_json(site)


@sites_bp.route("/sample/<sample_id>", methods=["GET"])
def get_sample(sample_id: str) -> Any:
    """Analysis entities of one physical sample, grouped by dataset."""
    groups = run_async(fetch_sample_datasets(get_runtime().executor, sample_id))
    return _pretty_json([group.to_dict() for group in groups])


@sites_bp.route("/dataset/<dataset_id>", methods=["GET"])
def get_dataset(dataset_id: str) -> Any:
    dataset = run_async(fetch_dataset(get_runtime().executor, dataset_id))
    return _pretty_json(dataset)


@sites_bp.route("/preload", methods=["GET"])
def preload() -> Any:
    """Assemble and cache every site; returns the run summary.

    Blocks until the whole run finished.
    """
    runtime = get_runtime()
    report = run_async(runtime.preload_scheduler().preload_all())
    return _ok({"preload": report.to_dict()})
