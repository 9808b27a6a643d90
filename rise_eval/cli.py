"""Click CLI commands for inspecting evaluation state."""

from __future__ import annotations

import asyncio
import json
import sys

import click

from rise_eval.config import get_settings
from rise_eval.models.case import CaseRecord
from rise_eval.models.metric import Metric
from rise_eval.services.api_client import EvaluationApiClient
from rise_eval.services.case_builder import build_case
from rise_eval.services.errors import EvaluationError
from rise_eval.services.image_service import AssetType
from rise_eval.services.logging_service import configure_logging, get_logger
from rise_eval.services.metric_cache import MetricCatalogCache
from rise_eval.services.records_service import RecordsService

logger = get_logger("rise_eval.cli")


def _build_client() -> EvaluationApiClient:
    return EvaluationApiClient(get_settings())


def _run(coro):
    """Run a coroutine, turning evaluation errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except EvaluationError as e:
        logger.error("cli_command_failed", error=str(e), kind=e.kind.value)
        click.echo(f"Error: {e.user_message}", err=True)
        sys.exit(1)


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level.")
def cli(log_level: str | None) -> None:
    """Radiology model-output evaluation client."""
    configure_logging(log_level or get_settings().log_level)
    logger.info("cli_command", command=click.get_current_context().invoked_subcommand)


# ---------------------------------------------------------------------------
# metrics command
# ---------------------------------------------------------------------------


async def _fetch_metrics() -> list[Metric]:
    async with _build_client() as client:
        return await client.get_metrics()


@cli.command()
@click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)
def metrics(output_format: str) -> None:
    """List the evaluation metric catalog."""
    catalog = _run(_fetch_metrics())

    if output_format == "json":
        click.echo(json.dumps([m.model_dump() for m in catalog], indent=2))
        return

    if not catalog:
        click.echo("No metrics defined.")
        return

    click.echo(f"  {'ID':<38} {'Name':<28} {'Description'}")
    for m in catalog:
        click.echo(f"  {m.id:<38} {m.name:<28} {m.description or '-'}")


# ---------------------------------------------------------------------------
# progress command
# ---------------------------------------------------------------------------


async def _fetch_case(worklist_id: str) -> CaseRecord | None:
    async with _build_client() as client:
        settings = client.settings
        cache = MetricCatalogCache(client.get_metrics, ttl_seconds=settings.metrics_cache_ttl)
        records = await RecordsService(client, cache).resolve_records(worklist_id)
    result = build_case(records)
    return result.case_record if result else None


@cli.command()
@click.argument("worklist_id")
@click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)
def progress(worklist_id: str, output_format: str) -> None:
    """Show evaluation progress for WORKLIST_ID (an assignment id or 'all')."""
    case = _run(_fetch_case(worklist_id))

    if case is None:
        click.echo("No assigned images found.")
        return

    if output_format == "json":
        click.echo(case.model_dump_json(indent=2))
        return

    click.echo()
    click.echo(f"Worklist {worklist_id}: {case.total_progress}% complete")
    click.echo("=" * 60)
    click.echo(f"  {'#':<4} {'Image':<24} {'Models':<10} {'Status'}")
    for image in case.images:
        models = f"{image.completed_models}/{image.total_models}"
        click.echo(
            f"  {image.image_index + 1:<4} {image.image_id:<24} {models:<10} "
            f"{image.evaluation_status.value}"
        )
    click.echo()


# ---------------------------------------------------------------------------
# refresh-url command
# ---------------------------------------------------------------------------


async def _refresh_url(asset_type: str, asset_id: str) -> dict:
    async with _build_client() as client:
        return await client.refresh_image_url(asset_type, asset_id)


@cli.command("refresh-url")
@click.argument("asset_id")
@click.option(
    "--type",
    "asset_type",
    default=AssetType.IMAGE.value,
    type=click.Choice([t.value for t in AssetType]),
    help="Asset type.",
)
def refresh_url(asset_id: str, asset_type: str) -> None:
    """Request a fresh URL for ASSET_ID."""
    data = _run(_refresh_url(asset_type, asset_id))
    url = data.get("url")
    if not url:
        click.echo("No URL returned.", err=True)
        sys.exit(2)
    click.echo(url)
