"""behaveguard CLI entry point and dependency wiring."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from pydantic import ValidationError

from behaveguard.config import BehaveGuardSettings, load_config
from behaveguard.core.logging import setup_logging
from behaveguard.core.telemetry import configure_tracing, shutdown_tracing
from behaveguard.delivery.queue import initialize_delivery_queue, reset_delivery_queue
from behaveguard.delivery.transport import DeliveryTransport, HttpDeliveryTransport
from behaveguard.models.snapshot import MetricSnapshot
from behaveguard.persistence.analytics_store import SQLiteAnalyticsStore
from behaveguard.persistence.migrations import run_migrations
from behaveguard.persistence.risk_log import SQLiteRiskLog
from behaveguard.reconcile.dedup import make_bucket_key
from behaveguard.reconcile.reconciler import SessionReconciler
from behaveguard.risk.classifier import RiskClassifier
from behaveguard.service import CollectorService, RiskReadService
from behaveguard.web import CollectorApp

logger = logging.getLogger(__name__)


def _db_path(settings: BehaveGuardSettings) -> str:
    return str(settings.storage.db_path)


def _load_settings(config_path: str) -> BehaveGuardSettings:
    try:
        settings = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    setup_logging(settings.logging.level, json_output=settings.logging.json_output)
    return settings


def _build_read_service(settings: BehaveGuardSettings) -> RiskReadService:
    return RiskReadService(
        SQLiteAnalyticsStore(_db_path(settings)),
        reconciler=SessionReconciler(bucket_key=make_bucket_key(settings.reconcile.bucket_seconds)),
        classifier=RiskClassifier(settings.risk),
    )


def build_collector_app(settings: BehaveGuardSettings) -> CollectorApp:
    db = _db_path(settings)
    store = SQLiteAnalyticsStore(db)
    risk_log = SQLiteRiskLog(db)
    classifier = RiskClassifier(settings.risk)
    return CollectorApp(
        store,
        risk_log,
        CollectorService(store, risk_log, classifier=classifier),
        _build_read_service(settings),
        host=settings.server.host,
        port=settings.server.port,
        auth_token=settings.server.auth_token,
    )


def _build_transport(settings: BehaveGuardSettings) -> DeliveryTransport:
    delivery = settings.delivery
    return HttpDeliveryTransport(
        delivery.endpoint,
        api_key=delivery.api_key,
        timeout_s=delivery.request_timeout_s,
    )


@click.group()
def cli() -> None:
    """behaveguard collector and delivery CLI."""
    setup_logging()


@cli.command("init")
@click.option("--config", "config_path", default="config/behaveguard.yaml", show_default=True)
def init_command(config_path: str) -> None:
    """Create the data directory and apply database migrations."""
    settings = _load_settings(config_path)
    db = _db_path(settings)
    applied = asyncio.run(run_migrations(db))
    if applied:
        click.echo(f"Applied {len(applied)} migration(s) to {db}")
    else:
        click.echo(f"Database {db} is up to date")


async def _serve(settings: BehaveGuardSettings) -> None:
    await run_migrations(_db_path(settings))
    app = build_collector_app(settings)
    await app.serve(log_level=settings.logging.level.lower())


@cli.command("serve")
@click.option("--config", "config_path", default="config/behaveguard.yaml", show_default=True)
def serve_command(config_path: str) -> None:
    """Run the collection endpoint and risk read API."""
    settings = _load_settings(config_path)
    configure_tracing(settings.telemetry)
    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        click.echo("Shutting down.")
    finally:
        shutdown_tracing()


async def _assess(settings: BehaveGuardSettings, session_id: str | None) -> list[dict[str, object]]:
    await run_migrations(_db_path(settings))
    reader = _build_read_service(settings)
    if session_id is None:
        views = await reader.list_all()
    else:
        view = await reader.get(session_id)
        if view is None:
            raise click.ClickException(f"No records for session {session_id}")
        views = [view]
    return [view.model_dump(mode="json") for view in views]


@cli.command("risk")
@click.option("--config", "config_path", default="config/behaveguard.yaml", show_default=True)
@click.option("--session-id", default=None, help="Assess a single session.")
def risk_command(config_path: str, session_id: str | None) -> None:
    """Print reconciled risk assessments as JSON."""
    settings = _load_settings(config_path)
    views = asyncio.run(_assess(settings, session_id))
    click.echo(json.dumps(views, indent=2))


def _read_snapshots(path: Path) -> list[MetricSnapshot]:
    snapshots: list[MetricSnapshot] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            snapshots.append(MetricSnapshot.model_validate_json(line))
        except ValidationError as exc:
            raise click.ClickException(f"{path}:{lineno}: invalid snapshot: {exc}") from exc
    return snapshots


async def _replay(settings: BehaveGuardSettings, snapshots: list[MetricSnapshot]) -> int:
    queue = initialize_delivery_queue(_build_transport(settings), settings.delivery)
    try:
        for snapshot in snapshots:
            queue.enqueue(snapshot)
        await queue.flush()
        return queue.queue_size()
    finally:
        await queue.aclose()
        reset_delivery_queue()


@cli.command("replay")
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", default="config/behaveguard.yaml", show_default=True)
def replay_command(snapshot_file: Path, config_path: str) -> None:
    """Deliver newline-delimited snapshot JSON to the configured endpoint."""
    settings = _load_settings(config_path)
    snapshots = _read_snapshots(snapshot_file)
    if not snapshots:
        click.echo("Nothing to deliver.")
        return

    configure_tracing(settings.telemetry)
    try:
        remaining = asyncio.run(_replay(settings, snapshots))
    finally:
        shutdown_tracing()

    if remaining:
        raise click.ClickException(
            f"{remaining} of {len(snapshots)} snapshots undelivered to {settings.delivery.endpoint}"
        )
    click.echo(f"Delivered {len(snapshots)} snapshots to {settings.delivery.endpoint}")


__all__ = ["build_collector_app", "cli"]
