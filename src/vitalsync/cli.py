"""CLI for vitalsync."""

import asyncio
import json
import logging

import click


def _tz(name: str | None):
    if not name:
        return None
    from zoneinfo import ZoneInfo

    return ZoneInfo(name)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
def main(verbose: bool) -> None:
    """vitalsync -- health baselines, readiness and metric relay."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--metric", "-m", type=click.Choice(["heart_rate", "hrv"]), default="heart_rate",
              help="Which metric in the export to analyze.")
@click.option("--tz", default=None, help="IANA timezone for day boundaries (default: host zone).")
@click.option("--window", default=None, type=int, help="Baseline window in days.")
@click.option("--output", "-o", default=None, help="Write the report JSON to file.")
def analyze(file: str, metric: str, tz: str | None, window: int | None, output: str | None) -> None:
    """Daily summaries, baseline and badge from a sample export."""
    from vitalsync.analytics.pipeline import run_heart_rate_pipeline, run_hrv_pipeline
    from vitalsync.config import get_settings
    from vitalsync.ingestion.source import load_samples_file

    samples = load_samples_file(file).get(metric, [])
    run = run_heart_rate_pipeline if metric == "heart_rate" else run_hrv_pipeline
    report = run(samples, tz=_tz(tz), window=window or get_settings().baseline_window)

    label = "Resting HR" if metric == "heart_rate" else "HRV"
    unit = "bpm" if metric == "heart_rate" else "ms"
    click.echo(f"\n{'=' * 60}")
    click.echo(f"  {label} insight: {len(samples)} samples, {len(report.daily)} days")
    click.echo(f"{'=' * 60}")
    if report.today is not None:
        t = report.today
        rv = f"{t.resting_value:.1f} {unit}" if t.resting_value is not None else "--"
        click.echo(f"  Today:      {t.date}  {label.lower()} {rv}")
        click.echo(f"  Range:      {t.min:.0f}-{t.max:.0f} {unit} (avg {t.avg:.1f})")
    base = report.baselines[-1].baseline if report.baselines else None
    click.echo(f"  Baseline:   {base:.1f} {unit}" if base is not None else "  Baseline:   --")
    if report.today_delta_pct is not None:
        click.echo(f"  Delta:      {report.today_delta_pct:+.1f}% vs baseline")
    click.echo(f"  Badge:      {report.badge.value} ({report.reason})")
    if report.sparkline:
        click.echo("  Last 7d:    " + " ".join(f"{v:.0f}" for v in report.sparkline))
    click.echo(f"{'=' * 60}")

    if output:
        with open(output, "w") as f:
            f.write(report.to_json())
        click.echo(f"\nReport written to {output}")


@main.command()
@click.argument("file", type=click.Path(exists=True))
def readiness(file: str) -> None:
    """Score a readiness pack ({"today": {...}, "base": {...}})."""
    from vitalsync.analytics.readiness import readiness_from_pack

    with open(file) as f:
        pack = json.load(f)
    result = readiness_from_pack(pack)

    click.echo(f"Readiness: {result.score:.0f}/100  {result.badge.value}  ({result.reason})")
    for d in result.drivers:
        click.echo(f"  {d.driver.value:<18} {d.points:+6.1f}  {d.reason}")


@main.command()
@click.option("--url", default=None, help="Relay base URL.")
def ping(url: str | None) -> None:
    """Check the relay's /health endpoint."""
    from vitalsync.config import get_settings
    from vitalsync.ingestion.client import RelayClient

    settings = get_settings()

    async def _ping() -> bool:
        async with RelayClient(url or settings.relay_base_url, settings.request_timeout_sec) as client:
            return await client.health()

    ok = asyncio.run(_ping())
    click.echo("relay ok" if ok else "relay unreachable")
    if not ok:
        raise SystemExit(1)


@main.command()
@click.argument("query")
@click.option("--url", default=None, help="Relay base URL.")
def sql(query: str, url: str | None) -> None:
    """Run a debug SQL query on the relay."""
    from vitalsync.config import get_settings
    from vitalsync.ingestion.client import RelayClient

    settings = get_settings()

    async def _sql() -> str:
        async with RelayClient(url or settings.relay_base_url, settings.request_timeout_sec) as client:
            return await client.dev_sql(query)

    click.echo(asyncio.run(_sql()))


def _build_scheduler(file: str, url: str | None, checkpoints: str | None):
    from vitalsync.config import get_settings
    from vitalsync.ingestion.checkpoint import CheckpointStore, JsonFileStore
    from vitalsync.ingestion.client import RelayClient
    from vitalsync.ingestion.queue import IngestionQueue
    from vitalsync.ingestion.rows import IngestContext
    from vitalsync.ingestion.scheduler import AutoIngestionScheduler, RefreshGuard
    from vitalsync.ingestion.source import FileSampleSource

    settings = get_settings()
    client = RelayClient(url or settings.relay_base_url, settings.request_timeout_sec)
    queue = IngestionQueue(
        client.insert_rows,
        chunk_size=settings.chunk_size,
        backoff_steps=settings.backoff_steps,
    )
    scheduler = AutoIngestionScheduler(
        source=FileSampleSource(file),
        queue=queue,
        checkpoints=CheckpointStore(JsonFileStore(checkpoints or settings.checkpoint_path)),
        ctx=IngestContext(settings.user_id, settings.source, settings.device_id),
        interval_sec=settings.poll_interval_sec,
        lookback_hours=settings.lookback_hours,
        refresh_guard=RefreshGuard(settings.refresh_min_spacing_sec),
    )
    return client, queue, scheduler


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--url", default=None, help="Relay base URL.")
@click.option("--checkpoints", default=None, help="Checkpoint file path.")
@click.option("--wait", default=30.0, help="Seconds to wait for delivery (incl. retries).")
def push(file: str, url: str | None, checkpoints: str | None, wait: float) -> None:
    """Run one ingestion cycle from a sample export."""

    async def _push() -> tuple[dict[str, int], int]:
        client, queue, scheduler = _build_scheduler(file, url, checkpoints)
        async with client:
            counts = await scheduler.run_once()
            try:
                await asyncio.wait_for(queue.drain(), timeout=wait)
            except asyncio.TimeoutError:
                pass
            queue.cancel_retry()
            return counts or {}, queue.pending_count

    counts, pending = asyncio.run(_push())
    for metric, n in counts.items():
        click.echo(f"  {metric}: queued {n}")
    click.echo(f"Pending (undelivered): {pending}")
    if pending:
        click.echo("Checkpoints were not advanced past undelivered rows; the next push resends them.")
        raise SystemExit(1)


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--url", default=None, help="Relay base URL.")
@click.option("--checkpoints", default=None, help="Checkpoint file path.")
def watch(file: str, url: str | None, checkpoints: str | None) -> None:
    """Poll a sample export continuously and relay new samples."""

    async def _watch() -> None:
        client, queue, scheduler = _build_scheduler(file, url, checkpoints)
        async with client:
            scheduler.set_active(True)
            click.echo(f"Watching {file} every {scheduler.interval_sec:.0f}s (Ctrl+C to stop)")
            try:
                while True:
                    await asyncio.sleep(1)
            finally:
                scheduler.set_active(False)
                click.echo(f"\nStopped. pending={queue.pending_count}")

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        click.echo("\nStopped.")


if __name__ == "__main__":
    main()
