"""Mews application — wires configuration, storage, and the pipeline.

The three public functions (publish, generate, reconcile) are the primary
entry points; each has an ``*_async`` counterpart for callers that already
run an event loop.
"""

import asyncio
import json
import sys
import time
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import httpx

from mews._errors import ConfigError, ContentError
from mews.config_loader import load_site_config
from mews.content.client import DeliveryClient
from mews.export.assets import AssetPublisher
from mews.export.static import GenerateResult, SiteGenerator
from mews.export.store import FileSystemObjectStore, GraphStore
from mews.metadata.index import JsonMetadataStore, MetadataIndex, MetadataRecord, Snapshot
from mews.metadata.reconciler import ReconcileResult
from mews.observability.collector import PublishCollector
from mews.observability.log import EventLog
from mews.reactive.pipeline import BatchReport, PublishPipeline, SiteServices
from mews.render.templates import TemplateSet


class SiteFactory:
    """Builds (and caches) the services of each site from a config directory.

    All sites share one ``httpx.AsyncClient`` for content queries and asset
    downloads.

    Args:
        config_dir: Directory holding ``<site>.yaml`` / ``<site>.toml`` files.
        client: Optional shared HTTP client; created and owned when omitted.
        **overrides: SiteConfig overrides applied to every site.

    """

    def __init__(
        self,
        config_dir: Path,
        *,
        client: httpx.AsyncClient | None = None,
        **overrides: object,
    ) -> None:
        self._config_dir = Path(config_dir)
        self._client = client if client is not None else httpx.AsyncClient(timeout=30.0)
        self._owns_client = client is None
        self._overrides = overrides
        self._sites: dict[str, SiteServices] = {}

    async def __call__(self, site: str) -> SiteServices:
        """Return the services of *site*.

        Raises:
            ConfigError: If the site configuration is missing or invalid.

        """
        services = self._sites.get(site)
        if services is None:
            services = self.build(site)
            self._sites[site] = services
        return services

    def build(self, site: str) -> SiteServices:
        config = load_site_config(self._config_dir, site, **self._overrides)
        templates = TemplateSet.discover(config.templates_path)
        if not len(templates):
            msg = f"Site {site!r} has no templates at {config.templates_path}"
            raise ConfigError(msg)
        output = FileSystemObjectStore(config.output_path)
        return SiteServices(
            config=config,
            repository=DeliveryClient.for_site(config, client=self._client),
            store=output,
            graph_store=GraphStore(FileSystemObjectStore(config.root), config.metadata_key),
            metadata=MetadataIndex(JsonMetadataStore(config.metadata_index_path), site=site),
            templates=templates,
            assets=AssetPublisher(output, config.assets_folder, client=self._client),
        )

    async def notify(self, site: str, subject: str, message: str) -> None:
        """Route a failure to the webhook configured for *site*, if any.

        Sites without a usable configuration have nowhere to report to; the
        failure is already on stderr and in the event log.

        """
        from mews.observability.notify import WebhookNotifier

        try:
            config = (await self(site)).config
        except ConfigError:
            return
        if config.notify_url:
            await WebhookNotifier(config.notify_url, client=self._client).notify(
                site, subject, message,
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# Event files and snapshots
# ---------------------------------------------------------------------------


def read_events(path: Path) -> list[dict[str, Any]]:
    """Read one JSON event record per line (blank lines ignored).

    Raises:
        ContentError: If a line is not valid JSON.

    """
    records: list[dict[str, Any]] = []
    with Path(path).open(encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                msg = f"{path}:{lineno}: invalid event record: {exc}"
                raise ContentError(msg) from exc
    return records


def write_snapshot(path: Path, snapshot: Snapshot) -> Path:
    """Write a metadata snapshot as ``{"Items": [...]}``."""
    document = {"Items": [snapshot[k].to_item() for k in sorted(snapshot)]}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
    return path


def read_snapshot(path: Path) -> Snapshot:
    """Read a snapshot written by ``write_snapshot``.

    Raises:
        ContentError: If the file is missing or malformed.

    """
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"Cannot read metadata snapshot {path}: {exc}"
        raise ContentError(msg) from exc
    items = document.get("Items") if isinstance(document, Mapping) else None
    if not isinstance(items, list):
        msg = f"Metadata snapshot {path} has no Items list"
        raise ContentError(msg)
    records = [MetadataRecord.from_item(item) for item in items]
    return {record.id: record for record in records}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def publish_async(
    config_dir: Path,
    records: Iterable[Any],
    *,
    log: EventLog | None = None,
    client: httpx.AsyncClient | None = None,
) -> BatchReport:
    """Process a batch of event records.  Never raises for per-site failures.

    Failures are recorded in *log* and posted to each site's ``notify_url``.

    """
    factory = SiteFactory(config_dir, client=client)
    pipeline = PublishPipeline(factory, collector=PublishCollector(log, notifier=factory))
    try:
        return await pipeline.handle_batch(records)
    finally:
        await factory.aclose()


def publish(config_dir: str | Path, events_file: str | Path) -> BatchReport:
    """Publish the events of a JSON-lines file.

    Args:
        config_dir: Directory holding the site configuration files.
        events_file: One ``{"site", "topic", "payload"}`` record per line.

    """
    t0 = time.perf_counter()
    records = read_events(Path(events_file))
    report = asyncio.run(publish_async(Path(config_dir), records))
    _print_batch_summary(report, (time.perf_counter() - t0) * 1000)
    return report


async def generate_async(
    config_dir: Path,
    site: str,
    *,
    client: httpx.AsyncClient | None = None,
    **overrides: object,
) -> GenerateResult:
    """Generate a whole site into its output directory.

    The site's reference graph is seeded from the generated content (pages
    and links are added, nothing is removed) and saved.

    Raises:
        ConfigError: If the site configuration is missing or invalid.
        ContentError: On a duplicate/missing slug or a failed content query.
        CompileError: If a page fails to compile.
        ConflictError: If the graph changed while generating.

    """
    factory = SiteFactory(config_dir, client=client, **overrides)
    try:
        services = await factory(site)
        graph, version = await services.graph_store.load()
        generator = SiteGenerator(
            services.config, services.repository, services.store, services.templates,
        )
        result = await generator.generate(graph)
        await services.graph_store.save(graph, version)
        return result
    finally:
        await factory.aclose()


def generate(
    config_dir: str | Path,
    site: str,
    *,
    snapshot: str | Path | None = None,
    **overrides: object,
) -> GenerateResult:
    """Generate *site* and optionally write its metadata snapshot."""
    result = asyncio.run(generate_async(Path(config_dir), site, **overrides))
    if snapshot is not None:
        write_snapshot(Path(snapshot), result.snapshot)
    _print_generate_summary(site, result)
    return result


async def reconcile_async(
    config_dir: Path,
    site: str,
    snapshot: Snapshot,
    *,
    collector: PublishCollector | None = None,
) -> ReconcileResult:
    """Bring the site's metadata index in line with *snapshot*.

    Raises:
        ConfigError: If the site configuration is missing or invalid.
        ReconcileError: If operations stay unprocessed after the retry.

    """
    from mews.metadata.reconciler import reconcile as apply_snapshot

    config = load_site_config(config_dir, site)
    store = JsonMetadataStore(config.metadata_index_path)
    result = await apply_snapshot(
        store,
        snapshot,
        batch_size=config.reconcile_batch_size,
        retry_delay=config.reconcile_retry_delay,
    )
    if collector is not None:
        collector.record_reconcile(
            site, puts=result.puts, deletes=result.deletes, retried=result.retried,
        )
    return result


def reconcile(config_dir: str | Path, site: str, snapshot: str | Path) -> ReconcileResult:
    """Apply a snapshot file to the site's metadata index."""
    result = asyncio.run(
        reconcile_async(Path(config_dir), site, read_snapshot(Path(snapshot)), collector=PublishCollector())
    )
    print(
        f"  [{site}] metadata reconciled: {result.puts} put, {result.deletes} deleted"
        + (f", {result.retried} retried" if result.retried else ""),
        file=sys.stderr,
    )
    return result


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def _print_batch_summary(report: BatchReport, duration_ms: float) -> None:
    """Print batch completion summary to stderr."""
    lines = ["", "─" * 41]
    for site, site_report in report.sites.items():
        if site_report.error is not None:
            lines.append(f"  [{site}] failed: {site_report.error}")
            continue
        failed = len(site_report.failed_tasks)
        lines.append(
            f"  [{site}] {site_report.events_applied} events, "
            f"{len(site_report.tasks)} tasks"
            + (f", {failed} failed" if failed else "")
            + (f", {len(site_report.event_errors)} events skipped" if site_report.event_errors else "")
        )
    if report.skipped:
        lines.append(f"  Skipped {report.skipped} record{'s' if report.skipped != 1 else ''}")
    lines.append(f"  Done in {duration_ms:.0f}ms")
    print("\n".join(lines), file=sys.stderr)


def _print_generate_summary(site: str, result: GenerateResult) -> None:
    """Print generation completion summary to stderr."""
    static_count = sum(1 for f in result.files if f.source_type == "static")
    lines = [
        "",
        "─" * 41,
        f"  [{site}] Generated {result.total_pages} page{'s' if result.total_pages != 1 else ''}",
    ]
    if static_count > 0:
        lines.append(f"  Copied {static_count} static file{'s' if static_count != 1 else ''}")
    lines.append(f"  Done in {result.duration_ms:.0f}ms")
    print("\n".join(lines), file=sys.stderr)
