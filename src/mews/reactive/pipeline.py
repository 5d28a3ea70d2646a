"""Publish pipeline — turns a batch of content events into published output.

Orchestrates the full propagation flow for every site in a batch:
    1. Load the site's configuration and reference graph
    2. Apply the site's events to the graph, one at a time, in arrival order
    3. Fan the accumulated work out into independent tasks:
       generate page, remove page, publish asset, remove asset, save graph
    4. Collect every task's outcome into a report

Sites are processed concurrently and never affect each other.  Within a
site, a failing event is skipped and a failing task is reported; neither
stops the rest of the batch.  ``handle_batch`` itself never raises for
content, compile, publish, or configuration failures.
"""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mews._errors import ContentError, MewsError
from mews.metadata.reconciler import chunked
from mews.reactive.classifier import SiteEventContext, classify, normalize_topic
from mews.render.compiler import PageCompiler

if TYPE_CHECKING:
    from mews.config import SiteConfig
    from mews.content.client import ContentRepository
    from mews.content.model import Asset
    from mews.content.resolver import LinkedContent
    from mews.export.assets import AssetPublisher
    from mews.export.store import GraphStore, ObjectStore
    from mews.metadata.index import MetadataIndex
    from mews.observability.collector import PublishCollector
    from mews.observability.events import TaskKind
    from mews.render.templates import TemplateSet


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EventRecord:
    """One inbound content event.

    Attributes:
        site: Site the event is addressed to.
        topic: Raw topic name (normalized during dispatch).
        payload: Entry or asset payload.

    """

    site: str
    topic: str
    payload: Any

    @classmethod
    def from_mapping(cls, raw: Any) -> EventRecord:
        """Parse ``{"site": ..., "topic": ..., "payload": ...}``.

        Raises:
            ContentError: If the record has no site or topic.

        """
        if not isinstance(raw, Mapping):
            msg = f"Event record must be an object, got {type(raw).__name__}"
            raise ContentError(msg)
        site = raw.get("site")
        topic = raw.get("topic")
        if not isinstance(site, str) or not site:
            msg = "Event record has no site"
            raise ContentError(msg)
        if not isinstance(topic, str) or not topic:
            msg = f"Event record for site {site!r} has no topic"
            raise ContentError(msg)
        return cls(site=site, topic=topic, payload=raw.get("payload"))


@dataclass(frozen=True, slots=True)
class SiteServices:
    """Everything the pipeline needs to process one site.

    Attributes:
        config: Site configuration.
        repository: Content repository for page fetches.
        store: Object store receiving pages and assets.
        graph_store: Reference graph persistence.
        metadata: Metadata index.
        templates: Site template set.
        assets: Asset publisher.

    """

    config: SiteConfig
    repository: ContentRepository
    store: ObjectStore
    graph_store: GraphStore
    metadata: MetadataIndex
    templates: TemplateSet
    assets: AssetPublisher


type SiteLoader = Callable[[str], Awaitable[SiteServices]]


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of one fan-out task.

    Attributes:
        kind: Task kind.
        target: Page id, slug, asset id, file name, or graph key.
        ok: The task completed without raising.
        error: ``"<ErrorType>: <message>"`` when the task failed.
        duration_ms: Wall-clock time of the task.

    """

    kind: TaskKind
    target: str
    ok: bool
    error: str | None = None
    duration_ms: float = 0.0


@dataclass(slots=True)
class SiteReport:
    """What happened to one site in a batch.

    Attributes:
        site: Site identifier.
        error: Site-level failure (configuration or graph load); when set
            no event was applied and nothing was written.
        events_applied: Events that mutated the site context.
        event_errors: Messages of events that were skipped as malformed.
        tasks: Results of the fan-out tasks.

    """

    site: str
    error: str | None = None
    events_applied: int = 0
    event_errors: list[str] = field(default_factory=list)
    tasks: list[TaskResult] = field(default_factory=list)

    @property
    def failed_tasks(self) -> list[TaskResult]:
        return [t for t in self.tasks if not t.ok]

    @property
    def ok(self) -> bool:
        return self.error is None and not self.event_errors and not self.failed_tasks


@dataclass(slots=True)
class BatchReport:
    """Per-site outcome of ``PublishPipeline.handle_batch``.

    Attributes:
        sites: Site id -> report, in first-seen order.
        skipped: Records that were dropped before reaching a site (no site,
            or a topic the pipeline does not handle).

    """

    sites: dict[str, SiteReport] = field(default_factory=dict)
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return all(report.ok for report in self.sites.values())


# ---------------------------------------------------------------------------
# Shared chunked fetch
# ---------------------------------------------------------------------------


class ChunkedFetcher:
    """Fetches page content in chunks, shared by the pages of each chunk.

    Page ids are grouped into chunks up front.  The first page task to ask
    for a chunk starts its query; every other page of that chunk awaits the
    same task, so each chunk costs one upstream request.

    Args:
        repository: Content repository.
        entry_ids: Page ids to be generated, in queueing order.
        chunk_size: Page ids per query.
        include: Link include depth.

    """

    def __init__(
        self,
        repository: ContentRepository,
        entry_ids: Sequence[str],
        chunk_size: int,
        include: int,
    ) -> None:
        self._repository = repository
        self._include = include
        self._chunks = [list(chunk) for chunk in chunked(list(entry_ids), chunk_size)]
        self._chunk_of = {
            entry_id: index
            for index, chunk in enumerate(self._chunks)
            for entry_id in chunk
        }
        self._pending: dict[int, asyncio.Task[LinkedContent]] = {}

    @property
    def chunks(self) -> list[list[str]]:
        return [list(chunk) for chunk in self._chunks]

    async def fetch(self, entry_id: str) -> LinkedContent:
        """Content of the chunk containing *entry_id*.

        Raises:
            KeyError: If *entry_id* was not part of the planned ids.
            ContentError: If the chunk query failed.

        """
        index = self._chunk_of[entry_id]
        task = self._pending.get(index)
        if task is None:
            task = asyncio.ensure_future(
                self._repository.get_entries(self._chunks[index], include=self._include)
            )
            self._pending[index] = task
        return await task


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PublishPipeline:
    """Processes batches of content events for any number of sites.

    Args:
        load_site: Async factory returning the services of a site; raises
            ``ConfigError`` when the site cannot be configured.
        collector: Optional event collector (events, failure notifications).

    """

    def __init__(
        self,
        load_site: SiteLoader,
        collector: PublishCollector | None = None,
    ) -> None:
        self._load_site = load_site
        self._collector = collector

    async def handle_batch(self, records: Iterable[Any]) -> BatchReport:
        """Process every record of a batch and report per-site outcomes.

        Records are grouped by site preserving arrival order.  Unrecognized
        topics are skipped silently; records without a site are skipped
        with a warning.

        """
        report = BatchReport()
        by_site: dict[str, list[tuple[str, Any]]] = {}
        for raw in records:
            try:
                record = EventRecord.from_mapping(raw)
            except ContentError as exc:
                print(f"  skipping event record: {exc}", file=sys.stderr)
                report.skipped += 1
                continue
            topic = normalize_topic(record.topic)
            if topic is None:
                report.skipped += 1
                continue
            by_site.setdefault(record.site, []).append((topic, record.payload))

        site_reports = await asyncio.gather(*(
            self.handle_site(site, events) for site, events in by_site.items()
        ))
        for site_report in site_reports:
            report.sites[site_report.site] = site_report
        return report

    async def handle_site(self, site: str, events: Sequence[tuple[str, Any]]) -> SiteReport:
        """Run both phases for one site.  Never raises."""
        report = SiteReport(site)
        try:
            services = await self._load_site(site)
            graph, version = await services.graph_store.load()
        except Exception as exc:
            # Usually ConfigError/ContentError; anything else stays confined to this site.
            error = str(exc) if isinstance(exc, MewsError) else f"{type(exc).__name__}: {exc}"
            print(f"  [{site}] cannot process site: {error}", file=sys.stderr)
            report.error = error
            await self._notify(site, f"Unable to process events of site {site}: {error}")
            return report

        ctx = SiteEventContext(site=site, config=services.config, graph=graph, version=version)
        self.apply_events(ctx, events, report)
        if not ctx.has_work:
            print(f"  [{site}] nothing to publish", file=sys.stderr)
            return report

        try:
            report.tasks = await self.run_tasks(ctx, services)
        except Exception as exc:
            # Tasks are individually wrapped; this only catches scheduling bugs.
            print(f"  [{site}] task fan-out failed: {exc}", file=sys.stderr)
            report.error = f"{type(exc).__name__}: {exc}"
            await self._notify(site, f"Task fan-out failed for site {site}: {exc}")
        return report

    # ------------------------------------------------------------------
    # Phase 1: graph update
    # ------------------------------------------------------------------

    def apply_events(
        self,
        ctx: SiteEventContext,
        events: Sequence[tuple[str, Any]],
        report: SiteReport,
    ) -> None:
        """Apply events strictly in order; a malformed event is skipped.

        Any exception from one event (not only ``ContentError``) is recorded
        against that event; the remaining events still apply.

        """
        for topic, payload in events:
            entity_id = _entity_id(payload)
            try:
                classify(ctx, topic, payload)
            except Exception as exc:
                error = str(exc) if isinstance(exc, ContentError) else f"{type(exc).__name__}: {exc}"
                print(f"  [{ctx.site}] skipping {topic} event: {error}", file=sys.stderr)
                report.event_errors.append(error)
                if self._collector is not None:
                    self._collector.record_classified(ctx.site, topic, entity_id, error=error)
                continue
            report.events_applied += 1
            if self._collector is not None:
                self._collector.record_classified(ctx.site, topic, entity_id)

    # ------------------------------------------------------------------
    # Phase 2: task fan-out
    # ------------------------------------------------------------------

    async def run_tasks(self, ctx: SiteEventContext, services: SiteServices) -> list[TaskResult]:
        """Run every queued task of a site concurrently."""
        config = services.config
        compiler = PageCompiler(config, services.templates)
        fetcher = ChunkedFetcher(
            services.repository, ctx.entry_ids_to_regen, config.fetch_chunk_size, config.max_depth,
        )

        tasks: list[Awaitable[TaskResult]] = []
        for page_id in ctx.entry_ids_to_regen:
            tasks.append(self._run_task(
                ctx.site, "generate_page", page_id,
                self._generate_page(services, compiler, fetcher, page_id),
            ))
        for slug, page_id in ctx.page_slugs_to_remove.items():
            tasks.append(self._run_task(
                ctx.site, "remove_page", slug,
                self._remove_page(services, slug, page_id),
            ))
        for asset in ctx.assets_to_publish.values():
            tasks.append(self._run_task(
                ctx.site, "publish_asset", asset.id,
                self._publish_asset(services, asset),
            ))
        for file_name in ctx.asset_file_names_to_remove:
            tasks.append(self._run_task(
                ctx.site, "remove_asset", file_name,
                services.assets.remove(file_name),
            ))
        if ctx.dirty:
            tasks.append(self._run_task(
                ctx.site, "save_graph", services.graph_store.key,
                self._save_graph(ctx, services),
            ))
        return list(await asyncio.gather(*tasks))

    async def _run_task(
        self,
        site: str,
        kind: TaskKind,
        target: str,
        work: Awaitable[object],
    ) -> TaskResult:
        t0 = time.perf_counter()
        try:
            await work
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            print(f"  [{site}] {kind} {target} failed: {exc}", file=sys.stderr)
            if self._collector is not None:
                await self._collector.record_failure(site, kind, target, exc)
            return TaskResult(
                kind=kind,
                target=target,
                ok=False,
                error=f"{type(exc).__name__}: {exc}",
                duration_ms=elapsed,
            )
        elapsed = (time.perf_counter() - t0) * 1000
        if self._collector is not None:
            self._collector.record_task(site, kind, target, duration_ms=elapsed)
        return TaskResult(kind=kind, target=target, ok=True, duration_ms=elapsed)

    async def _generate_page(
        self,
        services: SiteServices,
        compiler: PageCompiler,
        fetcher: ChunkedFetcher,
        page_id: str,
    ) -> None:
        site = services.config.site
        linked = await fetcher.fetch(page_id)
        entry = linked.entries.get(page_id)
        if entry is None or page_id not in linked.items:
            print(f"  [{site}] page #{page_id} not found in fetched content, skipping", file=sys.stderr)
            return

        outputs = compiler.compile(entry, linked)
        for output in outputs:
            print(f"  [{site}] publishing page #{page_id} at {output.publish_path}", file=sys.stderr)
            await services.store.put(output.publish_path, output.content, output.content_type)

        previous = await services.metadata.record_page(outputs)
        new_paths = {output.publish_path for output in outputs}
        if previous is not None and previous.publish_path and previous.publish_path not in new_paths:
            # Slug changed: the outputs under the old slug are orphans now.
            old_slug = previous.publish_path.rsplit(".", 1)[0]
            for ext in services.templates.extensions:
                old_path = f"{old_slug}.{ext}"
                if old_path not in new_paths:
                    await services.store.delete(old_path)

    async def _remove_page(self, services: SiteServices, slug: str, page_id: str) -> None:
        for ext in services.templates.extensions:
            path = f"{slug}.{ext}"
            print(f"  [{services.config.site}] deleting page at {path}", file=sys.stderr)
            await services.store.delete(path)
        await services.metadata.forget_page(page_id)

    async def _publish_asset(self, services: SiteServices, asset: Asset) -> None:
        await services.assets.publish(asset)
        await services.metadata.record_asset_files(asset.id, asset.file_names)

    async def _save_graph(self, ctx: SiteEventContext, services: SiteServices) -> None:
        version = await services.graph_store.save(ctx.graph, ctx.version)
        ctx.version = version
        if self._collector is not None:
            self._collector.record_graph_saved(ctx.site, services.graph_store.key, version)

    async def _notify(self, site: str, message: str) -> None:
        if self._collector is not None:
            await self._collector.notify(site, f"mews error at {site}", message)


def _entity_id(payload: Any) -> str | None:
    if isinstance(payload, Mapping):
        sys_ = payload.get("sys")
        if isinstance(sys_, Mapping) and isinstance(sys_.get("id"), str):
            return sys_["id"]
    return None

