"""Full site generation — render every page of a site from scratch.

Used to bootstrap a site (or rebuild it after template changes) before
incremental publishing takes over.  Pipeline order:

    1. Copy local static files
    2. List every page entry of every page content type
    3. Reject pages with a missing or duplicate slug
    4. Fetch and compile pages in chunks
    5. Write outputs and build the metadata index snapshot

The snapshot is what ``reconcile`` later applies to the stored index.
"""

from __future__ import annotations

import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from mews._errors import CompileError, ConfigError, ContentError
from mews.content.links import entry_link_ids
from mews.content.model import payload_id
from mews.metadata.index import Snapshot, build_snapshot
from mews.metadata.reconciler import chunked
from mews.render.compiler import PageCompiler, PageOutput

if TYPE_CHECKING:
    from mews.config import SiteConfig
    from mews.content.client import ContentRepository
    from mews.content.resolver import LinkedContent
    from mews.export.store import ObjectStore
    from mews.reactive.graph import ReferenceGraph
    from mews.render.templates import TemplateSet


@dataclass(frozen=True, slots=True)
class ExportedFile:
    """Record of a single object written to the output store.

    Attributes:
        source_path: Logical source (page id, asset URL, or static path).
        output_path: Object key of the written file.
        source_type: Category of the exported file.
        size_bytes: Size of the written object in bytes.
        duration_ms: Time taken to produce and write this object.

    """

    source_path: str
    output_path: str
    source_type: Literal["page", "asset", "static"]
    size_bytes: int
    duration_ms: float


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """Aggregate result of a full site generation.

    Attributes:
        outputs: Every compiled page output.
        snapshot: Metadata index snapshot built from *outputs*.
        files: All objects written.
        duration_ms: Total wall-clock time.

    """

    outputs: tuple[PageOutput, ...]
    snapshot: Snapshot
    files: tuple[ExportedFile, ...]
    duration_ms: float

    @property
    def total_pages(self) -> int:
        return len({o.page_entry_id for o in self.outputs})


class SiteGenerator:
    """Generates a whole site into an object store.

    Args:
        config: Site configuration.
        repository: Content repository to list and fetch pages from.
        store: Destination object store.
        templates: Site template set.

    """

    def __init__(
        self,
        config: SiteConfig,
        repository: ContentRepository,
        store: ObjectStore,
        templates: TemplateSet,
    ) -> None:
        self._config = config
        self._repository = repository
        self._store = store
        self._templates = templates
        self._compiler = PageCompiler(config, templates)

    async def generate(self, graph: ReferenceGraph | None = None) -> GenerateResult:
        """Run the full generation and return the result.

        Args:
            graph: Reference graph to seed.  Every generated page is
                registered under its slug and every link seen in the fetched
                content is added as a reverse edge, so incremental publishing
                can take over from the generated state.  Edges are only ever
                added.

        Raises:
            ConfigError: If the site has no templates.
            ContentError: If a page has a missing or duplicate slug, or a
                content query fails.
            CompileError: If a page fails to compile.

        """
        from mews.export.assets import copy_static

        start = time.perf_counter()
        if not len(self._templates):
            msg = f"Templates directory not found or empty at {self._config.templates_path}"
            raise ConfigError(msg)

        files: list[ExportedFile] = []
        static_files = await copy_static(self._config.static_path, self._store)
        if static_files:
            print(f"  copied {len(static_files)} static files", file=sys.stderr)
        files.extend(static_files)

        page_ids = await self.list_page_ids()
        if not page_ids:
            print("  did not find any pages", file=sys.stderr)

        outputs: list[PageOutput] = []
        for batch in chunked(page_ids, self._config.fetch_chunk_size):
            print(f"  generating page ids {', '.join(batch)}", file=sys.stderr)
            linked = await self._repository.get_entries(batch, include=self._config.max_depth)
            for page_id in batch:
                entry = linked.entries.get(page_id)
                if entry is None:
                    msg = f"Page entry {page_id} was listed but not returned"
                    raise CompileError(msg)
                for output in self._compiler.compile(entry, linked):
                    files.append(await self._write(output))
                    outputs.append(output)
                if graph is not None:
                    graph.set_slug(page_id, self._compiler.slug_of(entry))
            if graph is not None:
                seed_graph(graph, linked)

        return GenerateResult(
            outputs=tuple(outputs),
            snapshot=build_snapshot(outputs),
            files=tuple(files),
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    async def list_page_ids(self) -> list[str]:
        """Ids of every page entry, in content type then listing order.

        Raises:
            ContentError: On a listing item without ``sys.id``, or a non-string
                or duplicate slug.

        """
        slug_field = self._config.slug_field
        seen_slugs: set[str] = set()
        page_ids: list[str] = []
        for content_type in self._config.page_content_types:
            for item in await self._repository.list_pages(content_type, slug_field):
                entry_id = payload_id(item)
                fields = item.get("fields")
                slug = fields.get(slug_field) if isinstance(fields, Mapping) else None
                if not isinstance(slug, str) or not slug:
                    msg = (
                        f"Page entry id {entry_id} does not have a slug "
                        f"or its value is not a string"
                    )
                    raise ContentError(msg)
                if slug in seen_slugs:
                    msg = f'Page entry id {entry_id} has slug "{slug}" that is used by another page'
                    raise ContentError(msg)
                seen_slugs.add(slug)
                page_ids.append(entry_id)
        return page_ids

    async def _write(self, output: PageOutput) -> ExportedFile:
        t0 = time.perf_counter()
        await self._store.put(output.publish_path, output.content, output.content_type)
        return ExportedFile(
            source_path=output.page_entry_id,
            output_path=output.publish_path,
            source_type="page",
            size_bytes=len(output.content),
            duration_ms=(time.perf_counter() - t0) * 1000,
        )


def seed_graph(graph: ReferenceGraph, linked: LinkedContent) -> bool:
    """Add the reverse edges and asset files of a fetched batch to *graph*.

    Returns:
        True if the graph changed.

    """
    changed = False
    for entry in linked.entries.values():
        for linked_id in entry_link_ids(entry.fields):
            changed |= graph.add_referrer(linked_id, entry.id)
    for asset in linked.assets.values():
        if graph.asset_files(asset.id) != asset.file_names:
            graph.set_asset_files(asset.id, asset.file_names)
            changed = True
    return changed
