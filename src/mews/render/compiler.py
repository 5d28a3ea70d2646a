"""Page compiler — one top-level entry in, one output per format out.

For a page entry the compiler:

    1. Validates the slug field.
    2. Computes the involved ids: every entry reachable through Entry links
       from the page's fields (through modules of modules, and so on), and
       every asset referenced along the way.
    3. Renders the page through each extension that has a template for its
       content type.

The involved ids are what the metadata index records as "this page used
these entries", so they must cover everything the render could have read.
"""

from __future__ import annotations

import mimetypes
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mews._errors import CompileError
from mews.content.links import AssetLink, EntryLink, iter_field_links
from mews.render.context import RenderingContext

if TYPE_CHECKING:
    from mews.config import SiteConfig
    from mews.content.model import Entry
    from mews.content.resolver import LinkedContent
    from mews.render.templates import TemplateSet


@dataclass(frozen=True, slots=True)
class PageOutput:
    """Result of compiling one page for one output extension.

    Attributes:
        page_entry_id: Id of the page entry.
        extension: Output extension (``"html"``).
        publish_path: Object key of the output (``"<slug>.<ext>"``).
        content_type: MIME type of the output.
        content: Rendered bytes (UTF-8).
        involved_entry_ids: Entries the page transitively linked to,
            excluding itself.
        involved_asset_ids: Assets linked from the page or any involved entry.

    """

    page_entry_id: str
    extension: str
    publish_path: str
    content_type: str
    content: bytes
    involved_entry_ids: frozenset[str]
    involved_asset_ids: frozenset[str]


def involved_ids(entry: Entry, linked: LinkedContent) -> tuple[frozenset[str], frozenset[str]]:
    """Transitive closure of links from *entry* over the fetched batch.

    Breadth-first over Entry links with a visited set: cycles terminate and
    every entry is expanded once.  The result is a pair of sets, so it does
    not depend on the order fields or links are visited in.

    Returns:
        ``(entry_ids, asset_ids)``, with *entry*'s own id excluded.

    Raises:
        LinkError: If a reachable entry is missing from the batch.

    """
    entry_ids: set[str] = {entry.id}
    asset_ids: set[str] = set()
    queue = deque([entry])
    while queue:
        current = queue.popleft()
        for link in iter_field_links(current.fields):
            if isinstance(link, AssetLink):
                asset_ids.add(link.id)
            elif isinstance(link, EntryLink) and link.id not in entry_ids:
                entry_ids.add(link.id)
                queue.append(linked.entry(link))
    entry_ids.discard(entry.id)
    return frozenset(entry_ids), frozenset(asset_ids)


class PageCompiler:
    """Compiles page entries through a site's template set.

    Args:
        config: Site configuration.
        templates: Template set with one or more extensions.
        direct_assets: Override ``config.direct_assets`` (full generation
            for local preview links assets at their upstream URLs).

    """

    def __init__(
        self,
        config: SiteConfig,
        templates: TemplateSet,
        *,
        direct_assets: bool | None = None,
    ) -> None:
        self._config = config
        self._templates = templates
        self._direct_assets = config.direct_assets if direct_assets is None else direct_assets

    def slug_of(self, entry: Entry) -> str:
        """Return the page's slug.

        Raises:
            CompileError: If the slug is missing or not a string.

        """
        slug = entry.fields.get(self._config.slug_field)
        if not isinstance(slug, str) or not slug:
            msg = f"Page entry {entry.id} does not have a slug or its value is not a string"
            raise CompileError(msg)
        return slug

    def compile(self, entry: Entry, linked: LinkedContent) -> tuple[PageOutput, ...]:
        """Render *entry* in every format that has a template for its type.

        Raises:
            CompileError: Missing slug, no template in any format, or a
                helper failure during rendering.
            LinkError: A link target is missing from *linked* or a helper got
                a malformed link.

        """
        slug = self.slug_of(entry)
        extensions = self._templates.extensions_for(entry.content_type)
        if not extensions:
            msg = f"No templates found for page type {entry.content_type!r}"
            raise CompileError(msg)

        entry_ids, asset_ids = involved_ids(entry, linked)

        outputs: list[PageOutput] = []
        for ext in extensions:
            context = RenderingContext(
                linked, self._templates, self._config, ext,
                direct_assets=self._direct_assets,
            )
            try:
                text = context.render_entry(entry)
            except CompileError:
                raise
            except Exception as exc:
                msg = f"Failed to render page entry {entry.id} as {ext!r}: {exc}"
                raise CompileError(msg) from exc
            outputs.append(PageOutput(
                page_entry_id=entry.id,
                extension=ext,
                publish_path=f"{slug}.{ext}",
                content_type=_content_type(ext),
                content=text.encode("utf-8"),
                involved_entry_ids=entry_ids,
                involved_asset_ids=asset_ids,
            ))
        return tuple(outputs)


def _content_type(ext: str) -> str:
    content_type, _ = mimetypes.guess_type(f"x.{ext}")
    return content_type or "application/octet-stream"
