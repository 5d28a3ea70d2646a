"""Template rendering context — helpers that resolve links while rendering.

Templates receive an entry's fields, its ``sys`` metadata, and these helpers::

    {{ module(hero) }}           render a linked entry with its own template
    {{ asset_src(image) }}       URL of a linked asset
    {{ markdown(body) }}         Markdown -> HTML (image URLs rewritten)
    {{ rich_text(content) }}     rich-text document -> HTML
    {{ page_href(related) }}     URL of a linked page

Helpers validate their link argument at the boundary: passing anything but
the expected link variant raises ``LinkError`` and fails the page.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from mews._errors import CompileError
from mews.content.links import require_asset_link, require_entry_link
from mews.render.richtext import render_rich_text

if TYPE_CHECKING:
    from mews.config import SiteConfig
    from mews.content.model import Asset, Entry
    from mews.content.resolver import LinkedContent
    from mews.render.templates import TemplateSet

# ![alt](url "title"): the url group is rewritten, the rest kept verbatim
_MD_IMAGE_RE = re.compile(r"(!\[[^\]]*\]\(\s*)<?([^)\s>]+)>?")


def local_asset_path(assets_folder: str, url: str) -> str:
    """Site-absolute path of an asset published into *assets_folder*."""
    return f"/{assets_folder}/{url.rsplit('/', 1)[-1]}"


class RenderingContext:
    """Binds templates of one output extension to link-resolving helpers.

    Args:
        linked: The fetched content batch.
        templates: Site template set.
        config: Site configuration (assets folder, slug field, page types).
        ext: Output extension being rendered.
        direct_assets: Link assets at their upstream URL.

    """

    def __init__(
        self,
        linked: LinkedContent,
        templates: TemplateSet,
        config: SiteConfig,
        ext: str,
        *,
        direct_assets: bool = False,
    ) -> None:
        self._linked = linked
        self._templates = templates
        self._config = config
        self._ext = ext
        self._direct_assets = direct_assets
        self._md_renderer: Any = None

    @property
    def ext(self) -> str:
        return self._ext

    def template_context(self, entry: Entry) -> dict[str, Any]:
        """Build the render context for *entry*: fields, ``sys``, helpers."""
        context: dict[str, Any] = dict(entry.fields)
        context["sys"] = entry.sys
        context["module"] = self.module
        context["asset_src"] = self.asset_src
        context["markdown"] = self.markdown
        context["rich_text"] = self.rich_text
        context["page_href"] = self.page_href
        return context

    def render_entry(self, entry: Entry) -> str:
        """Render *entry* with the template registered for its content type.

        Raises:
            CompileError: If there is no such template for this extension.

        """
        renderer = self._templates.renderer(self._ext, entry.content_type)
        if renderer is None:
            msg = f'No "{self._ext}" template found for type "{entry.content_type}"'
            raise CompileError(msg)
        return renderer(self.template_context(entry))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def module(self, link: Any) -> str:
        """Render a linked entry as an embedded fragment."""
        if not link:
            return ""
        entry_link = require_entry_link(link, "module")
        return self.render_entry(self._linked.entry(entry_link))

    def asset_src(self, link: Any) -> str:
        """Resolve a linked asset to its URL."""
        asset_link = require_asset_link(link, "asset_src")
        return self.asset_url(self._linked.asset(asset_link))

    def asset_url(self, asset: Asset) -> str:
        if self._direct_assets:
            return asset.url
        return local_asset_path(self._config.assets_folder, asset.files[0].file_name)

    def image_url(self, url: str) -> str:
        """Apply the asset rule to a raw image URL found in marked-up text."""
        if self._direct_assets:
            return url
        return local_asset_path(self._config.assets_folder, url)

    def markdown(self, text: Any) -> str:
        """Convert Markdown to HTML, rewriting image references."""
        if not text:
            return ""
        source = _MD_IMAGE_RE.sub(
            lambda m: f"{m.group(1)}{self.image_url(m.group(2))}", str(text),
        )
        if self._md_renderer is None:
            from patitas import Markdown

            self._md_renderer = Markdown(plugins=["table"])
        return self._md_renderer(source)

    def rich_text(self, document: Any) -> str:
        """Convert a rich-text document to HTML."""
        return render_rich_text(
            document,
            module=self.module,
            asset_src=self.asset_src,
            entry_href=self.page_href,
        )

    def page_href(self, link: Any) -> str:
        """URL of a linked page entry in the current extension.

        Raises:
            CompileError: If the linked entry is not a page with a slug.

        """
        entry = self._linked.entry(require_entry_link(link, "page_href"))
        slug = entry.fields.get(self._config.slug_field)
        if not self._config.is_page_type(entry.content_type) or not isinstance(slug, str):
            msg = f"Linked entry {entry.id} is not a page with a slug"
            raise CompileError(msg)
        return f"/{slug}.{self._ext}"
