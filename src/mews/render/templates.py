"""Template set — per-extension, per-content-type Kida templates.

Templates live flat in the site's templates directory and are named after
the content type they render and the output format they produce::

    templates/
        page.html        -> "page" entries rendered to .html
        page.xml         -> "page" entries rendered to .xml
        hero.html        -> "hero" modules embedded in html pages
        _base.html       -> partial, only used via {% extends %} / {% include %}

Files starting with ``.`` or ``_`` are partials and never rendered directly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

# Partials and hidden files
_HIDDEN_PREFIXES = (".", "_")

type Renderer = Callable[[Mapping[str, Any]], str]


class TemplateSet:
    """Templates grouped by output extension, then content type.

    Args:
        names: Extension -> content type -> template name (as understood by
            the environment's loader).
        env: Template environment with ``get_template(name).render(**ctx)``.
            Created lazily from *template_dirs* when omitted.
        template_dirs: Directories for the default Kida ``FileSystemLoader``.

    """

    def __init__(
        self,
        names: Mapping[str, Mapping[str, str]],
        *,
        env: Any = None,
        template_dirs: Iterable[Path] = (),
    ) -> None:
        self._names = {ext: dict(types) for ext, types in names.items()}
        self._env = env
        self._template_dirs = list(template_dirs)

    @classmethod
    def discover(cls, templates_path: Path, *, env: Any = None) -> TemplateSet:
        """Build a template set from ``<content_type>.<ext>`` files.

        Returns an empty set when the directory does not exist.

        """
        names: dict[str, dict[str, str]] = {}
        if templates_path.is_dir():
            for path in sorted(templates_path.iterdir()):
                if not path.is_file() or path.name.startswith(_HIDDEN_PREFIXES):
                    continue
                content_type, dot, ext = path.name.partition(".")
                if not dot or not content_type or not ext or "." in ext:
                    continue
                names.setdefault(ext, {})[content_type] = path.name
        return cls(names, env=env, template_dirs=[templates_path])

    @property
    def extensions(self) -> tuple[str, ...]:
        """Output extensions in a stable (sorted) order."""
        return tuple(sorted(self._names))

    @property
    def env(self) -> Any:
        """The template environment, created on first use."""
        if self._env is None:
            from kida import Environment, FileSystemLoader

            self._env = Environment(
                loader=FileSystemLoader([str(d) for d in self._template_dirs]),
                autoescape=False,
            )
        return self._env

    def has_template(self, ext: str, content_type: str) -> bool:
        return content_type in self._names.get(ext, {})

    def extensions_for(self, content_type: str) -> tuple[str, ...]:
        """Extensions that can render *content_type*, in stable order."""
        return tuple(ext for ext in self.extensions if self.has_template(ext, content_type))

    def renderer(self, ext: str, content_type: str) -> Renderer | None:
        """Return a renderer for *content_type* in format *ext*, or None."""
        name = self._names.get(ext, {}).get(content_type)
        if name is None:
            return None
        template = self.env.get_template(name)

        def render(context: Mapping[str, Any]) -> str:
            return template.render(**context)

        return render

    def __len__(self) -> int:
        return sum(len(types) for types in self._names.values())
