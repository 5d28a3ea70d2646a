"""Mews site configuration.

SiteConfig is the per-site configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

from mews._errors import ConfigError

# The delivery API refuses include depths above this
MAX_INCLUDE_DEPTH = 10

# Field -> accepted value types, checked before any other validation
_FIELD_TYPES: dict[str, type | tuple[type, ...]] = {
    "slug_field": str,
    "assets_folder": str,
    "max_depth": int,
    "metadata_key": str,
    "metadata_index": str,
    "templates_dir": str,
    "static_dir": str,
    "output": (str, Path),
    "direct_assets": bool,
    "fetch_chunk_size": int,
    "reconcile_batch_size": int,
    "reconcile_retry_delay": (int, float),
    "space": str,
    "environment": str,
    "cdn_host": str,
    "access_token": str,
    "localized_events": bool,
    "notify_url": (str, type(None)),
}


@dataclass(frozen=True, slots=True)
class SiteConfig:
    """Configuration for one published site.

    Attributes:
        site: Site identifier as it appears in inbound events.
        root: Site root directory (contains templates/, static/).
              Always resolved to an absolute path on construction.
        page_content_types: Content types published directly to a slug.
        slug_field: Field holding a page's slug.
        assets_folder: Folder (under the output root) that receives asset files.
        max_depth: Link include depth used when fetching page content.
        metadata_key: State-store key of the site's reference graph.
        metadata_index: Path of the JSON metadata index (relative to root).
        templates_dir: Directory containing ``<content_type>.<ext>`` templates.
        static_dir: Directory of static files copied by full generation.
        output: Output directory for generated pages and assets.
        direct_assets: Link assets at their upstream URL instead of the
            local assets folder.
        fetch_chunk_size: Page IDs per upstream content query.
        reconcile_batch_size: Operations per metadata batch write.
        reconcile_retry_delay: Seconds to wait before resubmitting
            unprocessed metadata operations.
        space: Content repository space identifier.
        environment: Content repository environment.
        cdn_host: Delivery API host.
        access_token: Delivery API token.
        localized_events: Event payload fields are keyed by locale.
        notify_url: Optional webhook receiving failure notifications.

    """

    site: str
    root: Path = field(default_factory=Path.cwd)
    page_content_types: tuple[str, ...] = ("page",)
    slug_field: str = "slug"
    assets_folder: str = "assets"
    max_depth: int = 3
    metadata_key: str = ""
    metadata_index: str = ""
    templates_dir: str = "templates"
    static_dir: str = "static"
    output: Path = field(default_factory=lambda: Path("dist"))
    direct_assets: bool = False
    fetch_chunk_size: int = 5
    reconcile_batch_size: int = 25
    reconcile_retry_delay: float = 5.0
    space: str = ""
    environment: str = "master"
    cdn_host: str = "cdn.contentful.com"
    access_token: str = ""
    localized_events: bool = True
    notify_url: str | None = None

    def __post_init__(self) -> None:
        if not self.site or not isinstance(self.site, str):
            raise ConfigError("Site configuration has no site identifier")
        self._check_types()
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if isinstance(self.page_content_types, str):
            object.__setattr__(self, "page_content_types", (self.page_content_types,))
        else:
            object.__setattr__(self, "page_content_types", tuple(self.page_content_types))
        if not self.page_content_types:
            raise ConfigError(f"Site {self.site!r}: page_content_types is empty")
        if not self.slug_field:
            raise ConfigError(f"Site {self.site!r}: slug_field is empty")
        if not self.assets_folder or self.assets_folder.strip("/") != self.assets_folder:
            raise ConfigError(
                f"Site {self.site!r}: assets_folder must be a non-empty relative "
                f"folder name, got {self.assets_folder!r}"
            )
        if not isinstance(self.max_depth, int) or not 0 <= self.max_depth <= MAX_INCLUDE_DEPTH:
            raise ConfigError(
                f"Site {self.site!r}: max_depth must be 0..{MAX_INCLUDE_DEPTH}, "
                f"got {self.max_depth!r}"
            )
        if self.fetch_chunk_size < 1:
            raise ConfigError(f"Site {self.site!r}: fetch_chunk_size must be positive")
        if self.reconcile_batch_size < 1:
            raise ConfigError(f"Site {self.site!r}: reconcile_batch_size must be positive")
        if self.reconcile_retry_delay < 0:
            raise ConfigError(f"Site {self.site!r}: reconcile_retry_delay must not be negative")
        if not isinstance(self.output, Path):
            object.__setattr__(self, "output", Path(str(self.output)))
        if not self.metadata_key:
            object.__setattr__(self, "metadata_key", f"{self.site}-content-meta.json")
        if not self.metadata_index:
            object.__setattr__(self, "metadata_index", f"{self.site}-site-meta.json")

    def _check_types(self) -> None:
        for name, expected in _FIELD_TYPES.items():
            value = getattr(self, name)
            # bool is an int subclass; a YAML ``true`` is not a depth or a size.
            wrong_bool = isinstance(value, bool) and bool not in (
                expected if isinstance(expected, tuple) else (expected,)
            )
            if wrong_bool or not isinstance(value, expected):
                raise ConfigError(
                    f"Site {self.site!r}: {name} has the wrong type "
                    f"({type(value).__name__}: {value!r})"
                )
        if not isinstance(self.root, Path):
            raise ConfigError(f"Site {self.site!r}: root must be a path, got {self.root!r}")
        types = self.page_content_types
        if not isinstance(types, str) and (
            not isinstance(types, list | tuple) or not all(isinstance(t, str) for t in types)
        ):
            raise ConfigError(
                f"Site {self.site!r}: page_content_types must be a list of strings, got {types!r}"
            )

    def is_page_type(self, content_type: str) -> bool:
        """Whether entries of *content_type* are published as pages."""
        return content_type in self.page_content_types

    @property
    def templates_path(self) -> Path:
        """Absolute path to templates directory."""
        return self.root / self.templates_dir

    @property
    def static_path(self) -> Path:
        """Absolute path to static files directory."""
        return self.root / self.static_dir

    @property
    def output_path(self) -> Path:
        """Absolute path to output directory."""
        if self.output.is_absolute():
            return self.output
        return self.root / self.output

    @property
    def metadata_index_path(self) -> Path:
        """Absolute path to the JSON metadata index."""
        path = Path(self.metadata_index)
        if path.is_absolute():
            return path
        return self.root / path
