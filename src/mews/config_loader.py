"""Load SiteConfig from ``<site>.yaml`` / ``<site>.toml`` in a config directory.

Merges file config with keyword overrides. Overrides take precedence.
Unlike a missing optional setting, a missing or unreadable site file is
fatal: nothing can be published for a site we know nothing about.
"""

from __future__ import annotations

import os
from pathlib import Path

from mews._errors import ConfigError
from mews.config import SiteConfig

ACCESS_TOKEN_ENV = "MEWS_ACCESS_TOKEN"

_KNOWN_KEYS = frozenset(SiteConfig.__dataclass_fields__) - {"site"}


def load_site_config(config_dir: Path, site: str, **overrides: object) -> SiteConfig:
    """Load the configuration of *site* from *config_dir*.

    Looks for ``<site>.yaml``, ``<site>.yml`` or ``<site>.toml``.  Relative
    ``root`` values are resolved against *config_dir*.  The access token
    falls back to the ``MEWS_ACCESS_TOKEN`` environment variable.

    Raises:
        ConfigError: If no config file exists, it cannot be parsed, or it
            holds invalid values.

    """
    config_dir = Path(config_dir)
    file_config = _read_site_config(config_dir, site)
    merged = {**file_config, **overrides}

    root = Path(str(merged.pop("root", config_dir)))
    if not root.is_absolute():
        root = config_dir / root
    if "output" in merged and not isinstance(merged["output"], Path):
        merged["output"] = Path(str(merged["output"]))
    if "page_content_types" in merged and isinstance(merged["page_content_types"], list):
        merged["page_content_types"] = tuple(merged["page_content_types"])
    if not merged.get("access_token"):
        merged["access_token"] = os.environ.get(ACCESS_TOKEN_ENV, "")

    try:
        return SiteConfig(site=site, root=root, **merged)  # type: ignore[arg-type]
    except (TypeError, AttributeError, ValueError) as exc:
        msg = f"Invalid configuration for site {site!r}: {exc}"
        raise ConfigError(msg) from exc


def _read_site_config(config_dir: Path, site: str) -> dict[str, object]:
    """Read the site file as a flat dict of known keys."""
    for name in (f"{site}.yaml", f"{site}.yml"):
        path = config_dir / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = config_dir / f"{site}.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    msg = f"No configuration found for site {site!r} in {config_dir}"
    raise ConfigError(msg)


def _parse_yaml(path: Path) -> dict[str, object]:
    import yaml

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Failed to read {path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path} must contain a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return _flatten_mews_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    import tomllib

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Failed to read {path}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_mews_section(data)


def _flatten_mews_section(data: dict[str, object]) -> dict[str, object]:
    """Extract mews.* keys and known top-level keys into one dict."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k != "mews" and k in _KNOWN_KEYS:
            result[k] = v
    section = data.get("mews")
    if isinstance(section, dict):
        for k, v in section.items():
            if k not in _KNOWN_KEYS:
                msg = f"Unknown configuration key {k!r}"
                raise ConfigError(msg)
            result[k] = v
    return result
