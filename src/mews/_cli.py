"""Mews CLI — mews publish / mews generate / mews reconcile.

Entry point for the ``mews`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the mews CLI."""
    parser = argparse.ArgumentParser(
        prog="mews",
        description="Incremental publishing for headless-CMS sites.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--config-dir", default=".", help="Directory holding <site>.yaml|.toml files",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # mews publish
    publish_parser = subparsers.add_parser(
        "publish",
        help="Process a batch of content events",
    )
    publish_parser.add_argument(
        "events", help="JSON-lines file, one {site, topic, payload} record per line",
    )

    # mews generate
    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate every page of a site from scratch",
    )
    generate_parser.add_argument("site", help="Site identifier")
    generate_parser.add_argument("--output", default=None, help="Output directory")
    generate_parser.add_argument(
        "--snapshot", default=None, help="Write the metadata index snapshot to this file",
    )
    generate_parser.add_argument(
        "--direct-assets", action="store_true",
        help="Link assets at their upstream URL (local preview)",
    )

    # mews reconcile
    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Apply a metadata snapshot to the site's metadata index",
    )
    reconcile_parser.add_argument("site", help="Site identifier")
    reconcile_parser.add_argument(
        "--snapshot", required=True, help="Snapshot file written by `mews generate`",
    )

    return parser


def _get_version() -> str:
    """Get the package version."""
    from mews import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from mews._errors import MewsError
    from mews.app import generate, publish, reconcile

    try:
        if args.command == "publish":
            report = publish(args.config_dir, args.events)
            if not report.ok:
                sys.exit(1)
        elif args.command == "generate":
            overrides: dict[str, object] = {}
            if args.output is not None:
                overrides["output"] = args.output
            if args.direct_assets:
                overrides["direct_assets"] = True
            generate(args.config_dir, args.site, snapshot=args.snapshot, **overrides)
        elif args.command == "reconcile":
            reconcile(args.config_dir, args.site, args.snapshot)
    except (MewsError, OSError) as exc:
        print(f"  Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
