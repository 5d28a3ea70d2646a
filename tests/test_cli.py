"""Tests for mews._cli — argument parsing and command dispatch."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from mews import __version__
from mews._cli import _build_parser, main


class TestBuildParser:
    """_build_parser — CLI argument parsing."""

    def test_publish(self) -> None:
        args = _build_parser().parse_args(["publish", "events.jsonl"])
        assert args.command == "publish"
        assert args.events == "events.jsonl"
        assert args.config_dir == "."

    def test_generate_defaults(self) -> None:
        args = _build_parser().parse_args(["generate", "blog"])
        assert args.site == "blog"
        assert args.output is None
        assert args.snapshot is None
        assert args.direct_assets is False

    def test_generate_all_flags(self) -> None:
        args = _build_parser().parse_args([
            "--config-dir", "sites",
            "generate", "blog",
            "--output", "public",
            "--snapshot", "snap.json",
            "--direct-assets",
        ])
        assert args.config_dir == "sites"
        assert args.output == "public"
        assert args.snapshot == "snap.json"
        assert args.direct_assets is True

    def test_reconcile_requires_snapshot(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["reconcile", "blog"])


class TestMain:
    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
        assert "publish" in capsys.readouterr().out

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_generate_passes_overrides(self) -> None:
        with patch("mews.app.generate") as generate:
            main(["--config-dir", "sites", "generate", "blog", "--output", "public", "--direct-assets"])
        generate.assert_called_once_with(
            "sites", "blog", snapshot=None, output="public", direct_assets=True,
        )

    def test_publish_failure_exits_nonzero(self) -> None:
        with patch("mews.app.publish", return_value=MagicMock(ok=False)):
            with pytest.raises(SystemExit) as exc_info:
                main(["publish", "events.jsonl"])
        assert exc_info.value.code == 1

    def test_publish_ok(self) -> None:
        with patch("mews.app.publish", return_value=MagicMock(ok=True)) as publish:
            main(["publish", "events.jsonl"])
        publish.assert_called_once_with(".", "events.jsonl")

    def test_missing_events_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["publish", str(tmp_path / "missing.jsonl")])
        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_reconcile_bad_snapshot(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_site / "snap.json").write_text("[]")
        with pytest.raises(SystemExit) as exc_info:
            main(["--config-dir", str(tmp_site), "reconcile", "blog", "--snapshot", str(tmp_site / "snap.json")])
        assert exc_info.value.code == 1
        assert "no Items list" in capsys.readouterr().err
