"""
tests/test_cli.py -- Tests for the command line entry point in main.py.

Covers:
  - --list prints configured handlers
  - Writing a bundle file, with --out and --name
  - --stdout prints the bundle instead
  - Exit codes for unknown endpoints, missing assets and bad configuration
  - --name escaping the output directory, timeouts and strict-mode read errors
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import main
from core.combiner import Combiner


def test_list_handlers(project: Path, capsys) -> None:
    assert main.main(["--project-root", str(project), "--list"]) == 0
    out = capsys.readouterr().out
    assert "/scripts/" in out
    assert "/css/" in out
    assert str(project / "public/js") in out


def test_write_bundle(project: Path, capsys) -> None:
    assert main.main(["index.js", "--endpoint", "/scripts/", "--project-root", str(project)]) == 0
    assert "Wrote /index.packaged.js (2 assets)" in capsys.readouterr().out
    assert (project / "index.packaged.js").read_text(encoding="utf-8").startswith("var common = 1;")


def test_write_bundle_with_out_and_name(project: Path, capsys) -> None:
    args = ["broken.js", "vendor.js", "--endpoint", "scripts", "--project-root", str(project)]
    assert main.main(args + ["--out", "dist", "--name", "site.js"]) == 0
    out = capsys.readouterr().out
    assert "Missing: nope.js" in out
    assert (project / "dist/site.packaged.js").is_file()


def test_stdout(project: Path, capsys) -> None:
    assert main.main(["index.js", "--endpoint", "/scripts/", "--project-root", str(project), "--stdout"]) == 0
    assert capsys.readouterr().out == 'var common = 1;\n/** @require ["common.js"] */\nvar index = 2;'
    assert not (project / "index.packaged.js").exists()


def test_unknown_endpoint(project: Path, capsys) -> None:
    assert main.main(["index.js", "--endpoint", "/nope/", "--project-root", str(project)]) == 2
    assert "No handler configured" in capsys.readouterr().out


def test_nothing_found(project: Path) -> None:
    assert main.main(["ghost.js", "--endpoint", "/scripts/", "--project-root", str(project)]) == 1


def test_out_outside_project(project: Path) -> None:
    assert main.main(["index.js", "--endpoint", "/scripts/", "--project-root", str(project), "--out", "../x"]) == 2


def test_bad_config(tmp_path: Path, capsys) -> None:
    (tmp_path / "combiner.json").write_text("{not json", encoding="utf-8")
    assert main.main(["--project-root", str(tmp_path), "--list"]) == 2
    assert "not valid JSON" in capsys.readouterr().out


def test_missing_arguments_prints_help(project: Path, capsys) -> None:
    assert main.main(["--project-root", str(project)]) == 2
    assert "usage:" in capsys.readouterr().out


def test_name_outside_output_directory(project: Path, capsys) -> None:
    args = ["index.js", "--endpoint", "/scripts/", "--project-root", str(project), "--name", "../../escape.js"]
    assert main.main(args) == 2
    assert "--name" in capsys.readouterr().out
    assert not (project.parent / "escape.packaged.js").exists()


def test_timeout_reported(project: Path, capsys, monkeypatch) -> None:
    async def slow_write(self, *args, **kwargs):
        raise asyncio.TimeoutError()

    monkeypatch.setattr(Combiner, "write", slow_write)
    assert main.main(["index.js", "--endpoint", "/scripts/", "--project-root", str(project)]) == 1
    assert "timed out" in capsys.readouterr().out


def test_strict_mode_read_error_reported(project: Path, capsys, monkeypatch) -> None:
    (project / "public/js/latin.js").write_bytes(b"var caf\xe9;")
    (project / "public/js/page.js").write_text('/** @require ["latin.js"] */', encoding="utf-8")
    monkeypatch.setenv("STRICT_IO", "true")
    assert main.main(["page.js", "--endpoint", "/scripts/", "--project-root", str(project)]) == 1
    assert "Bundle failed" in capsys.readouterr().out
