from __future__ import annotations

from typing import TYPE_CHECKING

import orjson

from cli import main

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


def _write_workspace(root: Path, *, index_source: str) -> None:
    package_dir = root / "packages" / "app"
    (package_dir / "src").mkdir(parents=True, exist_ok=True)
    (package_dir / "package.json").write_text('{"name": "app"}', encoding="utf-8")
    (package_dir / "src" / "index.ts").write_text(index_source, encoding="utf-8")
    (package_dir / "src" / "util.ts").write_text(
        "export const util = 1;\n", encoding="utf-8"
    )
    (root / "workspace-analyzer.toml").write_text(
        'packages = ["packages/*"]\n', encoding="utf-8"
    )


def test_cli_analyze_clean_workspace_exits_zero(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write_workspace(tmp_path, index_source='import { util } from "./util";\n')

    exit_code = main(["analyze", str(tmp_path)])

    assert exit_code == 0
    payload = orjson.loads(capsys.readouterr().out)
    assert payload["diagnostics"] == []
    assert payload["summary"]["files_scanned"] == 2
    assert payload["summary"]["top_imported"] == ["packages/app/src/util.ts"]


def test_cli_analyze_error_diagnostic_exits_one(tmp_path: Path) -> None:
    _write_workspace(tmp_path, index_source='import "./index";\n')
    output = tmp_path / "result.json"

    exit_code = main(["analyze", str(tmp_path), "--output", str(output), "--no-cache"])

    assert exit_code == 1
    payload = orjson.loads(output.read_bytes())
    assert [d["code"] for d in payload["diagnostics"]] == ["circular-import"]
    assert payload["diagnostics"][0]["severity"] == "error"
    assert not (tmp_path / ".workspace-analyzer-cache").exists()


def test_cli_analyze_invalid_config_exits_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write_workspace(tmp_path, index_source="export {};\n")
    (tmp_path / "workspace-analyzer.toml").write_text("bogus = 1\n", encoding="utf-8")

    exit_code = main(["analyze", str(tmp_path)])

    assert exit_code == 2
    assert "configuration error" in capsys.readouterr().err


def test_cli_analyze_without_packages_exits_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(["analyze", str(tmp_path)])

    assert exit_code == 2
    assert "fatal: No package roots" in capsys.readouterr().err


def test_cli_verify_reports_deterministic_output(tmp_path: Path) -> None:
    _write_workspace(tmp_path, index_source='import { util } from "./util";\n')

    assert main(["verify", str(tmp_path)]) == 0


def test_cli_clear_cache_removes_directory(tmp_path: Path) -> None:
    _write_workspace(tmp_path, index_source="export {};\n")
    assert main(["analyze", str(tmp_path), "--output", str(tmp_path / "r.json")]) == 0
    assert (tmp_path / ".workspace-analyzer-cache").is_dir()

    exit_code = main(["clear-cache", str(tmp_path)])

    assert exit_code == 0
    assert not (tmp_path / ".workspace-analyzer-cache").exists()
