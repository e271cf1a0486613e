from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import orjson
import pytest

from cache.store import MemoryCacheStore
from errors import AnalysisCancelled, FatalAnalysisError
from pipeline.scheduler import run_analysis
from rules.config import AnalyzerConfig, parse_config

if TYPE_CHECKING:
    from pathlib import Path

    from models.diagnostics import AnalysisResult, Diagnostic

_LAYERS = {
    "architecture": {
        "layers": [
            {"name": "core", "globs": ["packages/core/**"]},
            {"name": "cli", "globs": ["packages/cli/**"], "allowed_imports": ["core"]},
        ]
    }
}


def _write_package(
    root: Path,
    rel_root: str,
    name: str,
    files: dict[str, str],
    dependencies: dict[str, str] | None = None,
) -> None:
    package_dir = root / rel_root
    package_dir.mkdir(parents=True, exist_ok=True)
    manifest = {"name": name, "dependencies": dependencies or {}}
    (package_dir / "package.json").write_bytes(orjson.dumps(manifest))
    for rel_path, content in files.items():
        path = package_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def _config(**overrides: object) -> AnalyzerConfig:
    return parse_config({"packages": ["packages/*"], **overrides})


def _codes(result: AnalysisResult) -> list[str]:
    return [d.code for d in result.diagnostics]


def _by_category(result: AnalysisResult, category: str) -> list[Diagnostic]:
    return [d for d in result.diagnostics if d.category == category]


def _write_cycle(root: Path) -> None:
    _write_package(
        root,
        "packages/app",
        "app",
        {
            "src/a.ts": 'import { b } from "./b";\nexport const a = () => b;\n',
            "src/b.ts": 'import { c } from "./c";\nexport const b = () => c;\n',
            "src/c.ts": 'import { a } from "./a";\nexport const c = () => a;\n',
        },
    )


def test_three_file_cycle_scenario(tmp_path: Path) -> None:
    _write_cycle(tmp_path)

    result = run_analysis(tmp_path, _config())

    assert _codes(result) == ["circular-import"]
    cycle = result.diagnostics[0]
    assert [hop.path for hop in cycle.related] == [
        "packages/app/src/a.ts",
        "packages/app/src/b.ts",
        "packages/app/src/c.ts",
    ]
    assert _by_category(result, "architecture") == []
    assert _by_category(result, "dependency") == []
    assert result.summary.files_scanned == 3
    assert result.summary.nodes == 3
    assert result.summary.edges == 3
    assert result.summary.by_category["circular-import"] == 1


def test_layer_violation_disappears_after_import_removed(tmp_path: Path) -> None:
    _write_package(
        tmp_path,
        "packages/cli",
        "@ws/cli",
        {"src/index.ts": "export const run = () => 0;\n"},
    )
    _write_package(
        tmp_path,
        "packages/core",
        "@ws/core",
        {"src/index.ts": 'import { run } from "@ws/cli";\nexport const go = run;\n'},
        dependencies={"@ws/cli": "workspace:*"},
    )
    config = _config(**_LAYERS)

    first = run_analysis(tmp_path, config)

    violations = _by_category(first, "architecture")
    assert len(violations) == 1
    assert violations[0].metadata == {"from_layer": "core", "to_layer": "cli"}
    assert violations[0].location.path == "packages/core/src/index.ts"
    assert violations[0].location.line == 1
    assert violations[0].related[0].target == "packages/cli/src/index.ts"

    (tmp_path / "packages/core/src/index.ts").write_text(
        "export const go = () => 1;\n", encoding="utf-8"
    )
    second = run_analysis(tmp_path, config)

    assert _by_category(second, "architecture") == []


def test_unused_and_missing_lodash(tmp_path: Path) -> None:
    _write_package(
        tmp_path,
        "packages/declares",
        "declares",
        {"src/index.ts": "export const x = 1;\n"},
        dependencies={"lodash": "*"},
    )
    _write_package(
        tmp_path,
        "packages/imports",
        "imports",
        {"src/index.ts": 'import _ from "lodash";\nexport const y = _;\n'},
    )
    config = _config(dependencies={"unused_severity": "info"})

    result = run_analysis(tmp_path, config)

    dependency = _by_category(result, "dependency")
    assert [(d.code, d.metadata["package"], d.severity) for d in dependency] == [
        ("unused-dependency", "declares", "info"),
        ("missing-dependency", "imports", "warning"),
    ]


def test_missing_dependency_floor_survives_category_override(tmp_path: Path) -> None:
    _write_package(
        tmp_path,
        "packages/imports",
        "imports",
        {"src/index.ts": 'import _ from "lodash";\n'},
    )
    config = _config(analyzers={"dependency": {"severity": "info"}})

    result = run_analysis(tmp_path, config)

    assert [(d.code, d.severity) for d in result.diagnostics] == [
        ("missing-dependency", "warning")
    ]


def test_second_run_hits_cache_for_every_file(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    config = _config()

    first = run_analysis(tmp_path, config)
    second = run_analysis(tmp_path, config)

    assert first.summary.cache_hit_ratio == 0.0
    assert second.summary.cache_hit_ratio == 1.0
    assert second.summary.cache_hits == 3
    assert second.diagnostics == first.diagnostics
    assert (tmp_path / ".workspace-analyzer-cache").is_dir()


def test_cache_disabled_reports_zero_hit_ratio(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    config = _config(cache={"enabled": False})

    run_analysis(tmp_path, config)
    second = run_analysis(tmp_path, config)

    assert second.summary.cache_hit_ratio == 0.0
    assert not (tmp_path / ".workspace-analyzer-cache").exists()


def test_changed_file_misses_only_itself(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    store = MemoryCacheStore()
    run_analysis(tmp_path, _config(), cache=store)

    (tmp_path / "packages/app/src/c.ts").write_text(
        "export const c = 3;\n", encoding="utf-8"
    )
    second = run_analysis(tmp_path, _config(), cache=store)

    assert (second.summary.cache_hits, second.summary.cache_misses) == (2, 1)
    assert _codes(second) == []


def test_concurrency_does_not_change_output(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    _write_package(
        tmp_path,
        "packages/other",
        "other",
        {f"src/m{i}.ts": f'import "./m{(i + 1) % 6}";\n' for i in range(6)},
        dependencies={"lodash": "*"},
    )

    sequential = run_analysis(
        tmp_path, _config(concurrency=1), cache=MemoryCacheStore()
    )
    parallel = run_analysis(tmp_path, _config(concurrency=8), cache=MemoryCacheStore())

    assert parallel.diagnostics == sequential.diagnostics


def test_parse_failure_is_downgraded_to_diagnostic(tmp_path: Path) -> None:
    _write_package(
        tmp_path,
        "packages/app",
        "app",
        {
            "src/ok.ts": 'import "./broken";\n',
            "src/broken.ts": "export const = ;\n",
        },
    )

    result = run_analysis(tmp_path, _config())

    assert _codes(result) == ["parse-error"]
    assert result.diagnostics[0].category == "configuration"
    assert result.diagnostics[0].location.path == "packages/app/src/broken.ts"
    assert result.summary.edges == 1


def test_unmatched_package_pattern_is_configuration_warning(tmp_path: Path) -> None:
    _write_cycle(tmp_path)

    result = run_analysis(tmp_path, parse_config({"packages": ["packages/*", "apps/*"]}))

    config_diagnostics = _by_category(result, "configuration")
    assert [d.code for d in config_diagnostics] == ["package-root-unmatched"]
    assert "apps/*" in config_diagnostics[0].message


def test_min_severity_and_disabled_categories_filter(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    _write_package(
        tmp_path,
        "packages/lib",
        "lib",
        {"src/index.ts": "export const x = 1;\n"},
        dependencies={"lodash": "*"},
    )

    errors_only = run_analysis(tmp_path, _config(min_severity="error"))
    no_cycles = run_analysis(
        tmp_path, _config(analyzers={"circular-import": {"enabled": False}})
    )

    assert errors_only.diagnostics == []
    assert _codes(no_cycles) == ["unused-dependency"]


def test_workspace_without_packages_is_fatal(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.ts").write_text("export {};\n", encoding="utf-8")

    with pytest.raises(FatalAnalysisError, match="No package roots"):
        run_analysis(tmp_path, _config())


def test_cache_path_occupied_by_file_is_fatal(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    (tmp_path / ".workspace-analyzer-cache").write_text("x", encoding="utf-8")

    with pytest.raises(FatalAnalysisError, match="not a directory"):
        run_analysis(tmp_path, _config())


def test_cancelled_run_stops_before_scanning(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(AnalysisCancelled) as exc_info:
        run_analysis(tmp_path, _config(), cancel=cancel)

    assert exc_info.value.phase == "scan"
    assert not (tmp_path / ".workspace-analyzer-cache").exists() or not any(
        (tmp_path / ".workspace-analyzer-cache").iterdir()
    )


def test_config_loaded_from_root_when_omitted(tmp_path: Path) -> None:
    _write_cycle(tmp_path)
    (tmp_path / "workspace-analyzer.toml").write_text(
        'packages = ["packages/*"]\n\n[analyzers.circular-import]\nenabled = false\n',
        encoding="utf-8",
    )

    result = run_analysis(tmp_path)

    assert result.diagnostics == []


def test_stylesheet_and_json_imports_are_not_unresolved(tmp_path: Path) -> None:
    _write_package(
        tmp_path,
        "packages/web",
        "web",
        {
            "src/index.ts": (
                'import "./styles.css";\n'
                'import data from "./data.json";\n'
                "export const value = data;\n"
            ),
            "src/styles.css": "body { margin: 0; }\n",
            "src/data.json": "{}\n",
        },
    )

    result = run_analysis(tmp_path, _config(**_LAYERS), cache=MemoryCacheStore())

    assert result.diagnostics == []
    assert result.summary.files_scanned == 1
