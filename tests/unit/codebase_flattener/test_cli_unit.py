from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from codebase_flattener import __version__, cli
from codebase_flattener import settings as settings_module
from codebase_flattener.config import OutputFormat

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings_module, "ENV_FILE", "")
    monkeypatch.delenv("CODEBASE_FLATTENER_CONFIG", raising=False)
    monkeypatch.delenv("CODEBASE_FLATTENER_LOG_FILE", raising=False)
    monkeypatch.setenv("SOURCE_DATE_EPOCH", "0")


@pytest.mark.unit
def test_parse_args_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = cli.parse_args([])

    assert settings.root == tmp_path.resolve()
    assert settings.output == (tmp_path / "turns/0001/artifacts/codebase.xml").resolve()
    assert settings.format == OutputFormat.XML
    assert settings.honor_gitignore is True
    assert settings.follow_symlinks is False
    assert settings.config is None


@pytest.mark.unit
def test_parse_args_options(tmp_path: Path) -> None:
    settings = cli.parse_args(
        [
            "--root",
            str(tmp_path),
            "--out",
            str(tmp_path / "snap.md"),
            "--include",
            "src/**, *.md",
            "--exclude",
            "**/*.bin",
            "--max-file-bytes",
            "10",
            "--chunk-bytes",
            "0",
            "--follow-symlinks",
            "--no-honor-gitignore",
            "--format",
            "MD",
        ],
    )

    assert settings.root == tmp_path.resolve()
    assert settings.output == (tmp_path / "snap.md").resolve()
    assert settings.includes == ["src/**", "*.md"]
    assert settings.excludes == ["**/*.bin"]
    assert settings.max_file_bytes == 10
    assert settings.chunk_bytes == 0
    assert settings.follow_symlinks is True
    assert settings.honor_gitignore is False
    assert settings.format == OutputFormat.MD


@pytest.mark.unit
def test_parse_args_rejects_unknown_format() -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--format", "html"])

    assert exc_info.value.code == 2


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
def test_parse_args_merges_config_file(tmp_path: Path) -> None:
    cfg = tmp_path / "flatten.json"
    cfg.write_text(json.dumps({"includes": ["*.py"], "format": "md", "chunk_bytes": 5}), encoding="utf-8")

    settings = cli.parse_args(["--config", str(cfg), "--chunk-bytes", "9"])

    assert settings.config == cfg
    assert settings.includes == ["*.py"]
    assert settings.format == OutputFormat.MD
    assert settings.chunk_bytes == 9


@pytest.mark.unit
def test_parse_args_reads_config_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = tmp_path / "flatten.yaml"
    cfg.write_text("excludes: docs/**\n", encoding="utf-8")
    monkeypatch.setenv("CODEBASE_FLATTENER_CONFIG", str(cfg))

    settings = cli.parse_args([])

    assert settings.excludes == ["docs/**"]


@pytest.mark.unit
def test_main_writes_artifact_and_prints_path(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = tmp_path / "repo"
    root.mkdir()
    (root / "a.txt").write_text("hello", encoding="utf-8")
    out = tmp_path / "out.xml"

    code = cli.main(["--root", str(root), "--out", str(out), "--no-honor-gitignore"])

    assert code == 0
    assert capsys.readouterr().out.strip() == str(out.resolve())
    assert 'path="a.txt"' in out.read_text(encoding="utf-8")


@pytest.mark.unit
def test_main_returns_error_for_missing_root(tmp_path: Path) -> None:
    code = cli.main(["--root", str(tmp_path / "nope"), "--out", str(tmp_path / "out.xml")])

    assert code == 1
    assert not (tmp_path / "out.xml").exists()


@pytest.mark.unit
def test_main_sets_up_log_file(tmp_path: Path, mocker: MockerFixture) -> None:
    setup = mocker.patch.object(cli, "setup_logging")
    flatten = mocker.patch.object(cli, "flatten")
    log_file = tmp_path / "run.log"

    code = cli.main(["--root", str(tmp_path), "--log-file", str(log_file)])

    assert code == 0
    setup.assert_called_once_with(str(log_file))
    flatten.assert_called_once()


@pytest.mark.unit
def test_main_returns_error_for_invalid_option_values(tmp_path: Path) -> None:
    code = cli.main(["--root", str(tmp_path), "--max-file-bytes", "-1", "--out", str(tmp_path / "out.xml")])

    assert code == 1
    assert not (tmp_path / "out.xml").exists()


@pytest.mark.unit
def test_parse_args_keeps_valid_config_keys_next_to_invalid_ones(tmp_path: Path) -> None:
    cfg = tmp_path / "flatten.json"
    cfg.write_text(json.dumps({"root": str(tmp_path), "chunk_bytes": "abc", "excludes": "docs/**"}), encoding="utf-8")

    settings = cli.parse_args(["--config", str(cfg)])

    assert settings.root == tmp_path.resolve()
    assert settings.excludes == ["docs/**"]
    assert settings.chunk_bytes == 50_000
