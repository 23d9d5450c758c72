from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from codebase_flattener import cli


def _make_project(root: Path) -> None:
    files = {
        "src/app.py": "print('hi')\n",
        "src/util/helpers.py": "def f():\n    return ']]>'\n",
        "README.md": "# Demo\n\n```sh\nrun\n```\n",
        "assets/logo.png": b"\x89PNG\r\n\x1a\n\x00\x00",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


def test_end_to_end_xml_export(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_DATE_EPOCH", "1700000000")
    repo = tmp_path / "project"
    _make_project(repo)
    out = tmp_path / "artifacts" / "codebase.xml"

    exit_code = cli.main(["--root", str(repo), "--out", str(out), "--no-honor-gitignore"])

    assert exit_code == 0
    doc = ET.fromstring(out.read_bytes())
    assert doc.get("generated_at") == "2023-11-14T22:13:20.000Z"
    paths = [f.get("path") for f in doc.findall("file")]
    assert paths == ["README.md", "assets/logo.png", "src/app.py", "src/util/helpers.py"]
    helpers = doc.find("file[@path='src/util/helpers.py']")
    assert helpers.findtext("content") == "def f():\n    return ']]>'\n"
    assert doc.find("file[@path='assets/logo.png']").get("is_binary") == "true"


def test_end_to_end_markdown_export_with_config(tmp_path: Path) -> None:
    repo = tmp_path / "project"
    _make_project(repo)
    out = tmp_path / "snapshot.md"
    config = tmp_path / "flatten.json"
    config.write_text(
        json.dumps({"root": str(repo), "out": str(out), "format": "md", "excludes": ["assets/**"]}),
        encoding="utf-8",
    )

    exit_code = cli.main(["--config", str(config), "--no-honor-gitignore"])

    assert exit_code == 0
    text = out.read_text(encoding="utf-8")
    assert "### src/app.py" in text
    assert "assets/logo.png" not in text
    assert "````markdown\n# Demo\n" in text
    assert "- [README.md](#readmemd)" in text
