"""Pytest configuration and fixtures for makeaxe tests."""

import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import yaml

from makeaxe.utils.exceptions import CatalogError


def resolver_metadata(name: str = "foo", version: str = "1.0") -> Dict[str, Any]:
    """Build a valid metadata.json document for a resolver."""
    return {
        "name": name.title(),
        "pluginName": name,
        "version": version,
        "website": "http://example.org",
        "authors": [{"name": "Jane Doe", "email": "jane@example.org"}],
        "manifest": {
            "main": f"{name}.js",
            "scripts": ["lib/util.js"],
            "icon": "icon.png",
            "resources": ["res/strings.json"],
        },
    }


class FakeCatalog:
    """In-memory catalog implementing the Catalog protocol."""

    def __init__(self) -> None:
        self.records: List[Dict[str, Any]] = []
        self.fail_count = False
        self.fail_insert = False

    def count_by_name_and_version(self, plugin_name: str, version: str) -> int:
        if self.fail_count:
            raise CatalogError("Relaxe database error: count failed", operation="count")
        return sum(
            1 for r in self.records
            if r.get("pluginName") == plugin_name and r.get("version") == version
        )

    def insert(self, record: Dict[str, Any]) -> None:
        if self.fail_insert:
            raise CatalogError("Relaxe database error: insert failed", operation="insert")
        self.records.append(dict(record))


@pytest.fixture
def make_resolver(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating resolver source directories under ``tmp_path/src``.

    Every file named in the manifest is created unless ``write_files`` is
    False. ``metadata`` may be a dict or raw text.
    """

    def _make(
            name: str = "foo",
            version: str = "1.0",
            metadata: Optional[Any] = None,
            parent: Optional[Path] = None,
            write_files: bool = True,
    ) -> Path:
        root = (parent or tmp_path / "src") / name
        content = root / "content"
        content.mkdir(parents=True, exist_ok=True)

        data = resolver_metadata(name, version) if metadata is None else metadata
        text = data if isinstance(data, str) else json.dumps(data, indent=2)
        (content / "metadata.json").write_text(text, encoding="utf-8")

        if write_files and isinstance(data, dict) and isinstance(data.get("manifest"), dict):
            manifest = data["manifest"]
            entries = [
                manifest.get("main"),
                *(manifest.get("scripts") or []),
                manifest.get("icon"),
                *(manifest.get("resources") or []),
            ]
            for entry in entries:
                if not entry:
                    continue
                file_path = content / entry
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_path.write_bytes(f"// {entry}\n".encode("utf-8"))
        return root

    return _make


@pytest.fixture
def dest_dir(tmp_path: Path) -> Path:
    """Empty destination directory for built bundles."""
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def metadata_factory() -> Callable[..., Dict[str, Any]]:
    return resolver_metadata


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def relaxe_config_file(tmp_path: Path) -> Path:
    """Relaxe configuration file pointing at a cache directory under tmp_path."""
    config = {
        "database": {
            "connection_string": "mongodb://localhost:27017",
            "name": "relaxe",
            "collection": "axes",
        },
        "cache_directory": str(tmp_path / "cache"),
        "logging": {"level": "DEBUG", "format": "text", "file": {"enabled": False}},
    }
    path = tmp_path / "relaxe.yaml"
    path.write_text(yaml.dump(config), encoding="utf-8")
    return path


@pytest.fixture
def git_repo() -> Callable[[Path], None]:
    """Turn a directory into a git repository with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git is not available")

    def _init(path: Path) -> None:
        env = dict(
            os.environ,
            GIT_AUTHOR_NAME="Test",
            GIT_AUTHOR_EMAIL="test@example.org",
            GIT_COMMITTER_NAME="Test",
            GIT_COMMITTER_EMAIL="test@example.org",
        )
        for command in (
                ["git", "init", "-q"],
                ["git", "add", "-A"],
                ["git", "-c", "commit.gpgsign=false", "commit", "-q", "-m", "Initial commit"],
        ):
            subprocess.run(command, cwd=path, env=env, check=True, capture_output=True)

    return _init
