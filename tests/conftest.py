"""Shared fixtures for the meshctl test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from meshctl.deployment.shell_commands import CommandResult


@pytest.fixture
def mesh_root(tmp_path: Path) -> Path:
    """Deploy tree root holding an empty ``mesh/`` catalog and its sync script."""
    mesh = tmp_path / "mesh"
    mesh.mkdir()
    (mesh / "sync.sh").write_text("#!/bin/bash\nexit 0\n")
    return tmp_path


@pytest.fixture
def make_service(mesh_root: Path) -> Callable[[str, dict[str, str]], Path]:
    """Create ``mesh/<name>/`` with the given fragment files."""

    def _make(name: str, files: dict[str, str]) -> Path:
        service_dir = mesh_root / "mesh" / name
        service_dir.mkdir(parents=True, exist_ok=True)
        for file_name, content in files.items():
            (service_dir / file_name).write_text(content, encoding="utf-8")
        return service_dir

    return _make


@pytest.fixture
def mock_commands() -> MagicMock:
    """ShellCommands double where every command succeeds."""
    commands = MagicMock()
    commands.kubectl = MagicMock()
    commands.run_bash_script.return_value = CommandResult(success=True, stdout="synced")

    kubectl = commands.kubectl
    kubectl.namespace_exists.return_value = True
    ok = CommandResult(success=True, stdout="ok")
    for name in (
        "create_namespace",
        "label_namespace",
        "delete_namespace",
        "apply",
        "delete_manifests",
        "delete_all",
        "get",
        "follow_logs",
    ):
        getattr(kubectl, name).return_value = ok
    kubectl.get_pod_names.return_value = []
    return commands


@pytest.fixture
def mock_console() -> MagicMock:
    """ConsoleLike double."""
    return MagicMock()
