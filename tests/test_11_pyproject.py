"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

PYPROJECT = Path(__file__).parent.parent / "pyproject.toml"


class TestPackageInstallation:
    """Test that the package is properly installed."""

    def test_version_defined(self):
        import narration_ms

        assert isinstance(narration_ms.__version__, str)
        assert len(narration_ms.__version__) > 0

    def test_core_modules_importable(self):
        from narration_ms.api import routes, schemas
        from narration_ms.core import config, logging
        from narration_ms.net import http_client
        from narration_ms.services import analytics, synthesis, validators, voices
        from narration_ms.utils import audio

        for module in (routes, schemas, config, logging, http_client, analytics, synthesis, validators, voices, audio):
            assert module is not None


class TestCLIEntryPoint:
    def test_cli_help_exits_zero(self):
        result = subprocess.run(
            [sys.executable, "-m", "narration_ms.cli", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "narration-ms CLI" in result.stdout


class TestPyprojectToml:
    """Test pyproject.toml configuration."""

    @pytest.fixture
    def data(self):
        tomllib = pytest.importorskip("tomllib")  # Python 3.11+
        return tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    def test_pyproject_exists(self):
        assert PYPROJECT.exists()

    def test_project_name(self, data):
        assert data["project"]["name"] == "narration-ms"

    def test_pyproject_has_dependencies(self, data):
        deps = data["project"].get("dependencies", [])
        dep_names = [d.split(">=")[0].split("[")[0] for d in deps]
        for name in ("fastapi", "uvicorn", "pydantic", "httpx", "pyyaml", "prometheus-client"):
            assert name in dep_names

    def test_test_extra(self, data):
        extras = data["project"]["optional-dependencies"]["test"]
        assert any(d.startswith("pytest") for d in extras)

    def test_script_entry(self, data):
        assert data["project"]["scripts"]["narration-ms"] == "narration_ms.cli:main"
