"""Tests for package metadata and module layout."""
from __future__ import annotations

import subprocess
import sys

import pytest


class TestPackageInstallation:

    def test_version_defined(self):
        import readtext_ms
        assert isinstance(readtext_ms.__version__, str)
        assert len(readtext_ms.__version__) > 0

    def test_core_modules_importable(self):
        from readtext_ms.core import config, errors, logging, metrics
        from readtext_ms.api import routes, schemas
        from readtext_ms.quota import rate_limiter, store
        from readtext_ms.services import speech_service
        from readtext_ms.tts import provider

        for module in (config, errors, logging, metrics, routes, schemas,
                       rate_limiter, store, speech_service, provider):
            assert module is not None

    def test_providers_load_lazily(self):
        from readtext_ms.tts import providers
        assert providers.GoogleProvider.name == "google"
        assert providers.PollyProvider.name == "polly"


class TestCLIEntryPoint:

    @pytest.mark.slow
    def test_cli_module_help(self):
        result = subprocess.run(
            [sys.executable, "-m", "readtext_ms.cli", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "readtext-ms operator CLI" in result.stdout
