"""Tests for settings loading, env overrides and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from readtext_ms.core.config import (
    ConfigValidationError,
    Defaults,
    ReadTextConfig,
    Settings,
    load_settings,
)


class TestDefaults:

    def test_empty_settings_use_defaults(self):
        cfg = Settings(raw={}).get_config()
        assert cfg.quota.strategy == "global"
        assert cfg.quota.global_counter == "totalCharsUsed"
        assert cfg.quota.global_limit == 1_000_000
        assert cfg.quota.providers["google"].counter == "googleCharsUsed"
        assert cfg.quota.providers["polly"].counter == "pollyCharsUsed"
        assert cfg.app.default_language == "pt-BR"
        assert cfg.store.backend == "redis"

    def test_default_rate_limit_profiles(self):
        cfg = Settings(raw={}).get_config()
        tts = cfg.rate_limit.windows_for("tts")
        assert [(w.max_points, w.duration_seconds) for w in tts] == [(30, 60), (1500, 86400)]
        commentary = cfg.rate_limit.windows_for("commentary")
        assert [(w.max_points, w.duration_seconds) for w in commentary] == [(10, 60), (50, 86400)]

    def test_unknown_profile_falls_back_to_tts(self):
        cfg = Settings(raw={}).get_config()
        assert cfg.rate_limit.windows_for("nope") == cfg.rate_limit.windows_for("tts")

    def test_google_defaults(self):
        cfg = Settings(raw={}).get_config()
        assert cfg.google.endpoint == Defaults.GOOGLE_ENDPOINT
        assert cfg.google.audio_encoding == "MP3"
        assert cfg.google.timeout_s == 10.0


class TestValidation:

    def test_invalid_strategy(self):
        with pytest.raises(ConfigValidationError, match="quota.strategy"):
            Settings(raw={"quota": {"strategy": "round_robin"}}).get_config()

    def test_non_positive_limit(self):
        with pytest.raises(ConfigValidationError, match="global_limit"):
            Settings(raw={"quota": {"global_limit": 0}}).get_config()

    def test_unknown_provider_in_order(self):
        with pytest.raises(ConfigValidationError, match="provider_order"):
            Settings(raw={"quota": {"provider_order": ["google", "azure"]}}).get_config()

    def test_duplicate_provider_order(self):
        with pytest.raises(ConfigValidationError, match="duplicates"):
            Settings(raw={"quota": {"provider_order": ["google", "google"]}}).get_config()

    def test_invalid_store_backend(self):
        with pytest.raises(ConfigValidationError, match="store.backend"):
            Settings(raw={"store": {"backend": "sqlite"}}).get_config()

    def test_invalid_audio_encoding(self):
        with pytest.raises(ConfigValidationError, match="audio_encoding"):
            Settings(raw={"providers": {"google": {"audio_encoding": "OGG"}}}).get_config()

    def test_empty_window_list(self):
        with pytest.raises(ConfigValidationError, match="at least one window"):
            Settings(raw={"rate_limit": {"profiles": {"tts": []}}}).get_config()

    def test_log_level_out_of_range(self):
        with pytest.raises(ConfigValidationError, match="logging.level"):
            Settings(raw={"logging": {"level": 9}}).get_config()

    def test_log_level_by_name(self):
        cfg = Settings(raw={"logging": {"level": "verbose"}}).get_config()
        assert cfg.logging.level == 3


class TestSecretsFromEnvironment:

    def test_redis_url_from_env(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "rediss://default:pw@cache.example.com:6380")
        monkeypatch.setenv("REDIS_PASSWORD", "s3cret")
        cfg = Settings(raw={}).get_config()
        assert cfg.store.url.startswith("rediss://")
        assert cfg.store.password == "s3cret"

    def test_google_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "k-123")
        monkeypatch.delenv("GOOGLE_ACCESS_TOKEN", raising=False)
        cfg = Settings(raw={}).get_config()
        assert cfg.google.api_key == "k-123"
        assert cfg.google.access_token is None

    def test_aws_region_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "sa-east-1")
        cfg = Settings(raw={"providers": {"polly": {"region": "us-east-1"}}}).get_config()
        assert cfg.polly.region == "sa-east-1"


class TestLoadSettings:

    def test_missing_file_is_empty(self, tmp_path):
        settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings.strategy == "global"

    def test_yaml_file(self, tmp_path):
        p = tmp_path / "settings.yaml"
        p.write_text(
            "quota:\n"
            "  strategy: per_provider\n"
            "  providers:\n"
            "    google: {limit: 1234}\n",
            encoding="utf-8",
        )
        cfg = load_settings(str(p)).get_config()
        assert cfg.quota.strategy == "per_provider"
        assert cfg.quota.providers["google"].limit == 1234
        assert cfg.quota.providers["polly"].limit == Defaults.QUOTA_POLLY_LIMIT

    def test_non_mapping_file(self, tmp_path):
        p = tmp_path / "settings.yaml"
        p.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            load_settings(str(p))

    def test_env_overrides(self, tmp_path, monkeypatch):
        p = tmp_path / "settings.yaml"
        p.write_text("quota:\nstore:\n", encoding="utf-8")
        monkeypatch.setenv("READTEXT_MS_QUOTA_STRATEGY", "per_provider")
        monkeypatch.setenv("READTEXT_MS_GLOBAL_LIMIT", "500")
        monkeypatch.setenv("READTEXT_MS_POLLY_LIMIT", "700")
        monkeypatch.setenv("READTEXT_MS_STORE_BACKEND", "memory")
        monkeypatch.setenv("READTEXT_MS_DEBUG", "true")

        settings = load_settings(str(p))
        cfg = settings.get_config()
        assert settings.debug is True
        assert cfg.quota.strategy == "per_provider"
        assert cfg.quota.global_limit == 500
        assert cfg.quota.providers["polly"].limit == 700
        assert cfg.store.backend == "memory"

    def test_non_integer_env_limit(self, tmp_path, monkeypatch):
        monkeypatch.setenv("READTEXT_MS_GLOBAL_LIMIT", "lots")
        with pytest.raises(ConfigValidationError, match="READTEXT_MS_GLOBAL_LIMIT"):
            load_settings(str(tmp_path / "absent.yaml"))

    def test_shipped_settings_file_is_valid(self):
        path = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"
        cfg = ReadTextConfig.from_settings(load_settings(str(path)))
        assert cfg.quota.global_limit == 1_000_000
        assert cfg.store.backend == "redis"
