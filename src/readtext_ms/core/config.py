"""
Configuration Management for readtext-ms.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (READTEXT_MS_QUOTA_STRATEGY, READTEXT_MS_GLOBAL_LIMIT, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Secrets (Redis password, Google API key, AWS credentials) are never read
from the YAML file; ReadTextConfig.from_settings() folds them in
from the environment.

Example settings.yaml:
    quota:
      strategy: per_provider
      providers:
        google: {counter: googleCharsUsed, limit: 900000}
        polly: {counter: pollyCharsUsed, limit: 900000}

    rate_limit:
      profiles:
        tts:
          - {name: minute, max_points: 30, duration_seconds: 60}
          - {name: day, max_points: 1500, duration_seconds: 86400}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - App: Development flag, language, input bounds
        - Quota: Counter names, strategy and character limits
        - Store: Counter store backend and connection behaviour
        - Rate limiting: Per-identifier request windows
        - Providers: Google and Polly synthesis settings
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # App
    # ─────────────────────────────────────────────────────────────────────────
    APP_DEBUG = False                   # Include error details in responses
    APP_DEFAULT_LANGUAGE = "pt-BR"      # Language when the caller omits one
    APP_MAX_TEXT_CHARS = 5000           # Longest accepted text

    # ─────────────────────────────────────────────────────────────────────────
    # Quota
    # ─────────────────────────────────────────────────────────────────────────
    QUOTA_STRATEGY = "global"           # global | per_provider
    QUOTA_PRECHECK = True               # Read before increment
    QUOTA_GLOBAL_COUNTER = "totalCharsUsed"
    QUOTA_GLOBAL_LIMIT = 1_000_000
    QUOTA_GLOBAL_PROVIDER = "google"
    QUOTA_PROVIDER_ORDER = ("google", "polly")
    QUOTA_GOOGLE_COUNTER = "googleCharsUsed"
    QUOTA_GOOGLE_LIMIT = 900_000
    QUOTA_POLLY_COUNTER = "pollyCharsUsed"
    QUOTA_POLLY_LIMIT = 900_000

    # ─────────────────────────────────────────────────────────────────────────
    # Counter store
    # ─────────────────────────────────────────────────────────────────────────
    STORE_BACKEND = "redis"             # redis | memory
    STORE_TLS_VERIFY = True
    STORE_SOCKET_TIMEOUT_S = 5.0
    STORE_KEY_PREFIX = ""               # Bare counter names by default

    # ─────────────────────────────────────────────────────────────────────────
    # Rate limiting
    # ─────────────────────────────────────────────────────────────────────────
    RATE_LIMIT_ENABLED = True
    RATE_LIMIT_BACKEND = "memory"       # memory (per instance) | store (shared)
    RATE_LIMIT_PROFILES: Dict[str, List[Dict[str, Any]]] = {
        "tts": [
            {"name": "minute", "max_points": 30, "duration_seconds": 60},
            {"name": "day", "max_points": 1500, "duration_seconds": 86400},
        ],
        "completion": [
            {"name": "minute", "max_points": 30, "duration_seconds": 60},
            {"name": "day", "max_points": 1500, "duration_seconds": 86400},
        ],
        "commentary": [
            {"name": "minute", "max_points": 10, "duration_seconds": 60},
            {"name": "day", "max_points": 50, "duration_seconds": 86400},
        ],
    }

    # ─────────────────────────────────────────────────────────────────────────
    # Providers
    # ─────────────────────────────────────────────────────────────────────────
    GOOGLE_ENDPOINT = "https://texttospeech.googleapis.com/v1/text:synthesize"
    GOOGLE_AUDIO_ENCODING = "MP3"       # MP3 | LINEAR16
    GOOGLE_TIMEOUT_S = 10.0
    GOOGLE_DEFAULT_VOICE = "pt-BR-Neural2-B"

    POLLY_REGION = "us-east-1"
    POLLY_ENGINE = "standard"           # standard | neural
    POLLY_TIMEOUT_S = 10.0
    POLLY_DEFAULT_VOICE = "Ricardo"

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 60
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG

    METRICS_ENABLED = True


KNOWN_PROVIDERS = ("google", "polly")
STRATEGIES = ("global", "per_provider")
STORE_BACKENDS = ("redis", "memory")
RATE_LIMIT_BACKENDS = ("memory", "store")
AUDIO_ENCODINGS = ("MP3", "LINEAR16")
POLLY_ENGINES = ("standard", "neural")


@dataclass
class AppConfig:
    debug: bool = Defaults.APP_DEBUG
    default_language: str = Defaults.APP_DEFAULT_LANGUAGE
    max_text_chars: int = Defaults.APP_MAX_TEXT_CHARS


@dataclass
class CounterConfig:
    """A named usage counter and the character cap it is held to."""
    counter: str
    limit: int


@dataclass
class QuotaConfig:
    """
    Character quota configuration.

    In `global` mode every request is charged to `global_counter` and
    served by `global_provider`. In `per_provider` mode each provider in
    `provider_order` has its own counter and the second one is the
    fallback for the first.
    """
    strategy: str = Defaults.QUOTA_STRATEGY
    precheck: bool = Defaults.QUOTA_PRECHECK
    global_counter: str = Defaults.QUOTA_GLOBAL_COUNTER
    global_limit: int = Defaults.QUOTA_GLOBAL_LIMIT
    global_provider: str = Defaults.QUOTA_GLOBAL_PROVIDER
    provider_order: List[str] = field(default_factory=lambda: list(Defaults.QUOTA_PROVIDER_ORDER))
    providers: Dict[str, CounterConfig] = field(default_factory=lambda: {
        "google": CounterConfig(Defaults.QUOTA_GOOGLE_COUNTER, Defaults.QUOTA_GOOGLE_LIMIT),
        "polly": CounterConfig(Defaults.QUOTA_POLLY_COUNTER, Defaults.QUOTA_POLLY_LIMIT),
    })


@dataclass
class StoreConfig:
    """
    Counter store configuration.

    The connection URL and password are secrets and come from
    REDIS_URL / REDIS_PASSWORD, not from the YAML file.
    """
    backend: str = Defaults.STORE_BACKEND
    url: Optional[str] = None
    password: Optional[str] = None
    tls_verify: bool = Defaults.STORE_TLS_VERIFY
    socket_timeout_s: float = Defaults.STORE_SOCKET_TIMEOUT_S
    key_prefix: str = Defaults.STORE_KEY_PREFIX


@dataclass
class WindowConfig:
    """One rate-limit window: at most `max_points` requests per `duration_seconds`."""
    name: str
    max_points: int
    duration_seconds: int


@dataclass
class RateLimitConfig:
    enabled: bool = Defaults.RATE_LIMIT_ENABLED
    backend: str = Defaults.RATE_LIMIT_BACKEND
    profiles: Dict[str, List[WindowConfig]] = field(default_factory=lambda: {
        name: [WindowConfig(**w) for w in windows]
        for name, windows in Defaults.RATE_LIMIT_PROFILES.items()
    })

    def windows_for(self, profile: str) -> List[WindowConfig]:
        """Windows of a profile; unknown profiles fall back to `tts`."""
        return self.profiles.get(profile) or self.profiles.get("tts", [])


@dataclass
class GoogleConfig:
    """
    Google Cloud Text-to-Speech configuration.

    Credentials are taken from the environment, first match wins:
    GOOGLE_API_KEY, GOOGLE_ACCESS_TOKEN, GOOGLE_APPLICATION_CREDENTIALS.
    """
    endpoint: str = Defaults.GOOGLE_ENDPOINT
    audio_encoding: str = Defaults.GOOGLE_AUDIO_ENCODING
    timeout_s: float = Defaults.GOOGLE_TIMEOUT_S
    default_voice: str = Defaults.GOOGLE_DEFAULT_VOICE
    voice_mapping: Dict[str, str] = field(default_factory=dict)
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    credentials_file: Optional[str] = None


@dataclass
class PollyConfig:
    """AWS Polly configuration. Credentials follow the standard boto3 chain."""
    region: str = Defaults.POLLY_REGION
    engine: str = Defaults.POLLY_ENGINE
    timeout_s: float = Defaults.POLLY_TIMEOUT_S
    default_voice: str = Defaults.POLLY_DEFAULT_VOICE
    voice_mapping: Dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, failures
        2 = NORMAL: Request lifecycle, quota decisions (default)
        3 = VERBOSE: Reservation and provider timing
        4 = DEBUG: Internal state
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ReadTextConfig:
    """
    Validated configuration for the speech proxy.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ReadTextConfig.from_settings(settings)
        print(config.quota.global_limit)
    """
    app: AppConfig = field(default_factory=AppConfig)
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    google: GoogleConfig = field(default_factory=GoogleConfig)
    polly: PollyConfig = field(default_factory=PollyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    metrics_enabled: bool = Defaults.METRICS_ENABLED

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ReadTextConfig":
        """
        Create ReadTextConfig from Settings with validation.

        Reads the raw configuration dictionary, applies defaults for
        missing values, folds in secrets from the environment, validates
        constraints, and returns typed configuration.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # App
        # ─────────────────────────────────────────────────────────────────────
        app_raw = raw.get("app", {}) or {}
        app = AppConfig(
            debug=bool(app_raw.get("debug", Defaults.APP_DEBUG)),
            default_language=str(app_raw.get("default_language", Defaults.APP_DEFAULT_LANGUAGE)),
            max_text_chars=int(app_raw.get("max_text_chars", Defaults.APP_MAX_TEXT_CHARS)),
        )
        cls._validate_positive("app.max_text_chars", app.max_text_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Quota
        # ─────────────────────────────────────────────────────────────────────
        quota_raw = raw.get("quota", {}) or {}
        providers_raw = quota_raw.get("providers", {}) or {}
        provider_counters = {
            "google": CounterConfig(Defaults.QUOTA_GOOGLE_COUNTER, Defaults.QUOTA_GOOGLE_LIMIT),
            "polly": CounterConfig(Defaults.QUOTA_POLLY_COUNTER, Defaults.QUOTA_POLLY_LIMIT),
        }
        for name, entry in providers_raw.items():
            cls._validate_choice("quota.providers", name, KNOWN_PROVIDERS)
            entry = entry or {}
            base = provider_counters[name]
            provider_counters[name] = CounterConfig(
                counter=str(entry.get("counter", base.counter)),
                limit=int(entry.get("limit", base.limit)),
            )

        quota = QuotaConfig(
            strategy=str(quota_raw.get("strategy", Defaults.QUOTA_STRATEGY)),
            precheck=bool(quota_raw.get("precheck", Defaults.QUOTA_PRECHECK)),
            global_counter=str(quota_raw.get("global_counter", Defaults.QUOTA_GLOBAL_COUNTER)),
            global_limit=int(quota_raw.get("global_limit", Defaults.QUOTA_GLOBAL_LIMIT)),
            global_provider=str(quota_raw.get("global_provider", Defaults.QUOTA_GLOBAL_PROVIDER)),
            provider_order=[str(p) for p in quota_raw.get("provider_order", Defaults.QUOTA_PROVIDER_ORDER)],
            providers=provider_counters,
        )
        cls._validate_choice("quota.strategy", quota.strategy, STRATEGIES)
        cls._validate_choice("quota.global_provider", quota.global_provider, KNOWN_PROVIDERS)
        cls._validate_positive("quota.global_limit", quota.global_limit)
        if not quota.provider_order:
            raise ConfigValidationError("quota.provider_order must not be empty")
        if len(set(quota.provider_order)) != len(quota.provider_order):
            raise ConfigValidationError(f"quota.provider_order has duplicates: {quota.provider_order}")
        for name in quota.provider_order:
            cls._validate_choice("quota.provider_order", name, KNOWN_PROVIDERS)
        for name, counter in quota.providers.items():
            cls._validate_positive(f"quota.providers.{name}.limit", counter.limit)
            if not counter.counter:
                raise ConfigValidationError(f"quota.providers.{name}.counter must not be empty")

        # ─────────────────────────────────────────────────────────────────────
        # Counter store (URL and password from the environment)
        # ─────────────────────────────────────────────────────────────────────
        store_raw = raw.get("store", {}) or {}
        store = StoreConfig(
            backend=str(store_raw.get("backend", Defaults.STORE_BACKEND)),
            url=os.getenv("REDIS_URL") or store_raw.get("url"),
            password=os.getenv("REDIS_PASSWORD") or None,
            tls_verify=bool(store_raw.get("tls_verify", Defaults.STORE_TLS_VERIFY)),
            socket_timeout_s=float(store_raw.get("socket_timeout_s", Defaults.STORE_SOCKET_TIMEOUT_S)),
            key_prefix=str(store_raw.get("key_prefix", Defaults.STORE_KEY_PREFIX) or ""),
        )
        cls._validate_choice("store.backend", store.backend, STORE_BACKENDS)
        cls._validate_positive("store.socket_timeout_s", store.socket_timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Rate limiting
        # ─────────────────────────────────────────────────────────────────────
        rl_raw = raw.get("rate_limit", {}) or {}
        profiles_raw = dict(Defaults.RATE_LIMIT_PROFILES)
        profiles_raw.update(rl_raw.get("profiles", {}) or {})
        profiles: Dict[str, List[WindowConfig]] = {}
        for profile, windows_raw in profiles_raw.items():
            if not windows_raw:
                raise ConfigValidationError(f"rate_limit.profiles.{profile} must list at least one window")
            windows = []
            for i, w in enumerate(windows_raw):
                window = WindowConfig(
                    name=str(w.get("name", f"w{i}")),
                    max_points=int(w["max_points"]),
                    duration_seconds=int(w["duration_seconds"]),
                )
                cls._validate_positive(f"rate_limit.profiles.{profile}.{window.name}.max_points", window.max_points)
                cls._validate_positive(
                    f"rate_limit.profiles.{profile}.{window.name}.duration_seconds", window.duration_seconds
                )
                windows.append(window)
            profiles[profile] = windows

        rate_limit = RateLimitConfig(
            enabled=bool(rl_raw.get("enabled", Defaults.RATE_LIMIT_ENABLED)),
            backend=str(rl_raw.get("backend", Defaults.RATE_LIMIT_BACKEND)),
            profiles=profiles,
        )
        cls._validate_choice("rate_limit.backend", rate_limit.backend, RATE_LIMIT_BACKENDS)

        # ─────────────────────────────────────────────────────────────────────
        # Providers
        # ─────────────────────────────────────────────────────────────────────
        prov_raw = raw.get("providers", {}) or {}
        google_raw = prov_raw.get("google", {}) or {}
        google = GoogleConfig(
            endpoint=str(google_raw.get("endpoint", Defaults.GOOGLE_ENDPOINT)),
            audio_encoding=str(google_raw.get("audio_encoding", Defaults.GOOGLE_AUDIO_ENCODING)).upper(),
            timeout_s=float(google_raw.get("timeout_s", Defaults.GOOGLE_TIMEOUT_S)),
            default_voice=str(google_raw.get("default_voice", Defaults.GOOGLE_DEFAULT_VOICE)),
            voice_mapping={str(k): str(v) for k, v in (google_raw.get("voice_mapping") or {}).items()},
            api_key=os.getenv("GOOGLE_API_KEY") or None,
            access_token=os.getenv("GOOGLE_ACCESS_TOKEN") or None,
            credentials_file=os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None,
        )
        cls._validate_choice("providers.google.audio_encoding", google.audio_encoding, AUDIO_ENCODINGS)
        cls._validate_positive("providers.google.timeout_s", google.timeout_s)

        polly_raw = prov_raw.get("polly", {}) or {}
        polly = PollyConfig(
            region=str(os.getenv("AWS_REGION") or polly_raw.get("region", Defaults.POLLY_REGION)),
            engine=str(polly_raw.get("engine", Defaults.POLLY_ENGINE)),
            timeout_s=float(polly_raw.get("timeout_s", Defaults.POLLY_TIMEOUT_S)),
            default_voice=str(polly_raw.get("default_voice", Defaults.POLLY_DEFAULT_VOICE)),
            voice_mapping={str(k): str(v) for k, v in (polly_raw.get("voice_mapping") or {}).items()},
        )
        cls._validate_choice("providers.polly.engine", polly.engine, POLLY_ENGINES)
        cls._validate_positive("providers.polly.timeout_s", polly.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        metrics_raw = raw.get("metrics", {}) or {}

        return cls(
            app=app,
            quota=quota,
            store=store,
            rate_limit=rate_limit,
            google=google,
            polly=polly,
            logging=logging_cfg,
            metrics_enabled=bool(metrics_raw.get("enabled", Defaults.METRICS_ENABLED)),
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_choice(name: str, value: str, choices: tuple) -> None:
        if value not in choices:
            raise ConfigValidationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_config() to get a validated ReadTextConfig.
    """
    raw: Dict[str, Any]

    @property
    def strategy(self) -> str:
        return str((self.raw.get("quota") or {}).get("strategy", Defaults.QUOTA_STRATEGY))

    @property
    def debug(self) -> bool:
        return bool((self.raw.get("app") or {}).get("debug", Defaults.APP_DEBUG))

    @property
    def default_language(self) -> str:
        return (self.raw.get("app") or {}).get("default_language", Defaults.APP_DEFAULT_LANGUAGE)

    def get_config(self) -> ReadTextConfig:
        """
        Get validated ReadTextConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ReadTextConfig.from_settings(self)


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer, got {raw!r}")


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    # An empty YAML key parses as None
    section = raw.get(name) or {}
    raw[name] = section
    return section


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    A missing file yields an empty configuration (all defaults), so the
    service can run from environment variables alone.

    Environment variable overrides:
        - READTEXT_MS_QUOTA_STRATEGY: quota.strategy
        - READTEXT_MS_GLOBAL_LIMIT: quota.global_limit
        - READTEXT_MS_GOOGLE_LIMIT: quota.providers.google.limit
        - READTEXT_MS_POLLY_LIMIT: quota.providers.polly.limit
        - READTEXT_MS_STORE_BACKEND: store.backend
        - READTEXT_MS_DEBUG: app.debug ("1"/"true")

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.
    """
    p = Path(path)
    raw: Dict[str, Any] = {}
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigValidationError(f"settings file must contain a mapping: {p}")

    quota = _section(raw, "quota")

    strategy = os.getenv("READTEXT_MS_QUOTA_STRATEGY")
    if strategy:
        quota["strategy"] = strategy

    global_limit = _env_int("READTEXT_MS_GLOBAL_LIMIT")
    if global_limit is not None:
        quota["global_limit"] = global_limit

    for provider in KNOWN_PROVIDERS:
        limit = _env_int(f"READTEXT_MS_{provider.upper()}_LIMIT")
        if limit is not None:
            _section(_section(quota, "providers"), provider)["limit"] = limit

    backend = os.getenv("READTEXT_MS_STORE_BACKEND")
    if backend:
        _section(raw, "store")["backend"] = backend

    debug = os.getenv("READTEXT_MS_DEBUG")
    if debug is not None:
        _section(raw, "app")["debug"] = debug.lower() in ("1", "true", "yes")

    return Settings(raw=raw)
