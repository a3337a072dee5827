"""
Configuration manager for reconciliation settings.

Loads settings from YAML files, fills in defaults, validates values,
and provides environment variable substitution (after reading .env).
"""

import copy
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from forest_reconcile.exceptions import ConfigurationError

KNOWN_PROVIDERS = ("nominatim", "google")

PROVIDER_OPTION_NAMES = {
    "nominatim": {
        "base_url",
        "user_agent",
        "request_delay_s",
        "local_delay_s",
        "local_429_retries",
        "local_429_retry_delay_s",
        "use_public_fallback",
    },
    "google": {"api_key", "url"},
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "name": "forest_reconcile",
    "cache": {
        "db_path": "${FOREST_GEOCODE_CACHE_PATH:data/cache/coordinates.sqlite}",
    },
    "output_dir": "outputs",
    "matching": {
        "facility_threshold": 0.62,
        "closure_threshold": 0.68,
    },
    "geocoding": {
        "providers": ["nominatim", "google"],
        "max_new_lookups_per_run": "${GEOCODE_MAX_NEW_LOOKUPS_PER_RUN:25}",
        "forest_workers": 4,
        "request_timeout_s": 15,
        "retry_attempts": 3,
        "retry_base_delay_s": 0.75,
        "region_suffix": "New South Wales, Australia",
        "background_enrichment": True,
        "nominatim": {
            "base_url": "${NOMINATIM_BASE_URL:http://localhost:8080}",
            "request_delay_s": 1.2,
            "local_delay_s": 0.2,
            "local_429_retries": 4,
            "local_429_retry_delay_s": 1.5,
        },
        "google": {
            "api_key": "${GOOGLE_MAPS_API_KEY:}",
        },
    },
}


@dataclass
class MatchingConfig:
    """Confidence thresholds for cross-source matching."""
    facility_threshold: float = 0.62
    closure_threshold: float = 0.68


@dataclass
class GeocodingConfig:
    """Geocoding cascade settings."""
    providers: List[str] = field(default_factory=lambda: list(KNOWN_PROVIDERS))
    max_new_lookups_per_run: int = 25
    forest_workers: int = 4
    request_timeout_s: float = 15.0
    retry_attempts: int = 3
    retry_base_delay_s: float = 0.75
    region_suffix: str = "New South Wales, Australia"
    background_enrichment: bool = True
    provider_options: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class ReconcileConfig:
    """Validated reconciliation configuration."""
    name: str
    cache_db_path: Path
    output_dir: Path = Path("outputs")
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (API keys masked)."""
        provider_options = copy.deepcopy(self.geocoding.provider_options)
        for options in provider_options.values():
            if options.get("api_key"):
                options["api_key"] = "***"
        return {
            "name": self.name,
            "cache_db_path": str(self.cache_db_path),
            "output_dir": str(self.output_dir),
            "matching": {
                "facility_threshold": self.matching.facility_threshold,
                "closure_threshold": self.matching.closure_threshold,
            },
            "geocoding": {
                "providers": list(self.geocoding.providers),
                "max_new_lookups_per_run": self.geocoding.max_new_lookups_per_run,
                "forest_workers": self.geocoding.forest_workers,
                "request_timeout_s": self.geocoding.request_timeout_s,
                "retry_attempts": self.geocoding.retry_attempts,
                "retry_base_delay_s": self.geocoding.retry_base_delay_s,
                "region_suffix": self.geocoding.region_suffix,
                "background_enrichment": self.geocoding.background_enrichment,
                "provider_options": provider_options,
            },
        }


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages reconciliation configuration."""

    def __init__(self, config_path: Optional[Path] = None, env_file: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration YAML file (optional)
            env_file: .env file to load before substitution (default: search from cwd)
        """
        self.config_path = config_path
        self.env_file = env_file
        self._config: Optional[Dict[str, Any]] = None

    def load(self, config_path: Optional[Path] = None) -> ReconcileConfig:
        """Load and validate configuration from YAML file.

        Values missing from the file fall back to the built-in defaults.

        Args:
            config_path: Path to configuration file (overrides init path)

        Returns:
            ReconcileConfig with validated settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If configuration is invalid
        """
        path = config_path or self.config_path
        if path is None:
            return self.default()

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r') as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {path}")

        return self._build(_deep_merge(DEFAULT_CONFIG, raw))

    def default(self) -> ReconcileConfig:
        """Built-in configuration with environment substitution applied."""
        return self._build(copy.deepcopy(DEFAULT_CONFIG))

    def _build(self, config: Dict[str, Any]) -> ReconcileConfig:
        load_dotenv(self.env_file or find_dotenv(usecwd=True), override=False)
        config = self._substitute_env_vars(config)
        self._validate_config(config)
        self._config = config
        return self._create_reconcile_config(config)

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in configuration.

        Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}

        Args:
            config: Configuration dictionary or value

        Returns:
            Configuration with substituted values
        """
        if isinstance(config, dict):
            return {
                key: self._substitute_env_vars(value)
                for key, value in config.items()
            }
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_string(config)
        else:
            return config

    def _substitute_env_var_string(self, value: str) -> str:
        # Pattern: ${VAR_NAME} or ${VAR_NAME:default}
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replacer, value)

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate configuration structure and values.

        Args:
            config: Configuration dictionary (defaults merged in)

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not config.get("name"):
            raise ConfigurationError("Configuration missing required field: name")

        cache_config = config.get("cache")
        if not isinstance(cache_config, dict) or not cache_config.get("db_path"):
            raise ConfigurationError("Cache configuration missing required field: db_path")

        matching = config.get("matching")
        if not isinstance(matching, dict):
            raise ConfigurationError("matching must be a dictionary")
        for key in ("facility_threshold", "closure_threshold"):
            threshold = self._as_number(matching.get(key), f"matching.{key}", float)
            if not 0 <= threshold <= 1:
                raise ConfigurationError(f"matching.{key} must be between 0 and 1, got {threshold}")

        geocoding = config.get("geocoding")
        if not isinstance(geocoding, dict):
            raise ConfigurationError("geocoding must be a dictionary")

        providers = geocoding.get("providers")
        if not isinstance(providers, list):
            raise ConfigurationError("geocoding.providers must be a list")
        for name in providers:
            if name not in KNOWN_PROVIDERS:
                raise ConfigurationError(
                    f"Unknown geocoding provider '{name}' (expected one of {', '.join(KNOWN_PROVIDERS)})"
                )
        if len(set(providers)) != len(providers):
            raise ConfigurationError("geocoding.providers contains duplicates")

        if self._as_number(geocoding.get("max_new_lookups_per_run"), "geocoding.max_new_lookups_per_run", int) < 0:
            raise ConfigurationError("geocoding.max_new_lookups_per_run must be >= 0")
        if self._as_number(geocoding.get("forest_workers"), "geocoding.forest_workers", int) < 1:
            raise ConfigurationError("geocoding.forest_workers must be >= 1")
        if self._as_number(geocoding.get("retry_attempts"), "geocoding.retry_attempts", int) < 1:
            raise ConfigurationError("geocoding.retry_attempts must be >= 1")
        if self._as_number(geocoding.get("request_timeout_s"), "geocoding.request_timeout_s", float) <= 0:
            raise ConfigurationError("geocoding.request_timeout_s must be > 0")
        if self._as_number(geocoding.get("retry_base_delay_s"), "geocoding.retry_base_delay_s", float) < 0:
            raise ConfigurationError("geocoding.retry_base_delay_s must be >= 0")

        for name, allowed in PROVIDER_OPTION_NAMES.items():
            options = geocoding.get(name) or {}
            if not isinstance(options, dict):
                raise ConfigurationError(f"geocoding.{name} must be a dictionary")
            unknown = set(options) - allowed
            if unknown:
                raise ConfigurationError(
                    f"Unknown option(s) for provider {name}: {', '.join(sorted(unknown))}"
                )

    @staticmethod
    def _as_number(value: Any, field_name: str, kind: type):
        try:
            return kind(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{field_name} must be a number, got {value!r}")

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    def _create_reconcile_config(self, config: Dict[str, Any]) -> ReconcileConfig:
        """Create ReconcileConfig from validated configuration.

        Args:
            config: Validated configuration dictionary

        Returns:
            ReconcileConfig instance
        """
        geocoding = config["geocoding"]
        matching = config["matching"]

        provider_options: Dict[str, Dict[str, Any]] = {}
        for name in KNOWN_PROVIDERS:
            options = dict(geocoding.get(name) or {})
            if name == "google":
                options["api_key"] = options.get("api_key") or None
            for key in ("request_delay_s", "local_delay_s", "local_429_retry_delay_s"):
                if key in options:
                    options[key] = self._as_number(options[key], f"geocoding.{name}.{key}", float)
            if "local_429_retries" in options:
                options["local_429_retries"] = self._as_number(
                    options["local_429_retries"], f"geocoding.{name}.local_429_retries", int
                )
            if "use_public_fallback" in options:
                options["use_public_fallback"] = self._as_bool(options["use_public_fallback"])
            provider_options[name] = options

        return ReconcileConfig(
            name=config["name"],
            cache_db_path=Path(config["cache"]["db_path"]).expanduser(),
            output_dir=Path(config.get("output_dir") or "outputs").expanduser(),
            matching=MatchingConfig(
                facility_threshold=float(matching["facility_threshold"]),
                closure_threshold=float(matching["closure_threshold"]),
            ),
            geocoding=GeocodingConfig(
                providers=list(geocoding["providers"]),
                max_new_lookups_per_run=int(geocoding["max_new_lookups_per_run"]),
                forest_workers=int(geocoding["forest_workers"]),
                request_timeout_s=float(geocoding["request_timeout_s"]),
                retry_attempts=int(geocoding["retry_attempts"]),
                retry_base_delay_s=float(geocoding["retry_base_delay_s"]),
                region_suffix=str(geocoding["region_suffix"]),
                background_enrichment=self._as_bool(geocoding.get("background_enrichment", True)),
                provider_options=provider_options,
            ),
        )

    @staticmethod
    def save_example_config(output_path: Path) -> None:
        """Save an example configuration file.

        Args:
            output_path: Path to save example config
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            f.write("# forest-reconcile configuration\n")
            f.write("# ${VAR} and ${VAR:default} are replaced from the environment (.env is read first)\n\n")
            yaml.dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)
