"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that is injected into the
pipeline services instead of a global module-level dictionary. Values are
layered: ``DEFAULT_CONFIG`` < JSON file < environment variables.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import json, os, logging
from .defaults import DEFAULT_CONFIG
from .env_config import load_environment_config, EnvironmentConfig, EnvironmentError

MIN_POLL_TIMEOUT = 120

_INTERNAL_FIELDS = ('extra', '_has_secure_api_key')


@dataclass(slots=True)
class Config:
    # Upstream analysis service
    analysis_service_url: str = DEFAULT_CONFIG["analysis_service_url"]
    analysis_submit_path: str = DEFAULT_CONFIG["analysis_submit_path"]
    analysis_file_prefix: str = DEFAULT_CONFIG["analysis_file_prefix"]
    analysis_token_field: str = DEFAULT_CONFIG["analysis_token_field"]

    # Timeouts
    submit_timeout: int = DEFAULT_CONFIG["submit_timeout"]
    poll_timeout: int = DEFAULT_CONFIG["poll_timeout"]
    connect_timeout: int = DEFAULT_CONFIG["connect_timeout"]

    # Polling
    poll_max_attempts: int = DEFAULT_CONFIG["poll_max_attempts"]
    poll_interval_seconds: float = DEFAULT_CONFIG["poll_interval_seconds"]
    confidence_threshold: float = DEFAULT_CONFIG["confidence_threshold"]

    # System of record
    backend_url: str = DEFAULT_CONFIG["backend_url"]
    register_path: str = DEFAULT_CONFIG["register_path"]
    backend_timeout: int = DEFAULT_CONFIG["backend_timeout"]
    backend_token: str = DEFAULT_CONFIG["backend_token"]

    # Clinical insight
    gemini_api_key: str = DEFAULT_CONFIG["gemini_api_key"]
    gemini_model: str = DEFAULT_CONFIG["gemini_model"]
    gemini_timeout: int = DEFAULT_CONFIG["gemini_timeout"]
    gemini_temperature: float = DEFAULT_CONFIG["gemini_temperature"]
    gemini_max_tokens: int = DEFAULT_CONFIG["gemini_max_tokens"]

    # Logging
    debug: bool = DEFAULT_CONFIG["debug"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]
    enable_file_logging: bool = DEFAULT_CONFIG["enable_file_logging"]

    # True when the Gemini key came from the environment; such keys are never saved
    _has_secure_api_key: bool = False

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra", {})
        d.update(extra)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, self.extra.get(key, default))

    @property
    def submit_url(self) -> str:
        return f"{self.analysis_service_url.rstrip('/')}{self.analysis_submit_path}"

    @property
    def register_url(self) -> str:
        return f"{self.backend_url.rstrip('/')}{self.register_path}"


def load_config(path: str = "config.json", env_file: Optional[str] = None) -> Config:
    """Load configuration from JSON file and environment.

    Args:
        path: Path to config.json file
        env_file: Path to .env file (optional)

    Returns:
        Config: Loaded and validated configuration
    """
    data: Dict[str, Any] = {}
    env_config: Optional[EnvironmentConfig] = None

    try:
        env_config = load_environment_config(env_file)
    except EnvironmentError as e:
        logging.warning(f"Environment configuration failed: {e}")

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if isinstance(loaded_data, dict):
                data = loaded_data
                logging.info(f"Successfully loaded configuration from '{path}'")
            else:
                logging.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
        except json.JSONDecodeError as e:
            logging.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except OSError as e:
            logging.error(f"Failed to read configuration file '{path}': {e}. Using defaults.")
    else:
        logging.info(f"Configuration file '{path}' does not exist. Using defaults.")

    merged = {**DEFAULT_CONFIG, **data}

    if env_config:
        merged = _apply_environment_overrides(merged, env_config)

    merged = _sanitize_config_values(merged)

    known = [k for k in Config.__annotations__ if k not in _INTERNAL_FIELDS]
    extra = {k: v for k, v in merged.items() if k not in Config.__annotations__}
    if extra:
        logging.info(f"Found extra configuration keys: {list(extra.keys())}")

    cfg = Config(**{k: merged[k] for k in known if k in merged}, extra=extra)
    cfg._has_secure_api_key = env_config is not None and env_config.is_api_key_configured
    return cfg


def save_config(cfg: Config, path: str = "config.json") -> None:
    """Save configuration to JSON file.

    API keys and tokens supplied through the environment are blanked before
    writing.
    """
    config_dict = cfg.to_dict()

    if cfg._has_secure_api_key:
        config_dict["gemini_api_key"] = ""
        logging.info("API key excluded from saved config (using environment variable)")
    config_dict["backend_token"] = ""
    config_dict.pop("_has_secure_api_key", None)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config_dict, f, indent=2, ensure_ascii=False)
        logging.info(f"Configuration saved successfully to '{path}'")
    except OSError as e:
        logging.error(f"Failed to save configuration file '{path}': {e}")
        raise


def _apply_environment_overrides(config_dict: Dict[str, Any], env_config: EnvironmentConfig) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration.

    Args:
        config_dict: Base configuration dictionary
        env_config: Environment configuration object

    Returns:
        dict: Updated configuration with environment overrides
    """
    overrides = {
        "analysis_service_url": env_config.analysis_service_url,
        "backend_url": env_config.backend_url,
        "backend_token": env_config.backend_token,
        "poll_max_attempts": env_config.poll_max_attempts,
        "poll_interval_seconds": env_config.poll_interval_seconds,
        "submit_timeout": env_config.submit_timeout,
        "poll_timeout": env_config.poll_timeout,
        "confidence_threshold": env_config.confidence_threshold,
        "gemini_api_key": env_config.gemini_api_key,
        "gemini_model": env_config.gemini_model,
    }
    for key, value in overrides.items():
        if value is not None:
            config_dict[key] = value

    if env_config.debug_logging:
        config_dict["debug"] = True
        config_dict["log_level"] = "DEBUG"

    logging.debug("Applied environment variable overrides to configuration")
    return config_dict


def _sanitize_config_values(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Range-check numeric settings, replacing bad values with defaults.

    Args:
        config_dict: Configuration dictionary to sanitize

    Returns:
        dict: Sanitized configuration dictionary
    """
    sanitized = config_dict.copy()

    numeric_validations = {
        'submit_timeout': (1, 300),
        'poll_timeout': (1, 900),
        'connect_timeout': (1, 120),
        'poll_max_attempts': (1, 600),
        'poll_interval_seconds': (0.0, 60.0),
        'confidence_threshold': (0.0, 1.0),
        'backend_timeout': (1, 600),
        'gemini_timeout': (5, 300),
        'gemini_temperature': (0.0, 1.0),
        'gemini_max_tokens': (1, 8192),
    }

    for key, (min_val, max_val) in numeric_validations.items():
        value = sanitized.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logging.warning(f"Value {key}={value!r} is not numeric, using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        elif not (min_val <= value <= max_val):
            logging.warning(f"Value {key}={value} out of range [{min_val}, {max_val}], using default")
            sanitized[key] = DEFAULT_CONFIG[key]

    if sanitized['poll_timeout'] < MIN_POLL_TIMEOUT:
        logging.warning(f"poll_timeout={sanitized['poll_timeout']} raised to {MIN_POLL_TIMEOUT}s")
        sanitized['poll_timeout'] = MIN_POLL_TIMEOUT

    for key in ('analysis_service_url', 'backend_url'):
        value = sanitized.get(key)
        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            logging.warning(f"Invalid URL for {key}: {value!r}, using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        else:
            sanitized[key] = value.rstrip("/")

    return sanitized
