"""Environment variable configuration.

Reads service endpoints, polling budget and credentials from the process
environment, optionally seeded from a ``.env`` file. Every value is
validated before it can reach the pipeline.
"""
import os
import logging
import re
from typing import Optional, Dict, Union
from pathlib import Path
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentConfig:
    """Immutable environment configuration object.

    ``None`` means "not set in the environment"; the JSON/default layer
    keeps its value in that case.
    """

    # Endpoints
    analysis_service_url: Optional[str]
    backend_url: Optional[str]
    backend_token: Optional[str]

    # Protocol tuning
    poll_max_attempts: Optional[int]
    poll_interval_seconds: Optional[float]
    submit_timeout: Optional[int]
    poll_timeout: Optional[int]
    confidence_threshold: Optional[float]

    # Clinical insight
    gemini_api_key: Optional[str]
    gemini_model: Optional[str]

    debug_logging: bool

    is_api_key_configured: bool


class EnvironmentError(Exception):
    """Custom exception for environment configuration errors."""
    pass


class EnvironmentValidator:
    """Validates environment variable values."""

    GEMINI_API_KEY_PATTERN = re.compile(r'^AIza[0-9A-Za-z_-]{35}$')
    GEMINI_MODEL_PATTERN = re.compile(r'^gemini-[0-9a-z.\-]+$')

    @classmethod
    def validate_api_key(cls, api_key: str) -> bool:
        """Validate Gemini API key format.

        Args:
            api_key: The API key to validate

        Returns:
            bool: True if valid format, False otherwise
        """
        if not api_key or not isinstance(api_key, str):
            return False

        if not cls.GEMINI_API_KEY_PATTERN.match(api_key):
            logger.warning("API key does not match expected Gemini format")
            return False

        return True

    @classmethod
    def validate_model_name(cls, model_name: str) -> bool:
        return bool(model_name) and bool(cls.GEMINI_MODEL_PATTERN.match(model_name))

    @classmethod
    def validate_url(cls, url: str) -> str:
        """Validate an http(s) base URL and strip any trailing slash.

        Raises:
            EnvironmentError: If the URL is not an absolute http(s) URL
        """
        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise EnvironmentError(f"Invalid service URL: {url}")
        return url.strip().rstrip("/")

    @classmethod
    def validate_numeric_range(cls, value: Union[str, int, float],
                              min_val: Optional[Union[int, float]] = None,
                              max_val: Optional[Union[int, float]] = None,
                              value_type: type = int) -> Union[int, float]:
        """Validate numeric value within specified range.

        Args:
            value: The value to validate
            min_val: Minimum allowed value
            max_val: Maximum allowed value
            value_type: Expected type (int or float)

        Returns:
            The validated numeric value

        Raises:
            EnvironmentError: If validation fails
        """
        try:
            numeric_value = value_type(value)
        except (ValueError, TypeError):
            raise EnvironmentError(f"Invalid {value_type.__name__} value: {value}")

        if min_val is not None and numeric_value < min_val:
            raise EnvironmentError(f"Value {numeric_value} below minimum {min_val}")

        if max_val is not None and numeric_value > max_val:
            raise EnvironmentError(f"Value {numeric_value} above maximum {max_val}")

        return numeric_value


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """Load environment variables from .env file.

    Args:
        env_path: Path to .env file. Defaults to .env in current directory.

    Returns:
        dict: Loaded environment variables
    """
    if env_path is None:
        env_path = ".env"

    env_vars: Dict[str, str] = {}
    env_file_path = Path(env_path)

    if not env_file_path.exists():
        logger.debug(f"Environment file {env_path} not found, using system environment only")
        return env_vars

    try:
        with open(env_file_path, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()

                if not line or line.startswith('#'):
                    continue

                if '=' in line:
                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip()

                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                        value = value[1:-1]

                    env_vars[key] = value
                else:
                    logger.warning(f"Invalid line format in {env_path}:{line_num}")

        logger.info(f"Loaded {len(env_vars)} variables from {env_path}")

    except OSError as e:
        logger.error(f"Error reading environment file {env_path}: {e}")

    return env_vars


def get_env_var(key: str, default: Optional[str] = None,
                required: bool = False, env_vars: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Get environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not found
        required: Whether the variable is required
        env_vars: Pre-loaded environment variables dict

    Returns:
        The environment variable value or default

    Raises:
        EnvironmentError: If required variable is missing
    """
    # System environment wins over the .env file
    value = os.getenv(key)
    if value is None and env_vars and key in env_vars:
        value = env_vars[key]
    if value is None:
        value = default

    if required and (value is None or value.strip() == ""):
        raise EnvironmentError(f"Required environment variable '{key}' is not set")

    return value


def _optional_number(key: str, env_vars: Dict[str, str], min_val, max_val, value_type):
    raw = get_env_var(key, env_vars=env_vars)
    if raw is None or raw.strip() == "":
        return None
    return EnvironmentValidator.validate_numeric_range(raw, min_val, max_val, value_type)


def load_environment_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Load and validate environment configuration.

    Args:
        env_file_path: Path to .env file

    Returns:
        EnvironmentConfig: Validated configuration object

    Raises:
        EnvironmentError: If a variable is set to an invalid value
    """
    env_vars = load_env_file(env_file_path)
    validator = EnvironmentValidator()

    analysis_url = get_env_var("DENTALVISION_ANALYSIS_URL", env_vars=env_vars)
    if analysis_url:
        analysis_url = validator.validate_url(analysis_url)

    backend_url = get_env_var("DENTALVISION_BACKEND_URL", env_vars=env_vars)
    if backend_url:
        backend_url = validator.validate_url(backend_url)

    backend_token = get_env_var("DENTALVISION_BACKEND_TOKEN", env_vars=env_vars) or None

    poll_max_attempts = _optional_number("DENTALVISION_POLL_MAX_ATTEMPTS", env_vars, 1, 600, int)
    poll_interval = _optional_number("DENTALVISION_POLL_INTERVAL", env_vars, 0.0, 60.0, float)
    submit_timeout = _optional_number("DENTALVISION_SUBMIT_TIMEOUT", env_vars, 1, 300, int)
    poll_timeout = _optional_number("DENTALVISION_POLL_TIMEOUT", env_vars, 120, 900, int)
    threshold = _optional_number("DENTALVISION_CONFIDENCE_THRESHOLD", env_vars, 0.0, 1.0, float)

    api_key = get_env_var("GEMINI_API_KEY", env_vars=env_vars)
    is_api_configured = False
    if api_key:
        if validator.validate_api_key(api_key):
            is_api_configured = True
        else:
            api_key = None

    model = get_env_var("GEMINI_MODEL", env_vars=env_vars)
    if model and not validator.validate_model_name(model):
        logger.warning(f"Invalid model name '{model}', keeping configured model")
        model = None

    debug_str = get_env_var("DEBUG_LOGGING", "false", env_vars=env_vars)
    debug_logging = debug_str.lower() in ('true', '1', 'yes', 'on')

    config = EnvironmentConfig(
        analysis_service_url=analysis_url,
        backend_url=backend_url,
        backend_token=backend_token,
        poll_max_attempts=poll_max_attempts,
        poll_interval_seconds=poll_interval,
        submit_timeout=submit_timeout,
        poll_timeout=poll_timeout,
        confidence_threshold=threshold,
        gemini_api_key=api_key,
        gemini_model=model,
        debug_logging=debug_logging,
        is_api_key_configured=is_api_configured,
    )

    if is_api_configured:
        logger.info("Environment configuration loaded - clinical insights enabled")
    else:
        logger.info("Environment configuration loaded - set GEMINI_API_KEY to enable clinical insights")

    return config


__all__ = [
    "EnvironmentConfig",
    "EnvironmentError",
    "EnvironmentValidator",
    "load_environment_config",
    "load_env_file",
    "get_env_var"
]
