"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # Upstream analysis service (Gradio app hosting the caries model)
    "analysis_service_url": "https://davidhosp-dental-vision-yolo12.hf.space",
    "analysis_submit_path": "/gradio_api/call/predict_dental_image",
    "analysis_file_prefix": "/file=",
    "analysis_token_field": "event_id",

    # Timeout profiles (seconds)
    "submit_timeout": 30,
    "poll_timeout": 120,  # never below 120, inference is slow
    "connect_timeout": 15,

    # Polling budget: 60 x 2s ~ 120s worst case
    "poll_max_attempts": 60,
    "poll_interval_seconds": 2.0,

    "confidence_threshold": 0.25,  # 0.0 to 1.0

    # System of record
    "backend_url": "https://backenddental-vision-ai.onrender.com",
    "register_path": "/api/v1/analysis/register",
    "backend_timeout": 60,
    "backend_token": "",

    # Clinical insight (Gemini)
    "gemini_api_key": "",
    "gemini_model": "gemini-2.5-flash",
    "gemini_timeout": 30,
    "gemini_temperature": 0.2,
    "gemini_max_tokens": 2048,

    # Debug and Logging Settings
    "debug": False,
    "log_level": "INFO",
    "log_dir": "logs",
    "structured_logging": False,
    "enable_file_logging": False,
}
