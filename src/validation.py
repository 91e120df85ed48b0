"""
Schema Validation - JSON Schema validation of the config file.

The YAML config file is checked against CONFIG_SCHEMA before it is turned
into typed configuration, so a typo fails at startup with a readable
message instead of surfacing later as a wrong default.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_OPTIONAL_STRING = {"type": ["string", "null"]}

ACM_ALB_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "region": {"anyOf": [{"type": "string"}, _STRING_LIST, {"type": "null"}]},
        "credentials": {
            "type": ["object", "null"],
            "required": ["access_key", "secret_key"],
            "properties": {
                "access_key": {"type": "string"},
                "secret_key": {"type": "string"},
            },
        },
        "load_balancers": {"anyOf": [_STRING_LIST, {"type": "null"}]},
        "dry_run": {"type": "boolean"},
        "proxy": {
            "type": ["object", "null"],
            "properties": {"http": _OPTIONAL_STRING, "https": _OPTIONAL_STRING},
            "additionalProperties": False,
        },
        "key_types": {"anyOf": [_STRING_LIST, {"type": "null"}]},
        "page_size": {"type": ["integer", "null"], "minimum": 1, "maximum": 1000},
        "connect_timeout": {"type": "integer", "minimum": 1},
        "read_timeout": {"type": "integer", "minimum": 1},
        "max_attempts": {"type": "integer", "minimum": 1},
        "endpoint_url": _OPTIONAL_STRING,
    },
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "source": {"type": "string"},
        "destination": {"type": "string"},
        "controller": {
            "type": "object",
            "properties": {
                "pacing_delay": {"type": "number", "minimum": 0},
                "history_size": {"type": "integer", "minimum": 1},
                "backoff_base_delay": {"type": "number", "minimum": 0},
                "backoff_max_delay": {"type": "number", "minimum": 0},
                "backoff_jitter_factor": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                },
            },
            "additionalProperties": False,
        },
        "api": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "host": {"type": "string"},
                "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                "log_level": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "plugins": {
            "type": "object",
            "additionalProperties": {"type": "object"},
        },
        "kubernetes": {"type": "object"},
        "aws": ACM_ALB_SCHEMA,
    },
}


def validate_config(data: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a parsed config file against CONFIG_SCHEMA.

    Args:
        data: The parsed YAML document

    Returns:
        Tuple of (is_valid, error_message)
    """
    validator = Draft7Validator(CONFIG_SCHEMA)
    errors = sorted(
        validator.iter_errors(data),
        key=lambda e: [str(p) for p in e.absolute_path],
    )

    if not errors:
        return True, None

    # Collect all validation errors
    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        error_messages.append(f"{path}: {error.message}")

    return False, "; ".join(error_messages)
