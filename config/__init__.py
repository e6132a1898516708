"""Configuration for the generation layer."""

from __future__ import annotations

from .config import (
    TaskConfig,
    get_task_config,
    load_llm_config,
    resolve_request_config,
    validate_llm_config,
)
from .settings import LLMSettings

__all__ = [
    "LLMSettings",
    "TaskConfig",
    "get_task_config",
    "load_llm_config",
    "resolve_request_config",
    "validate_llm_config",
]
