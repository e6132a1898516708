"""Provider adapters."""

from .gemini import GeminiAdapter, to_gemini_schema
from .mock import MockAdapter, extract_mock_key
from .openai_provider import OpenAIAdapter
from .stubs import ClaudeAdapter

__all__ = [
    "ClaudeAdapter",
    "GeminiAdapter",
    "MockAdapter",
    "OpenAIAdapter",
    "extract_mock_key",
    "to_gemini_schema",
]
