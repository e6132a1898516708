"""Provider REST helpers."""

from .gemini import extract_text, generate_content

__all__ = ["extract_text", "generate_content"]
