"""Heuristic confidence scores for generated results."""

from __future__ import annotations

from typing import Any

CONFIDENCE_LABELS = {"high": 95.0, "medium": 75.0, "low": 50.0}
MAX_COMPLETENESS = 95.0
CACHED_CONFIDENCE = 100.0


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, float(score)))


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _explicit_label(result: dict) -> str | None:
    label = result.get("confidence")
    if isinstance(label, dict):
        label = label.get("overall")
    if isinstance(label, str) and label.lower() in CONFIDENCE_LABELS:
        return label.lower()
    return None


def estimate_confidence(result: Any) -> float:
    """Map a raw provider result to a 0-100 score.

    Structured results prefer an explicit ``confidence`` label
    (``high``/``medium``/``low`` or ``{"overall": ...}``) and otherwise use
    the share of non-empty top-level fields, capped at 95. Text is scored by
    length.
    """
    if result is None:
        return 0.0

    if isinstance(result, dict):
        label = _explicit_label(result)
        if label:
            return CONFIDENCE_LABELS[label]
        if not result:
            return 0.0
        filled = sum(1 for v in result.values() if not _is_empty(v))
        return _clamp(min(filled / len(result) * 100, MAX_COMPLETENESS))

    if isinstance(result, str):
        if not result.strip():
            return 0.0
        if len(result) < 10:
            return 50.0
        if len(result) < 100:
            return 70.0
        return 85.0

    if isinstance(result, list):
        return 75.0 if result else 0.0

    return 75.0
