"""Request and result types shared by every provider."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class OperationKind(str, Enum):
    TEXT = "text"
    STRUCTURED = "structured"


class ProviderName(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    CLAUDE = "claude"
    MOCK = "mock"


@dataclass(frozen=True)
class CostRate:
    input_price_per_token: float = 0.0
    output_price_per_token: float = 0.0


@dataclass(frozen=True)
class RequestConfig:
    """Per-call overrides. ``None`` means "use the task or global default"."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    stop_sequences: Optional[Tuple[str, ...]] = None
    cache_ttl_seconds: Optional[int] = None
    timeout_ms: Optional[int] = None
    max_attempts: Optional[int] = None
    task: Optional[str] = None


@dataclass(frozen=True)
class ResolvedConfig:
    temperature: float
    max_tokens: int
    top_p: float
    top_k: int
    stop_sequences: Tuple[str, ...]
    cache_ttl_seconds: int
    timeout_ms: int
    max_attempts: int
    task: Optional[str] = None

    def generation_params(self) -> Dict[str, Any]:
        """Fields that change what the model produces (and so the cache key)."""
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "stop_sequences": list(self.stop_sequences),
        }


@dataclass(frozen=True)
class GenerationRequest:
    operation: OperationKind
    prompt: str
    schema: Optional[Dict[str, Any]] = None
    config: RequestConfig = field(default_factory=RequestConfig)


@dataclass
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0

    @classmethod
    def estimate(cls, prompt: str, completion: str) -> "TokenUsage":
        """Rough four-characters-per-token estimate."""
        p = len(prompt) // 4
        c = len(completion) // 4
        return cls(prompt=p, completion=c, total=p + c)


@dataclass
class ProviderOutput:
    """Raw payload returned by a provider transport."""

    data: Any
    tokens: Optional[TokenUsage] = None


@dataclass
class GenerationResult(Generic[T]):
    """The only type callers observe."""

    success: bool
    data: Optional[T]
    confidence: float
    provider: str
    model: str
    latency_ms: float
    cached: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    tokens: Optional[TokenUsage] = None

    def unwrap_or(self, fallback: T) -> T:
        """Return ``data`` on success, otherwise the caller's fallback."""
        if self.success and self.data is not None:
            return self.data
        return fallback

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
