"""Pure dataclasses and enums for the answer pipeline. No logic, no deps."""

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    HTTP = "http"
    PARSE = "parse"
    ALL_DEPLOYMENTS_UNAVAILABLE = "all_deployments_unavailable"
    TIMEOUT = "timeout"
    NO_CONTENT = "no_content"
    UNEXPECTED = "unexpected"


class ScoringPolicy(str, Enum):
    LENGTH = "length"
    WEIGHTED = "weighted"


class DispatchMode(str, Enum):
    CONCURRENT = "concurrent"
    SEQUENTIAL = "sequential"


@dataclass(frozen=True)
class ChatOptions:
    temperature: float = 0.7
    max_tokens: int = 1000
    system_instruction: str | None = None


@dataclass(frozen=True)
class ProviderResponse:
    text: str
    provider_id: str
    model: str
    confidence_estimate: float     # 0.0 - 1.0
    token_estimate: int
    latency_ms: float
    succeeded: bool
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class SelectionResult:
    winning_text: str
    winning_provider_id: str       # "" when no provider produced a usable answer
    candidates: tuple[ProviderResponse, ...]
    reasoning: str
    policy: ScoringPolicy
    succeeded: bool = True
