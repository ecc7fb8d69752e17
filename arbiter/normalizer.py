"""Map raw provider payloads onto ProviderResponse.

Each known payload layout is one PayloadShape. ``classify`` picks the shape
(final-answer field first, then the first chat choice, then the raw value
coerced to text) and ``normalize`` runs the matching extractor. Unknown
layouts degrade to the no-content placeholder; nothing here raises for
JSON-shaped input.
"""

import math
from enum import Enum
from typing import Any

from arbiter.models import ErrorKind, ProviderResponse

NO_CONTENT_TEXT = "Provider returned no content."
DEFAULT_CONFIDENCE = 0.5

FINAL_ANSWER_FIELDS = ("final_answer", "finalAnswer", "best_answer", "bestAnswer", "output")
# Wrappers that may hold a final-answer field one level down.
FINAL_ANSWER_CONTAINERS = ("best_response", "bestResponse", "result")


class PayloadShape(str, Enum):
    FINAL_ANSWER = "final_answer"          # {"output": ..., "model": ..., "confidence": ..., "tokens": ...}
    CHAT_COMPLETION = "chat_completion"    # {"choices": [{"message": {"content": ...}}]}
    TEXT = "text"                          # "bare string"
    UNKNOWN = "unknown"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _text_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _final_text(raw: dict) -> str | None:
    for key in FINAL_ANSWER_FIELDS:
        text = _text_or_none(raw.get(key))
        if text:
            return text
    for container in FINAL_ANSWER_CONTAINERS:
        nested = raw.get(container)
        if isinstance(nested, dict):
            for key in FINAL_ANSWER_FIELDS:
                text = _text_or_none(nested.get(key))
                if text:
                    return text
    return None


def _content_text(content: Any) -> str | None:
    # Content may be a string or a list of {"type": "text", "text": ...} parts.
    if isinstance(content, list):
        parts = [
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        return _text_or_none("".join(parts))
    return _text_or_none(content)


def _choice_text(raw: dict) -> str | None:
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    first = choices[0]
    message = first.get("message")
    if isinstance(message, dict):
        text = _content_text(message.get("content"))
        if text:
            return text
    return _text_or_none(first.get("text"))


def _raw_text(raw: Any) -> str | None:
    if _is_number(raw):
        return str(raw)
    return _text_or_none(raw)


_EXTRACTORS = {
    PayloadShape.FINAL_ANSWER: _final_text,
    PayloadShape.CHAT_COMPLETION: _choice_text,
    PayloadShape.TEXT: _raw_text,
}


def classify(raw: Any) -> PayloadShape:
    """Tag a raw payload with the first shape that yields text."""
    if isinstance(raw, dict):
        if _final_text(raw):
            return PayloadShape.FINAL_ANSWER
        if _choice_text(raw):
            return PayloadShape.CHAT_COMPLETION
        return PayloadShape.UNKNOWN
    if _raw_text(raw):
        return PayloadShape.TEXT
    return PayloadShape.UNKNOWN


def estimate_tokens(text: str) -> int:
    """Rough token count: about four characters per token, at least one."""
    return max(1, math.ceil(len(text) / 4))


def _confidence(raw: Any) -> float:
    if isinstance(raw, dict) and _is_number(raw.get("confidence")):
        return min(1.0, max(0.0, float(raw["confidence"])))
    return DEFAULT_CONFIDENCE


def _token_estimate(raw: Any, text: str) -> int:
    if isinstance(raw, dict):
        for key in ("tokens", "tokenEstimate", "token_estimate"):
            if _is_number(raw.get(key)) and raw[key] > 0:
                return int(raw[key])
        usage = raw.get("usage")
        if isinstance(usage, dict):
            for key in ("completion_tokens", "total_tokens"):
                if _is_number(usage.get(key)) and usage[key] > 0:
                    return int(usage[key])
    return estimate_tokens(text)


def _model(raw: Any, fallback: str) -> str:
    if isinstance(raw, dict) and isinstance(raw.get("model"), str) and raw["model"]:
        return raw["model"]
    return fallback


def normalize(
    raw: Any,
    provider_id: str,
    *,
    model: str | None = None,
    latency_ms: float = 0.0,
) -> ProviderResponse:
    """Build a ProviderResponse from any raw payload. Never raises."""
    shape = classify(raw)
    model_name = _model(raw, model or provider_id)

    if shape is PayloadShape.UNKNOWN:
        return ProviderResponse(
            text=NO_CONTENT_TEXT,
            provider_id=provider_id,
            model=model_name,
            confidence_estimate=0.0,
            token_estimate=estimate_tokens(NO_CONTENT_TEXT),
            latency_ms=latency_ms,
            succeeded=False,
            error_kind=ErrorKind.NO_CONTENT,
        )

    text = _EXTRACTORS[shape](raw)
    return ProviderResponse(
        text=text,
        provider_id=provider_id,
        model=model_name,
        confidence_estimate=_confidence(raw),
        token_estimate=_token_estimate(raw, text),
        latency_ms=latency_ms,
        succeeded=True,
    )


def failed_response(
    provider_id: str,
    error_kind: ErrorKind,
    *,
    model: str = "",
    latency_ms: float = 0.0,
) -> ProviderResponse:
    """Placeholder for a provider that raised or never settled."""
    text = f"API Error: Could not get {provider_id} response"
    return ProviderResponse(
        text=text,
        provider_id=provider_id,
        model=model or provider_id,
        confidence_estimate=0.0,
        token_estimate=estimate_tokens(text),
        latency_ms=latency_ms,
        succeeded=False,
        error_kind=error_kind,
    )
