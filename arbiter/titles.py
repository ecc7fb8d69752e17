"""Short chat titles derived from a response text. Pure and deterministic."""

import re
from collections.abc import Mapping
from typing import Any

from arbiter.models import SelectionResult

DEFAULT_TITLE = "New Chat"
MAX_TITLE_LEN = 30
MAX_TITLE_WORDS = 3
FALLBACK_WORDS = 4
MIN_WORD_LEN = 4

STOP_WORDS = frozenset(
    {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)

_SENTENCE_SPLIT = re.compile(r"[.!?]")
_ALPHA_WORD = re.compile(r"[a-zA-Z]+")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, SelectionResult):
        return value.winning_text
    if isinstance(value, Mapping):
        for key in ("text", "content", "winning_text"):
            if isinstance(value.get(key), str):
                return value[key]
    return str(value)


def _truncate(title: str) -> str:
    return title[:MAX_TITLE_LEN] + "..." if len(title) > MAX_TITLE_LEN else title


def generate_title(response: Any) -> str:
    """Label a conversation from the first sentence of its response.

    Keeps up to three alphabetic non-stop-words longer than three letters,
    capitalized. Without any, uses the first four space-separated chunks
    of the whole text.
    """
    text = _as_text(response).lower()
    if not text.strip():
        return DEFAULT_TITLE

    first_sentence = _SENTENCE_SPLIT.split(text)[0]
    meaningful = [
        word
        for word in first_sentence.split()
        if len(word) >= MIN_WORD_LEN and word not in STOP_WORDS and _ALPHA_WORD.fullmatch(word)
    ]
    if meaningful:
        title = " ".join(word[0].upper() + word[1:] for word in meaningful[:MAX_TITLE_WORDS])
        return _truncate(title)

    # Split on single spaces: runs of spaces are kept in the fallback title.
    return _truncate(" ".join(text.split(" ")[:FALLBACK_WORDS]))
