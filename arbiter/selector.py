"""Score normalized provider responses and pick the winner."""

import logging
from collections.abc import Sequence

from arbiter.models import ProviderResponse, ScoringPolicy, SelectionResult

logger = logging.getLogger(__name__)

# Weighted policy: score = confidence*0.6 + length_term*0.3 + brevity_term*0.1
_CONFIDENCE_WEIGHT = 0.6
_LENGTH_WEIGHT = 0.3
_BREVITY_WEIGHT = 0.1
_LENGTH_CAP = 1000


class NoViableResponse(Exception):
    """Raised when no provider produced a usable answer."""

    def __init__(self, candidates: Sequence[ProviderResponse]) -> None:
        self.candidates = tuple(candidates)
        super().__init__(f"No viable response among {len(self.candidates)} candidate(s)")


def score(response: ProviderResponse, policy: ScoringPolicy) -> float:
    """Pure score of one response under a policy."""
    length = len(response.text)
    if policy is ScoringPolicy.LENGTH:
        return float(length)
    return (
        response.confidence_estimate * _CONFIDENCE_WEIGHT
        + min(length, _LENGTH_CAP) / _LENGTH_CAP * _LENGTH_WEIGHT
        + (1 / max(response.token_estimate, 1)) * 100 * _BREVITY_WEIGHT
    )


def _format_reasoning(
    responses: Sequence[ProviderResponse],
    scores: list[float],
    winner: ProviderResponse,
    policy: ScoringPolicy,
) -> str:
    parts = []
    for resp, value in zip(responses, scores):
        entry = f"{resp.provider_id}={value:.3f}"
        if not resp.succeeded:
            reason = resp.error_kind.value if resp.error_kind else "failed"
            entry += f" ({reason})"
        parts.append(entry)
    return f"Selected {winner.provider_id} by {policy.value} policy; scores: {', '.join(parts)}"


def select(
    responses: Sequence[ProviderResponse],
    policy: ScoringPolicy = ScoringPolicy.LENGTH,
) -> SelectionResult:
    """Pick the best response.

    Every response is scored, failed placeholders included, but only
    succeeded responses can win. Ties go to the earliest-listed response.

    Raises:
        NoViableResponse: The sequence is empty or every response failed.
    """
    scores = [score(r, policy) for r in responses]

    best_index: int | None = None
    for index, resp in enumerate(responses):
        if not resp.succeeded:
            continue
        if best_index is None or scores[index] > scores[best_index]:
            best_index = index

    if best_index is None:
        raise NoViableResponse(responses)

    winner = responses[best_index]
    reasoning = _format_reasoning(responses, scores, winner, policy)
    logger.info("%s", reasoning)

    return SelectionResult(
        winning_text=winner.text,
        winning_provider_id=winner.provider_id,
        candidates=tuple(responses),
        reasoning=reasoning,
        policy=policy,
    )
