"""Deployment fallback: try each candidate once, in order, until one answers."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from arbiter.providers.base import AllDeploymentsUnavailable, ProviderError

logger = logging.getLogger(__name__)


async def try_in_order(
    candidates: Sequence[str],
    request_fn: Callable[[str], Awaitable[Any]],
    provider_name: str = "provider",
) -> Any:
    """Return the first successful ``request_fn(candidate)`` result.

    Candidates are tried strictly in list order, each at most once. A
    ProviderError (transport, HTTP or parse failure) moves on to the next
    candidate; anything else propagates unchanged.

    Raises:
        AllDeploymentsUnavailable: Every candidate failed, or there were none.
    """
    failures: list[tuple[str, ProviderError]] = []
    for candidate in candidates:
        try:
            result = await request_fn(candidate)
        except ProviderError as exc:
            logger.warning("%s deployment %s failed: %s", provider_name, candidate, exc)
            failures.append((candidate, exc))
            continue
        if failures:
            logger.info(
                "%s answered from deployment %s after %d failed attempt(s)",
                provider_name,
                candidate,
                len(failures),
            )
        return result

    raise AllDeploymentsUnavailable(provider_name, failures)
