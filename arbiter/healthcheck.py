"""Provider connection tests: ping each endpoint before relying on it."""

import asyncio
import logging

from arbiter.fallback import try_in_order
from arbiter.models import ChatOptions
from arbiter.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Hello"
_PING_OPTIONS = ChatOptions(temperature=0.0, max_tokens=10)
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, provider: AIProvider, timeout_sec: float) -> tuple[str, bool, str]:
    """Ping a single provider. Returns (name, ok, error_message)."""
    if provider.is_demo():
        return name, False, "not configured (demo mode)"
    try:
        await asyncio.wait_for(
            try_in_order(
                provider.deployments(),
                lambda deployment: provider.call(_PING_PROMPT, _PING_OPTIONS, deployment),
                name,
            ),
            timeout=timeout_sec,
        )
        return name, True, ""
    except TimeoutError:
        return name, False, f"timed out after {timeout_sec}s"
    except Exception as exc:
        return name, False, str(exc)


async def run_health_checks(
    providers: dict[str, AIProvider],
    timeout_sec: float | None = None,
) -> dict[str, tuple[bool, str]]:
    """Ping all providers in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    timeout = _TIMEOUT_SEC if timeout_sec is None else timeout_sec
    results = await asyncio.gather(*(_check_one(n, p, timeout) for n, p in providers.items()))
    for name, ok, err in results:
        if not ok:
            logger.warning("Health check failed for %s: %s", name, err)
    return {name: (ok, err) for name, ok, err in results}
