"""Agents: goal-scoped query wrappers, optionally pinned to one provider."""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from arbiter.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "General Programming"
DEFAULT_CONTEXT = "General assistance"
DEFAULT_SCOPE = "Help with user's specific needs"

# Checked in order; first keyword found in the goal text wins.
_DOMAIN_KEYWORDS = (
    ("python", "Python Programming"),
    ("javascript", "JavaScript Development"),
    ("react", "React Development"),
    ("tic tac toe", "Game Development"),
    ("web", "Web Development"),
    ("api", "API Development"),
    ("database", "Database Management"),
    ("css", "CSS Styling"),
    ("html", "HTML Development"),
)

_GOAL_PARSE_PROMPT = """Convert this user goal into a clear, structured format for an AI assistant:

User Input: "{goal}"

Respond with ONLY a JSON object in this format:
{{
  "domain": "main subject area",
  "objective": "specific goal",
  "context": "relevant background",
  "scope": "what to focus on"
}}"""

_AGENT_PROMPT = """You are a specialized AI assistant with this goal:
Domain: {domain}
Objective: {objective}
Context: {context}
Scope: {scope}

User Question: "{query}"

Respond ONLY within your goal scope. If the question is unrelated, redirect it back to your objective. Keep responses focused and practical."""

# Placeholder values of the parse prompt; a reply echoing them carries no goal.
_GOAL_PLACEHOLDERS = {
    "domain": "main subject area",
    "objective": "specific goal",
    "context": "relevant background",
    "scope": "what to focus on",
}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_domain(text: str) -> str:
    lowered = text.lower()
    for keyword, domain in _DOMAIN_KEYWORDS:
        if keyword in lowered:
            return domain
    return DEFAULT_DOMAIN


@dataclass(frozen=True)
class AgentGoal:
    domain: str
    objective: str
    context: str = DEFAULT_CONTEXT
    scope: str = DEFAULT_SCOPE

    @classmethod
    def from_text(cls, text: str) -> "AgentGoal":
        """Heuristic goal from free text; no model call."""
        return cls(domain=extract_domain(text), objective=text.strip())

    @classmethod
    def from_dict(cls, raw: dict[str, Any], fallback_text: str = "") -> "AgentGoal":
        base = cls.from_text(fallback_text or str(raw.get("objective", "")))

        def pick(key: str, default: str) -> str:
            value = raw.get(key)
            return str(value).strip() if value not in (None, "") else default

        return cls(
            domain=pick("domain", base.domain),
            objective=pick("objective", base.objective),
            context=pick("context", base.context),
            scope=pick("scope", base.scope),
        )


def coerce_goal(goal: "AgentGoal | dict | str | None") -> AgentGoal | None:
    """Accept a goal in any supported form; empty goals become None."""
    if goal is None or isinstance(goal, AgentGoal):
        return goal
    if isinstance(goal, dict):
        return AgentGoal.from_dict(goal) if goal else None
    text = str(goal).strip()
    return AgentGoal.from_text(text) if text else None


def build_agent_prompt(query: str, goal: AgentGoal) -> str:
    return _AGENT_PROMPT.format(
        domain=goal.domain,
        objective=goal.objective,
        context=goal.context,
        scope=goal.scope,
        query=query,
    )


def parse_goal_reply(reply: str, goal_input: str) -> AgentGoal:
    """Read the JSON object out of a model reply, falling back to the heuristic goal."""
    match = _JSON_OBJECT.search(reply or "")
    if match:
        try:
            raw = json.loads(match.group(0))
        except ValueError:
            logger.warning("Goal parsing returned malformed JSON, using keyword fallback")
        else:
            if isinstance(raw, dict):
                raw = {key: value for key, value in raw.items() if value != _GOAL_PLACEHOLDERS.get(key)}
                return AgentGoal.from_dict(raw, fallback_text=goal_input)
    return AgentGoal.from_text(goal_input)


@dataclass(frozen=True)
class Agent:
    id: str
    goal: AgentGoal
    model: str | None = None
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _goal_parser(orchestrator: "Orchestrator", model: str | None) -> str | None:
    """Provider id that structures a goal; None when only demo providers are left."""
    providers = orchestrator.providers
    if model:
        provider_id = orchestrator.config.resolve_provider(model)
        if provider_id in providers:
            return None if providers[provider_id].is_demo() else provider_id
    return next((name for name, provider in providers.items() if not provider.is_demo()), None)


async def create_agent(
    goal_input: str,
    orchestrator: "Orchestrator",
    model: str | None = None,
) -> Agent:
    """Ask one model to structure the goal text, then build an Agent around it.

    The parse call goes to the agent's pinned provider, or to the first
    provider with credentials. Falls back to keyword parsing when no such
    provider exists, the call fails or its reply holds no usable JSON.
    """
    parser_id = _goal_parser(orchestrator, model)
    if parser_id is None:
        logger.info("No live provider to structure the goal, using keyword parsing")
        return Agent(id=uuid.uuid4().hex, goal=AgentGoal.from_text(goal_input), model=model)

    prompt = _GOAL_PARSE_PROMPT.format(goal=goal_input)
    result = await orchestrator.ask(prompt, pinned_model=parser_id)
    if result.succeeded:
        goal = parse_goal_reply(result.winning_text, goal_input)
    else:
        logger.warning("Goal parsing call failed, using keyword fallback")
        goal = AgentGoal.from_text(goal_input)
    return Agent(id=uuid.uuid4().hex, goal=goal, model=model)


class AgentManager:
    """In-memory registry of agents for one session."""

    def __init__(self, orchestrator: "Orchestrator") -> None:
        self._orchestrator = orchestrator
        self._agents: dict[str, Agent] = {}

    async def create_agent(self, goal_input: str, model: str | None = None) -> Agent:
        agent = await create_agent(goal_input, self._orchestrator, model)
        self._agents[agent.id] = agent
        logger.info("Created agent %s (%s)", agent.id, agent.goal.domain)
        return agent

    def get_agent(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def delete_agent(self, agent_id: str) -> bool:
        return self._agents.pop(agent_id, None) is not None

    def list_agents(self) -> list[Agent]:
        return list(self._agents.values())

    async def respond(self, agent_id: str, query: str) -> str:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise KeyError(f"Unknown agent: {agent_id}")
        return await self._orchestrator.get_agent_response(query, agent.goal, agent.model)
