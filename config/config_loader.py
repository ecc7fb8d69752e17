"""Load settings.yaml plus provider credentials from the environment into frozen dataclasses."""

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import yaml

from arbiter.models import DispatchMode, ScoringPolicy

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

PROVIDER_KINDS = ("openai", "creative", "azure")


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    kind: str
    endpoint_base_url: str
    api_key: str
    deployment_candidates: tuple[str, ...]
    default_temperature: float
    max_tokens: int
    timeout_sec: float
    api_version: str | None = None
    system_instruction: str | None = None
    label: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.endpoint_base_url)


@dataclass(frozen=True)
class DefaultsConfig:
    timeout_sec: float
    scoring_policy: ScoringPolicy = ScoringPolicy.LENGTH
    dispatch_mode: DispatchMode = DispatchMode.CONCURRENT
    health_timeout_sec: float = 15.0


@dataclass(frozen=True)
class AppConfig:
    """Immutable configuration snapshot.

    Edits produce a new snapshot; calls already in flight keep reading the
    one they started with.
    """

    defaults: DefaultsConfig
    providers: Mapping[str, ProviderConfig] = field(default_factory=dict)
    aliases: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only copies, so a snapshot cannot change under a running query.
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))
        object.__setattr__(self, "aliases", MappingProxyType(dict(self.aliases)))

    def with_provider(self, name: str, **changes) -> "AppConfig":
        """Return a copy with one provider's fields replaced."""
        if name not in self.providers:
            raise KeyError(f"Unknown provider: {name}")
        providers = dict(self.providers)
        providers[name] = dataclasses.replace(providers[name], **changes)
        return dataclasses.replace(self, providers=providers)

    def with_defaults(self, **changes) -> "AppConfig":
        return dataclasses.replace(self, defaults=dataclasses.replace(self.defaults, **changes))

    def resolve_provider(self, model_id: str) -> str | None:
        """Map a provider id or UI model alias to a configured provider id."""
        if model_id in self.providers:
            return model_id
        target = self.aliases.get(model_id) or self.aliases.get(model_id.lower())
        if target in self.providers:
            return target
        return None

    @property
    def available_providers(self) -> set[str]:
        return {name for name, cfg in self.providers.items() if cfg.is_configured}


def _env(var_name: str | None) -> str:
    if not var_name:
        return ""
    return os.environ.get(var_name, "").strip()


def _split_deployments(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _load_provider(name: str, raw: dict) -> ProviderConfig:
    kind = str(raw.get("kind", name))
    if kind not in PROVIDER_KINDS:
        raise ValueError(f"Provider '{name}' has unknown kind '{kind}'")

    deployments = _split_deployments(_env(raw.get("deployments_env")))
    if not deployments:
        deployments = tuple(str(d) for d in raw.get("deployments", []))

    api_version = _env(raw.get("api_version_env")) or raw.get("api_version")

    return ProviderConfig(
        name=name,
        kind=kind,
        endpoint_base_url=(_env(raw.get("endpoint_env")) or str(raw.get("endpoint", ""))).rstrip("/"),
        api_key=_env(raw.get("api_key_env")),
        deployment_candidates=deployments,
        default_temperature=float(raw.get("temperature", 0.7)),
        max_tokens=int(raw.get("max_tokens", 1000)),
        timeout_sec=float(raw.get("timeout_sec", 30)),
        api_version=str(api_version) if api_version else None,
        system_instruction=raw.get("system_instruction"),
        label=str(raw.get("label", name)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load configuration from settings.yaml and the process environment.

    Raises FileNotFoundError if the settings file is missing and ValueError
    for unknown policy, mode or provider kind names. Missing credentials are
    logged as warnings; those providers run in demo mode.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    defaults_raw = raw.get("defaults", {})
    defaults = DefaultsConfig(
        timeout_sec=float(defaults_raw.get("timeout_sec", 30)),
        scoring_policy=ScoringPolicy(defaults_raw.get("scoring_policy", "length")),
        dispatch_mode=DispatchMode(defaults_raw.get("dispatch_mode", "concurrent")),
        health_timeout_sec=float(defaults_raw.get("health_timeout_sec", 15)),
    )

    providers: dict[str, ProviderConfig] = {}
    for provider_name, provider_raw in (raw.get("providers") or {}).items():
        provider_raw = provider_raw or {}
        provider_cfg = _load_provider(provider_name, provider_raw)
        providers[provider_name] = provider_cfg
        if provider_cfg.is_configured:
            logger.info("Provider available: %s", provider_name)
        else:
            missing = [
                env_name
                for env_name, value in (
                    (provider_raw.get("api_key_env"), provider_cfg.api_key),
                    (provider_raw.get("endpoint_env"), provider_cfg.endpoint_base_url),
                )
                if not value
            ]
            logger.warning(
                "Provider %s not configured (set %s), using demo responses",
                provider_name,
                " and ".join(str(name) for name in missing),
            )

    aliases = {str(k): str(v) for k, v in (raw.get("aliases") or {}).items()}

    return AppConfig(defaults=defaults, providers=providers, aliases=aliases)
