"""Load settings.yaml into typed dataclasses. Checks provider credentials at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from parley.models import BotTemplate, SharedSettings

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ProviderConfig:
    name: str
    sdk: str
    timeout_sec: int
    max_tokens: int
    api_key_env: str | None = None
    base_url: str | None = None
    base_url_env: str | None = None


@dataclass
class PromptsConfig:
    facilitator: str
    facilitator_question: str
    bot_turn: str
    quota_open: str
    quota_closing: str
    summary_request: str


@dataclass
class FacilitatorConfig:
    name: str = "Facilitator"
    temperature: float = 0.1
    description: str = "Oversees and guides the conversation between the debating bots"


@dataclass
class DefaultsConfig:
    provider: str
    model_id: str
    max_response_length: int
    initial_quota: int
    history_limit: int
    backup_dir: Path

    def shared_settings(self) -> SharedSettings:
        return SharedSettings(
            provider=self.provider,
            model_id=self.model_id,
            max_response_length=self.max_response_length,
        )


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    providers: dict[str, ProviderConfig]
    prompts: PromptsConfig
    facilitator: FacilitatorConfig
    templates: list[BotTemplate] = field(default_factory=list)
    available_providers: set[str] = field(default_factory=set)


def _load_templates(raw: list[dict]) -> list[BotTemplate]:
    return [
        BotTemplate(
            uid=str(entry["uid"]),
            name=str(entry["name"]),
            system_prompt=str(entry["system_prompt"]),
            temperature=float(entry.get("temperature", 0.7)),
            description=entry.get("description"),
        )
        for entry in raw
    ]


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs providers whose API key is missing but does not raise; callers
    check available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        model_id=str(defaults_raw["model_id"]),
        max_response_length=int(defaults_raw["max_response_length"]),
        initial_quota=int(defaults_raw["initial_quota"]),
        history_limit=int(defaults_raw.get("history_limit", 10)),
        backup_dir=Path(defaults_raw.get("backup_dir", "./backups")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        facilitator=prompts_raw["facilitator"],
        facilitator_question=prompts_raw["facilitator_question"],
        bot_turn=prompts_raw["bot_turn"],
        quota_open=prompts_raw["quota_open"],
        quota_closing=prompts_raw["quota_closing"],
        summary_request=prompts_raw["summary_request"],
    )

    facilitator_raw = raw.get("facilitator", {})
    facilitator = FacilitatorConfig(
        name=str(facilitator_raw.get("name", "Facilitator")),
        temperature=float(facilitator_raw.get("temperature", 0.1)),
        description=str(facilitator_raw.get("description", FacilitatorConfig.description)),
    )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        provider_cfg = ProviderConfig(
            name=provider_name,
            sdk=provider_raw["sdk"],
            timeout_sec=int(provider_raw["timeout_sec"]),
            max_tokens=int(provider_raw["max_tokens"]),
            api_key_env=provider_raw.get("api_key_env"),
            base_url=provider_raw.get("base_url"),
            base_url_env=provider_raw.get("base_url_env"),
        )
        providers[provider_name] = provider_cfg

        if not provider_cfg.api_key_env or provider_raw.get("api_key_optional", False):
            available_providers.add(provider_name)
            logger.info("Provider available (no key needed): %s", provider_name)
            continue

        api_key = os.environ.get(provider_cfg.api_key_env, "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                provider_cfg.api_key_env,
            )

    return AppConfig(
        defaults=defaults,
        providers=providers,
        prompts=prompts,
        facilitator=facilitator,
        templates=_load_templates(raw.get("bots", [])),
        available_providers=available_providers,
    )
