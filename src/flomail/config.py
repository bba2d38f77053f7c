"""FloMail configuration: loads from flomail.yaml + .env."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_yaml_config() -> dict[str, Any]:
    """Load flomail.yaml from FLOMAIL_CONFIG_PATH or default locations."""
    config_path = os.getenv("FLOMAIL_CONFIG_PATH")
    search_paths = (
        [Path(config_path)]
        if config_path
        else [
            Path("flomail.yaml"),
            Path.home() / ".flomail" / "flomail.yaml",
        ]
    )
    for path in search_paths:
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}
    return {}


class LLMConfig(BaseSettings):
    """Model provider configuration."""

    default_provider: Literal["openai", "anthropic"] = "anthropic"

    openai_api_key: str = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY", ""),
        description="OpenAI API key",
    )
    openai_model: str = Field(default="gpt-4.1")
    openai_fallback_model: str = Field(
        default="gpt-4o",
        description="Retried once when the requested OpenAI model is not recognized",
    )

    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key",
    )
    anthropic_api_base: str = Field(default="https://api.anthropic.com")
    anthropic_version: str = Field(default="2023-06-01")
    anthropic_model: str = Field(default="claude-sonnet-4-20250514")
    anthropic_fallback_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        description="Retried once when the requested Claude model is not recognized",
    )

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, gt=0)
    request_timeout_s: float = Field(default=120.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="FLOMAIL_LLM_")


class AgentConfig(BaseSettings):
    """Agent loop configuration."""

    max_iterations: int = Field(
        default=10,
        gt=0,
        description="Max model calls per request before the loop is cut off",
    )

    model_config = SettingsConfigDict(env_prefix="FLOMAIL_AGENT_")


class SearchConfig(BaseSettings):
    """Web search and page fetch configuration."""

    tavily_api_key: str = Field(
        default_factory=lambda: os.getenv("TAVILY_API_KEY", ""),
        description="Tavily API key",
    )
    tavily_search_url: str = "https://api.tavily.com/search"
    tavily_extract_url: str = "https://api.tavily.com/extract"
    max_results: int = Field(default=5, ge=1, le=10)
    snippet_chars: int = Field(default=500, gt=0)
    browse_max_chars: int = Field(default=10_000, gt=0)
    timeout_s: float = Field(default=20.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="FLOMAIL_SEARCH_")


class MailboxConfig(BaseSettings):
    """Mailbox search configuration."""

    api_base: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    max_results_cap: int = Field(
        default=10,
        gt=0,
        description="Hard cap on threads fetched per search, whatever the model asks for",
    )
    default_max_results: int = Field(default=5, gt=0)
    batch_size: int = Field(default=3, gt=0)
    batch_delay_ms: int = Field(default=150, ge=0)
    max_body_chars: int = Field(default=1500, gt=0)
    token_budget: int = Field(
        default=12_000,
        gt=0,
        description="Approximate tokens (chars / 4) one search observation may hold",
    )
    timeout_s: float = Field(default=15.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="FLOMAIL_MAILBOX_")


class FloMailConfig(BaseSettings):
    """Root FloMail configuration."""

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8000, description="Server bind port")

    # Sub-configs
    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    mailbox: MailboxConfig = Field(default_factory=MailboxConfig)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="'json' or 'console'")

    model_config = SettingsConfigDict(
        env_prefix="FLOMAIL_",
        env_nested_delimiter="__",
    )

    @classmethod
    def load(cls) -> FloMailConfig:
        """Load config from YAML + env vars (env takes precedence)."""
        kwargs: dict[str, Any] = _load_yaml_config()

        for section, settings_cls in _SECTIONS.items():
            yaml_values = kwargs.pop(section, None) or {}
            if yaml_values:
                kwargs[section] = _merge_section(settings_cls, yaml_values)

        return cls(**kwargs)


def _merge_section(settings_cls: type[BaseSettings], yaml_values: dict[str, Any]) -> BaseSettings:
    """YAML values for one section, overridden by whatever its env prefix sets."""
    from_env = settings_cls().model_dump(exclude_unset=True)
    return settings_cls(**{**yaml_values, **from_env})


_SECTIONS: dict[str, type[BaseSettings]] = {
    "llm": LLMConfig,
    "agent": AgentConfig,
    "search": SearchConfig,
    "mailbox": MailboxConfig,
}


# Singleton
_config: FloMailConfig | None = None


def get_config() -> FloMailConfig:
    """Get or create the global config."""
    global _config
    if _config is None:
        _config = FloMailConfig.load()
    return _config
