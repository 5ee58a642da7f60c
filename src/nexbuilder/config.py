"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from nexbuilder.db.models import AIConfig, Provider

DEFAULT_MODELS = {
    Provider.CLAUDE: "sonnet",
    Provider.OPENROUTER: "anthropic/claude-3.5-sonnet",
}


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".nexbuilder" / "nexbuilder.db")
    provider: Provider = Provider.CLAUDE
    model: str | None = None
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    claude_binary: str = "claude"
    request_timeout: float = 300.0
    slack_bot_token: str | None = None
    slack_channel: str | None = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("NB_DB_PATH"):
            config.db_path = Path(db)

        if provider := os.environ.get("NB_PROVIDER"):
            config.provider = Provider(provider.strip().lower())

        if model := os.environ.get("NB_MODEL"):
            config.model = model

        config.openrouter_api_key = os.environ.get("OPENROUTER_API_KEY")

        if base_url := os.environ.get("NB_OPENROUTER_BASE_URL"):
            config.openrouter_base_url = base_url.rstrip("/")

        if binary := os.environ.get("NB_CLAUDE_BINARY"):
            config.claude_binary = binary

        if timeout := os.environ.get("NB_REQUEST_TIMEOUT"):
            config.request_timeout = float(timeout)

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("NB_SLACK_CHANNEL")

        if level := os.environ.get("NB_LOG_LEVEL"):
            config.log_level = level.upper()

        return config


def get_config() -> Config:
    return Config.from_env()


def resolve_ai_config(stored: AIConfig | None, config: Config) -> AIConfig:
    """Merge saved AI settings over the environment defaults."""
    provider = stored.provider if stored else config.provider
    model = (stored.model if stored else None) or config.model or DEFAULT_MODELS[provider]
    api_key = stored.api_key if stored and stored.api_key else None
    if api_key is None and provider == Provider.OPENROUTER:
        api_key = config.openrouter_api_key
    return AIConfig(provider=provider, model=model, api_key=api_key)
