from pydantic_settings import BaseSettings
from functools import lru_cache


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing at the moment it is needed."""


class Settings(BaseSettings):
    # Telegram
    telegram_bot_token: str = ""  # Required for sending replies
    telegram_webhook_secret: str = ""  # Optional: for webhook verification

    # LLM gateway (OpenRouter, OpenAI-compatible)
    openrouter_api_key: str = ""
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "deepseek/deepseek-chat"

    # Agent
    agent_max_steps: int = 5
    memory_last_messages: int = 20

    # Storage (local embedded database for conversation memory)
    database_url: str = "sqlite:///./celestial.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 10000

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# Environment variable names, used in error messages
_ENV_NAMES = {
    "telegram_bot_token": "TELEGRAM_BOT_TOKEN",
    "openrouter_api_key": "OPENROUTER_API_KEY",
}


def require_setting(settings: Settings, name: str) -> str:
    """Return a non-empty setting or raise ConfigurationError."""
    value = getattr(settings, name, "")
    if not value:
        env_name = _ENV_NAMES.get(name, name.upper())
        raise ConfigurationError(f"{env_name} environment variable is not set")
    return value
