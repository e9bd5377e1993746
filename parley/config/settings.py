"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BotSettings(BaseSettings):
    """Discord gateway configuration."""

    token: str = Field(default="", description="Discord bot token")
    tenant_id: str = Field(
        default="",
        description="Tenant whose credentials, persona and memories back the gateway",
    )
    allowed_channel_ids: list[int] = Field(
        default_factory=list,
        description="If non-empty, the gateway only responds in these channel IDs. "
                    "Set via BOT__ALLOWED_CHANNEL_IDS='[123456,789012]'",
    )
    media_max_age_seconds: int = Field(
        default=300,
        description="Local media files older than this are refused when dispatching "
                    "a [MEDIA_SEND:...] tag.",
    )

    model_config = SettingsConfigDict(env_prefix="BOT_")


class DatabaseSettings(BaseSettings):
    """Relational store configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///data/parley.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")

    model_config = SettingsConfigDict(env_prefix="DB_")


class LLMSettings(BaseSettings):
    """LLM provider and turn-engine configuration."""

    provider: str = Field(
        default="gemini",
        description="LiteLLM provider prefix. Model names discovered on credentials "
                    "are sent as '<provider>/<model>'.",
    )
    temperature: float = Field(
        default=0.7, description="Sampling temperature when the tenant sets none"
    )
    max_output_tokens: int = Field(
        default=2048, description="Maximum response tokens when the tenant sets none"
    )
    fallback_models: list[str] = Field(
        default_factory=lambda: [
            "gemini-2.5-flash",
            "gemini-2.0-flash",
            "gemini-1.5-pro",
            "gemini-1.5-flash",
        ],
        description="Models tried on a credential that has no discovery data yet",
    )
    history_limit: int = Field(default=10, description="Prior log entries sent as history")
    memory_limit: int = Field(
        default=20, description="Maximum memories injected per memory kind"
    )
    call_timeout: float = Field(
        default=60.0, description="Seconds allowed for a single provider call"
    )
    turn_timeout: float = Field(
        default=180.0, description="Seconds allowed for a whole turn, all candidates included"
    )
    discovery_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Model listing endpoint used for credential discovery",
    )
    discovery_interval: int = Field(
        default=3600, description="Seconds between background discovery passes"
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class ToolSettings(BaseSettings):
    """Built-in tool configuration."""

    http_timeout: float = Field(default=15.0, description="Seconds per outbound tool request")
    call_timeout: float = Field(
        default=45.0, description="Seconds allowed for one tool invocation end to end"
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
        ),
        description="User-Agent sent by search and scrape tools",
    )
    search_max_results: int = Field(default=5, description="Web search result cap")
    scrape_max_chars: int = Field(default=10_000, description="Scraped page text budget")
    readme_max_chars: int = Field(default=8_000, description="GitHub README text budget")
    webhook_max_chars: int = Field(default=5_000, description="Custom webhook response budget")
    downloads_dir: Path = Field(
        default=Path("data/downloads"),
        description="Managed directory for media fetched by send_media",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")


class KnowledgeSettings(BaseSettings):
    """Knowledge Bank configuration."""

    path: Path = Field(
        default=Path("data/knowledge_bank.md"),
        description="Text file holding the knowledge bank blob",
    )

    model_config = SettingsConfigDict(env_prefix="KNOWLEDGE_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")
    log_buffer_size: int = Field(
        default=500, description="Recent log lines kept in memory for inspection"
    )

    # Identity statement appended to every system instruction
    owner_name: str = Field(
        default="the operator of this deployment",
        description="Who the assistant names as its owner and creator when asked",
    )

    # Sub-configurations
    bot: BotSettings = Field(default_factory=BotSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    knowledge: KnowledgeSettings = Field(default_factory=KnowledgeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
