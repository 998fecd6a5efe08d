"""Configuration management for NARE using pydantic-settings."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Ensure .env is loaded so ${VAR} expansion and os.environ lookups work
load_dotenv(dotenv_path=Path(".") / ".env", override=False)

CONFIG_DIR = Path.home() / ".config" / "nare"


class ConfigurationError(Exception):
    """Raised when the process cannot start with the current configuration."""


class NareConfig(BaseModel):
    """Core NARE configuration."""

    name: str = "NARE"
    version: str = "0.1.0"
    data_dir: str = os.environ.get("NARE_DATA_DIR", str(CONFIG_DIR))


class TelegramConfig(BaseModel):
    """Telegram Bot API channel configuration."""

    api_base: str = "https://api.telegram.org"
    bot_token: str = ""
    poll_timeout: int = 30
    retry_backoff: float = 5.0
    # Only these chat IDs are served (empty = allow all)
    allowed_chat_ids: list[str] = Field(default_factory=list)

    @field_validator("allowed_chat_ids", mode="before")
    @classmethod
    def _chat_ids_as_strings(cls, value: Any) -> Any:
        # Telegram chat ids are numbers in YAML but strings on incoming updates
        if isinstance(value, list):
            return [str(item) if isinstance(item, int) else item for item in value]
        return value


class AIConfig(BaseModel):
    """AI backend configuration."""

    provider: str = ""  # "claude", "deepseek" or "" for automatic selection
    claude_cli_path: str = "claude"
    claude_timeout: int = 120
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"
    deepseek_timeout: int = 120
    max_rounds: int = 3


class ExecutorConfig(BaseModel):
    """Shell command executor limits."""

    timeout: int = 60
    max_output_bytes: int = 1024 * 1024
    success_chars: int = 3000
    failure_chars: int = 2000


class SessionConfig(BaseModel):
    """Per-conversation state configuration."""

    history_limit: int = 20
    confirmation_timeout: float = 60.0
    default_language: str = "en"


class PermissionsConfig(BaseModel):
    """Location of the persisted capability set."""

    file: str = str(CONFIG_DIR / "permissions.json")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "text"
    file: str = str(CONFIG_DIR / "logs" / "nare.log")
    max_size_mb: int = 10
    backup_count: int = 3
    audit_file: str = str(CONFIG_DIR / "logs" / "audit.log")


class Settings(BaseSettings):
    """Main settings class that loads from YAML and environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="NARE_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    nare: NareConfig = Field(default_factory=NareConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Secrets from environment
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    deepseek_api_key: str = Field(default="", alias="DEEPSEEK_API_KEY")

    @classmethod
    def from_yaml(cls, config_path: str | Path | None = None) -> "Settings":
        """Load settings from YAML file with environment variable overrides."""
        if config_path is None:
            possible_paths = [
                Path("config/settings.yaml"),
                Path("config/settings.local.yaml"),
                CONFIG_DIR / "settings.yaml",
            ]
            for path in possible_paths:
                if path.exists():
                    config_path = path
                    break

        config_data: dict[str, Any] = {}
        if config_path and Path(config_path).exists():
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}

        config_data = cls._expand_env_vars(config_data)

        env_keys = [
            ("telegram_bot_token", "TELEGRAM_BOT_TOKEN"),
            ("deepseek_api_key", "DEEPSEEK_API_KEY"),
        ]
        for field_name, env_var in env_keys:
            if field_name not in config_data:
                config_data[field_name] = os.environ.get(env_var, "")

        try:
            instance = cls(**config_data)
        except Exception as e:
            raise ConfigurationError(f"Invalid config: {e}") from e
        instance.validate()
        return instance

    def validate(self) -> None:
        """Validate critical config. Raises ConfigurationError on failure."""
        errors: list[str] = []
        if self.ai.provider not in ("", "claude", "deepseek"):
            errors.append(f"ai.provider must be 'claude', 'deepseek' or empty, got {self.ai.provider!r}")
        if self.ai.max_rounds < 1:
            errors.append("ai.max_rounds must be at least 1")
        if self.session.history_limit < 1:
            errors.append("session.history_limit must be at least 1")
        if self.session.default_language not in ("en", "ko", "sv"):
            errors.append("session.default_language must be one of en, ko, sv")
        if self.executor.timeout <= 0:
            errors.append("executor.timeout must be positive")
        if errors:
            raise ConfigurationError("Config validation failed: " + "; ".join(errors))

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand ${VAR} values in config data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            if data.startswith("${") and data.endswith("}"):
                return os.environ.get(data[2:-1], "")
            return data
        return data

    @property
    def bot_token(self) -> str:
        """Bot token from the environment, falling back to the YAML value."""
        return self.telegram_bot_token or self.telegram.bot_token

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for dir_path in (
            self.nare.data_dir,
            Path(self.logging.file).parent,
            Path(self.logging.audit_file).parent,
        ):
            Path(dir_path).expanduser().mkdir(parents=True, exist_ok=True)


_config_path: str | Path | None = None


def set_config_path(path: str | Path | None) -> None:
    """Point settings loading at an explicit YAML file (used by the CLI)."""
    global _config_path
    _config_path = path
    get_settings.cache_clear()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_yaml(_config_path)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
