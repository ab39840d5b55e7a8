"""Configuration management for Observ."""

import os
from dataclasses import dataclass, field
from typing import List
from pathlib import Path

@dataclass
class OpenAIConfig:
    """Configuration for the OpenAI client used by prompt agents.

    Attributes:
        api_key: OpenAI API key.
        base_url: Optional API base URL (for proxies or compatible servers).
        default_model: Model used when a prompt config does not name one.
        max_tokens: Default maximum tokens for responses.
        temperature: Default sampling temperature.
        cost_per_1k_tokens: Flat price used to estimate trace cost.
    """
    api_key: str = ""
    base_url: str = ""
    default_model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.1
    cost_per_1k_tokens: float = 0.0

    @classmethod
    def from_env(cls) -> "OpenAIConfig":
        """Create config from environment variables."""
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("OPENAI_BASE_URL", ""),
            default_model=os.getenv("OBSERV_DEFAULT_MODEL", "gpt-4o-mini"),
            max_tokens=int(os.getenv("OBSERV_MAX_TOKENS", "1000")),
            temperature=float(os.getenv("OBSERV_TEMPERATURE", "0.1")),
            cost_per_1k_tokens=float(os.getenv("OBSERV_COST_PER_1K_TOKENS", "0.0")),
        )

    def validate(self) -> List[str]:
        """Validate the configuration.

        Returns:
            List of validation error messages, empty if valid.
        """
        errors = []
        if not self.api_key:
            errors.append("OpenAI API key is required")
        if not self.default_model:
            errors.append("Default model is required")
        if self.cost_per_1k_tokens < 0:
            errors.append("cost_per_1k_tokens must not be negative")
        return errors

@dataclass
class PromptSettings:
    """Settings for prompt management.

    Attributes:
        cache_ttl: Seconds a fetched prompt stays cached. 0 disables caching.
        cache_namespace: Prefix for prompt cache keys.
        default_state: State fetched when neither state nor version is given.
        config_schema_strict: Reject prompt config keys not in the schema.
        cache_monitoring_enabled: Track cache hits and misses per prompt.
        critical_prompts: Prompt names warmed by default.
    """
    cache_ttl: int = 300
    cache_namespace: str = "observ:prompt"
    default_state: str = "production"
    config_schema_strict: bool = False
    cache_monitoring_enabled: bool = True
    critical_prompts: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "PromptSettings":
        """Create settings from environment variables."""
        critical_str = os.getenv("OBSERV_CRITICAL_PROMPTS", "")
        critical = [s.strip() for s in critical_str.split(",") if s.strip()]

        return cls(
            cache_ttl=int(os.getenv("OBSERV_PROMPT_CACHE_TTL", "300")),
            cache_namespace=os.getenv("OBSERV_PROMPT_CACHE_NAMESPACE", "observ:prompt"),
            default_state=os.getenv("OBSERV_PROMPT_DEFAULT_STATE", "production"),
            config_schema_strict=os.getenv("OBSERV_PROMPT_CONFIG_STRICT", "false").lower() == "true",
            cache_monitoring_enabled=os.getenv("OBSERV_PROMPT_CACHE_MONITORING", "true").lower() == "true",
            critical_prompts=critical,
        )

@dataclass
class StorageConfig:
    """Configuration for storage paths.

    Attributes:
        data_dir: Directory for database files.
        logs_dir: Directory for log files.
        db_filename: Name of the SQLite database file.
    """
    data_dir: str = "data"
    logs_dir: str = "logs"
    db_filename: str = "observ.db"

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create config from environment variables."""
        return cls(
            data_dir=os.getenv("OBSERV_DATA_DIR", "data"),
            logs_dir=os.getenv("OBSERV_LOGS_DIR", "logs"),
            db_filename=os.getenv("OBSERV_DB_FILENAME", "observ.db"),
        )

    @property
    def db_path(self) -> str:
        """Get the full path to the database file."""
        return str(Path(self.data_dir) / self.db_filename)

    def ensure_directories(self) -> None:
        """Create storage directories if they don't exist."""
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)
        Path(self.logs_dir).mkdir(parents=True, exist_ok=True)

@dataclass
class Config:
    """Main configuration container.

    Attributes:
        openai: OpenAI client configuration.
        prompts: Prompt management settings.
        storage: Storage configuration.
        log_to_console: Whether to log to console.
        log_level: Logging level.
    """
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    prompts: PromptSettings = field(default_factory=PromptSettings)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_to_console: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            openai=OpenAIConfig.from_env(),
            prompts=PromptSettings.from_env(),
            storage=StorageConfig.from_env(),
            log_to_console=os.getenv("OBSERV_LOG_TO_CONSOLE", "true").lower() == "true",
            log_level=os.getenv("OBSERV_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> List[str]:
        """Validate settings that do not depend on external credentials.

        Returns:
            List of validation error messages, empty if valid.
        """
        errors = []

        if self.prompts.cache_ttl < 0:
            errors.append("prompt cache_ttl must not be negative")

        valid_states = ["draft", "production", "archived"]
        if self.prompts.default_state not in valid_states:
            errors.append(f"prompt default_state must be one of: {valid_states}")

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            errors.append(f"log_level must be one of: {valid_levels}")

        return errors

    def setup(self) -> None:
        """Perform initial setup (create directories, etc.)."""
        self.storage.ensure_directories()


def load_config() -> Config:
    """Load configuration from environment variables.

    Returns:
        Configured Config instance.
    """
    config = Config.from_env()
    config.setup()
    return config


def get_sample_env_file() -> str:
    """Get a sample .env file content for reference.

    Returns:
        Sample .env file content as a string.
    """
    return """# OpenAI Configuration
OPENAI_API_KEY=your-api-key-here
OPENAI_BASE_URL=
OBSERV_DEFAULT_MODEL=gpt-4o-mini
OBSERV_MAX_TOKENS=1000
OBSERV_TEMPERATURE=0.1
OBSERV_COST_PER_1K_TOKENS=0.0

# Prompt Management
OBSERV_PROMPT_CACHE_TTL=300
OBSERV_PROMPT_CACHE_NAMESPACE=observ:prompt
OBSERV_PROMPT_DEFAULT_STATE=production
OBSERV_PROMPT_CONFIG_STRICT=false
OBSERV_PROMPT_CACHE_MONITORING=true
OBSERV_CRITICAL_PROMPTS=

# Storage Configuration
OBSERV_DATA_DIR=data
OBSERV_LOGS_DIR=logs
OBSERV_DB_FILENAME=observ.db

# Logging
OBSERV_LOG_TO_CONSOLE=true
OBSERV_LOG_LEVEL=INFO
"""
