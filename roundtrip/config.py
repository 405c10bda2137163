"""Configuration management for roundtrip."""

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.roundtrip/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "roundtrip.yaml"


class APIConfig(BaseModel):
    """Remote endpoint configuration."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    organization: str = ""
    timeout: float = 120.0

    def resolved_api_key(self) -> str:
        """Return configured key, falling back to OPENAI_API_KEY."""
        return (self.api_key or "").strip() or str(os.environ.get("OPENAI_API_KEY", "")).strip()


class SessionConfig(BaseModel):
    """Session defaults."""

    model: str = "gpt-4o"
    store: bool = False
    stream: bool = True
    auto_dispatch: bool = True
    parallel_dispatch: bool = True
    max_rounds: int = 16


class ShellToolConfig(BaseModel):
    """Local shell handler configuration."""

    timeout: int = 30
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]
    max_output_chars: int = 10000


class ImageToolConfig(BaseModel):
    """Image generation sink configuration."""

    output_dir: str = ""


class ToolsConfig(BaseModel):
    """Tools configuration."""

    timeout_seconds: float = 30.0
    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)
    images: ImageToolConfig = Field(default_factory=ImageToolConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["console", "json"] = "console"


class Config(BaseSettings):
    """Main configuration for roundtrip."""

    api: APIConfig = Field(default_factory=APIConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="ROUNDTRIP_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration; environment variables fill whatever YAML leaves unset."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
