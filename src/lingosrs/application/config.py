from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from lingosrs.domain.constants import (
    DEFAULT_DAILY_NEW_CAP,
    DEFAULT_DAILY_REVIEW_CAP,
    PROGRESS_SAMPLE_SIZE,
)

CONFIG_FILES = [
    Path.home() / ".config/lingosrs/config.toml",
    Path.home() / ".lingosrs.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for lingosrs.
    Supports loading from:
    1. Environment variables (LINGOSRS_*)
    2. Config file (~/.config/lingosrs/config.toml or ~/.lingosrs.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="LINGOSRS_",
        extra="ignore",
    )

    # Storage
    store_backend: Literal["memory", "sqlite"] = "sqlite"
    db_path: Path = Field(default_factory=lambda: Path.home() / ".config/lingosrs/lingosrs.db")

    # Logging
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/lingosrs/logs")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Scheduling defaults for learners without a profile
    default_daily_new_cap: int = Field(default=DEFAULT_DAILY_NEW_CAP, ge=0)
    default_daily_review_cap: int = Field(default=DEFAULT_DAILY_REVIEW_CAP, ge=0)
    progress_sample_size: int = Field(default=PROGRESS_SAMPLE_SIZE, ge=0)

    # Identity: bearer token -> learner id (static adapter)
    api_tokens: dict[str, str] = Field(default_factory=dict)

    # Server
    host: str = "127.0.0.1"
    port: int = 8787

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Earlier sources take precedence: explicit overrides, then env, then file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("db_path", "log_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/lingosrs/config.toml (if exists)
    3. Environment variables (LINGOSRS_*)
    4. cli_overrides (passed from Typer); None values are ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
