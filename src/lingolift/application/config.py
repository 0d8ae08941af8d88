from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from lingolift.domain.constants import DEFAULT_SERVER_URL


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/lingolift/config.toml",
        Path.home() / ".lingolift.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for lingolift.
    Supports loading from:
    1. Environment variables (LINGOLIFT_*)
    2. Config file (~/.config/lingolift/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="LINGOLIFT_",
        extra="ignore",
    )

    # Sync server
    server_url: str = DEFAULT_SERVER_URL
    api_key: str | None = None
    request_timeout: float | None = None  # None: no timeout on the exchange

    # Sync variant
    multi_user: bool = False
    content_authority: Literal["server", "local"] = "server"

    # Paths
    db_path: Path = Field(default_factory=lambda: Path.home() / ".config/lingolift/lingolift.db")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/lingolift/logs")

    # Reference server
    server_host: str = "127.0.0.1"
    server_port: int = 8080
    server_db_path: Path = Field(
        default_factory=lambda: Path.home() / ".config/lingolift/server.db"
    )

    verbose: int = 1

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

        # First existing file wins; init (CLI) beats env beats file
        toml_file = next((f for f in config_files() if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", "log_dir", "server_db_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/lingolift/config.toml (if exists)
    3. Environment variables (LINGOLIFT_*)
    4. cli_overrides (passed from Typer; None values are dropped)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
