"""Configuration management with YAML and environment variables."""
import os
from pathlib import Path
from typing import Optional, List, get_origin
import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mediabridge.core.errors import ConfigurationError
from mediabridge.core.models import SyncDirection


class PlexConfig(BaseModel):
    url: Optional[str] = None
    token: Optional[str] = None
    timeout: float = 30.0


class JellyfinConfig(BaseModel):
    url: Optional[str] = None
    api_key: Optional[str] = None
    user_id: Optional[str] = None  # None = premier utilisateur du serveur
    timeout: float = 30.0


class SyncConfig(BaseModel):
    collections: bool = True
    artwork: bool = True  # artwork des collections
    item_artwork: bool = False  # opt-in, un appel par item
    watch_state: bool = False
    watch_direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    selected_libraries: List[str] = Field(default_factory=list)  # IDs Plex, vide = toutes
    position_threshold_seconds: float = 10.0


class SchedulerConfig(BaseModel):
    enabled: bool = False
    interval_hours: int = 24
    timezone: str = "UTC"


class AppConfig(BaseModel):
    data_dir: str = "/data"
    log_level: str = "INFO"
    status_retention_minutes: int = 60


class Config(BaseSettings):
    plex: PlexConfig = Field(default_factory=PlexConfig)
    jellyfin: JellyfinConfig = Field(default_factory=JellyfinConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")

    @classmethod
    def load_from_yaml(cls, yaml_path: str) -> "Config":
        """Load configuration from YAML file, override with env vars."""
        config_path = Path(yaml_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {yaml_path}\n"
                f"Please create config/config.yaml from config.example.yaml\n"
                f"Make sure the volume is mounted: -v ./config:/config:ro"
            )

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        # Override with environment variables (PLEX__TOKEN, SYNC__WATCH_STATE, ...)
        for key, section_field in cls.model_fields.items():
            section = yaml_data.get(key) or {}
            for subkey, field in section_field.annotation.model_fields.items():
                env_value = os.getenv(f"{key.upper()}__{subkey.upper()}")
                if not env_value:
                    continue
                if get_origin(field.annotation) is list:
                    # JSON/YAML list, as pydantic-settings expects for complex fields
                    section[subkey] = yaml.safe_load(env_value)
                else:
                    section[subkey] = env_value
            if section:
                yaml_data[key] = section

        return cls(**yaml_data)

    def validate_for_sync(self) -> List[str]:
        """Liste des problèmes qui empêchent un run de démarrer (vide si OK)."""
        problems = []
        if not self.plex.url:
            problems.append("Plex server URL is not configured")
        if not self.plex.token:
            problems.append("Plex token is not configured")
        if not self.jellyfin.url:
            problems.append("Jellyfin server URL is not configured")
        if not self.jellyfin.api_key:
            problems.append("Jellyfin API key is not configured")
        return problems

    def ensure_valid_for_sync(self) -> None:
        problems = self.validate_for_sync()
        if problems:
            raise ConfigurationError("; ".join(problems))


# Global config instance (will be initialized in main.py)
config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance."""
    if config is None:
        raise RuntimeError("Config not initialized. Call init_config() first.")
    return config


def init_config(config_path: str = "/config/config.yaml") -> Config:
    """Initialize global config from YAML file."""
    global config
    config = Config.load_from_yaml(config_path)
    return config


def set_config(new_config: Config) -> Config:
    """Install an already-built config (tests, embedding)."""
    global config
    config = new_config
    return config
