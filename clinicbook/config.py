from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(Enum):
    MEMORY = "memory"
    SQL = "sql"


class StorageConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CLINICBOOK_STORAGE_", env_file=".env", extra="ignore"
    )

    backend: StorageBackend = StorageBackend.MEMORY
    url: str = "sqlite+aiosqlite:///./clinicbook.db"
    echo: bool = False
    create_schema: bool = True


class ApiConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CLINICBOOK_API_", env_file=".env", extra="ignore")

    host: str = "127.0.0.1"
    port: int = 8000
    # Set by the upstream authentication layer on every request.
    actor_id_header: str = "X-Actor-Id"
    actor_role_header: str = "X-Actor-Role"


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CLINICBOOK_", env_file=".env", extra="ignore")

    clinic_timezone: str = "America/New_York"
    log_level: str = "INFO"
    storage: StorageConfig = Field(default_factory=lambda: StorageConfig())
    api: ApiConfig = Field(default_factory=lambda: ApiConfig())
