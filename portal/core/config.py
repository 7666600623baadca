"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # PostgreSQL (read cache served by the API)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "portal_user"
    postgres_password: str = "password"
    postgres_db: str = "student_portal"
    postgres_pool_size: int = 5
    postgres_max_overflow: int = 10

    # Oracle (Apogee source system)
    oracle_user: str = ""
    oracle_password: str = ""
    oracle_host: str = "localhost"
    oracle_port: int = 1521
    oracle_sid: str = "APOGEE"
    # Set to use thick mode (required by older Oracle servers)
    oracle_client_lib_dir: Optional[str] = None

    # Sync scope
    component_code: str = "FJP"
    sync_years: List[int] = [2023, 2024]
    laureat_years: List[int] = [2024, 2023, 2022, 2021]
    current_academic_year: int = 2025

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    student_token_expire_minutes: int = 1440
    admin_token_expire_minutes: int = 720
    admin_fallback_expire_minutes: int = 480

    # Fallback admin account, used when no matching row exists in `admins`
    admin_username: str = "admin"
    admin_password: str = "admin123"

    # Document verification tokens
    document_secret: str = "change-this-document-secret"

    # App
    debug: bool = True
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    @property
    def postgres_url(self) -> str:
        """Construct PostgreSQL connection URL"""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def oracle_dsn(self) -> str:
        """Easy Connect string: host:port/sid"""
        return f"{self.oracle_host}:{self.oracle_port}/{self.oracle_sid}"

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
