"""Application configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./montage_core.db"

    # Montage rules
    default_max_rounds: int = 2
    roll_provider: str = "native"  # "native" | "generic"
    skill_bonus: int = 2

    # Auth / JWT
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # App
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    admin_enabled: bool = True
    admin_password: str | None = None  # sqladmin login; unset disables login

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
