from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Leadpool API"
    app_env: str = "local"
    app_debug: bool = True
    log_level: str = "INFO"
    api_port: int = 8000
    database_url: str = "sqlite+pysqlite:///./leadpool.db"
    create_tables_on_startup: bool = False
    redis_url: str = "redis://redis:6379/0"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_exporter_endpoint: str | None = None
    otel_console_exporter: bool = False
    service_version: str = "0.1.0"
    auto_transfer_enabled: bool = False
    auto_transfer_backend: str = "thread"
    auto_transfer_hour: int = 1
    auto_transfer_minute: int = 0
    auto_transfer_second: int = 0
    system_operator_id: str = "68405ea56e4eb64aa7ed3cb3"
    system_operator_name: str = "admin"
    progress_initial_contact: str = "初步接触"
    progress_normal: str = "正常推进"
    progress_public_pool: str = "进入公海"
    progress_disabled: str = "禁用"
    progress_sample_evaluation: str = "样板评估"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
