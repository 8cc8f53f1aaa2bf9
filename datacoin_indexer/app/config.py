"""Config file."""
from typing import Annotated, Any, Literal
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # PROJECT
    project_name: str = Field("datacoin-indexer", alias="PROJECT_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # RPC
    rpc_urls: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["https://sepolia.base.org"],
        alias="RPC_URLS",
    )
    ws_rpc_url: str | None = Field(None, alias="WS_RPC_URL")
    rpc_attempt_timeout_seconds: float = Field(10.0, alias="RPC_ATTEMPT_TIMEOUT_SECONDS", gt=0)

    # INDEXER
    event_source: Literal["poll", "subscribe"] = Field("poll", alias="EVENT_SOURCE")
    poll_interval_seconds: float = Field(60.0, alias="POLL_INTERVAL_SECONDS", ge=0)
    max_block_range: int = Field(10, alias="MAX_BLOCK_RANGE", gt=0)
    max_chunks_per_tick: int = Field(10, alias="MAX_CHUNKS_PER_TICK", gt=0)
    max_backfill_blocks: int = Field(100, alias="MAX_BACKFILL_BLOCKS", gt=0)
    confirmation_lag: int = Field(6, alias="CONFIRMATION_LAG", ge=0)
    inter_chunk_delay_seconds: float = Field(1.0, alias="INTER_CHUNK_DELAY_SECONDS", ge=0)
    subscription_refresh_seconds: float = Field(20.0, alias="SUBSCRIPTION_REFRESH_SECONDS", gt=0)
    cursor_file: str = Field("lastBlock.json", alias="CURSOR_FILE")

    # COLLABORATORS
    registry_backend: Literal["json", "sqlalchemy"] = Field("json", alias="REGISTRY_BACKEND")
    datasets_file: str = Field("datasets.json", alias="DATASETS_FILE")
    access_log_backend: Literal["json", "sqlalchemy"] = Field("json", alias="ACCESS_LOG_BACKEND")
    access_db_file: str = Field("db.json", alias="ACCESS_DB_FILE")
    download_secret: SecretStr = Field(SecretStr("secret"), alias="DOWNLOAD_SECRET")
    download_base_url: str = Field(
        "https://gateway.lighthouse.storage/ipfs",
        alias="DOWNLOAD_BASE_URL",
    )
    download_url_ttl_seconds: int = Field(3600, alias="DOWNLOAD_URL_TTL_SECONDS", gt=0)

    # DATABASE (only needed by the sqlalchemy backends)
    postgres_user: str | None = Field(None, alias="POSTGRES_USER")
    postgres_password: SecretStr | None = Field(None, alias="POSTGRES_PASSWORD")
    postgres_server: str | None = Field(None, alias="POSTGRES_SERVER")
    postgres_port: int | None = Field(None, alias="POSTGRES_PORT")
    postgres_db: str | None = Field(None, alias="POSTGRES_DB")
    database_url: str | None = Field(None, alias="DATABASE_URL")

    @field_validator("rpc_urls", mode="before")
    @classmethod
    def split_rpc_urls(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [u.strip() for u in value.split(",") if u.strip()]
        return value

    @model_validator(mode="after")
    def assemble_db_url(self) -> "Settings":
        if not self.rpc_urls:
            raise ValueError("RPC_URLS must contain at least one endpoint")

        parts = (
            self.postgres_user,
            self.postgres_password,
            self.postgres_server,
            self.postgres_port,
            self.postgres_db,
        )
        if not self.database_url and all(p is not None for p in parts):
            user = quote_plus(self.postgres_user)
            password = quote_plus(self.postgres_password.get_secret_value())
            host = self.postgres_server
            port = self.postgres_port
            db = self.postgres_db

            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings: Settings = Settings()
