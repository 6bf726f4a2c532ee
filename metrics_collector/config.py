from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

SQLITE_PREFIX = "sqlite+aiosqlite:///"


def _split_address(address: str):
    host, _, port = address.rpartition(":")
    return host or "0.0.0.0", int(port)


class ServerSettings(BaseSettings):
    address: str = Field("localhost:8080", description="host:port the HTTP server listens on.")
    store_interval: int = Field(
        300, ge=1, description="Seconds between snapshots of the in-memory store to disk."
    )
    file_storage_path: str = Field(
        "/tmp/metrics-db.json", description="Backup file for the in-memory store."
    )
    restore: bool = Field(True, description="Load the backup file before serving.")
    database_dsn: str = Field("", description="SQLAlchemy or PostgreSQL DSN; empty keeps metrics in memory.")
    key: str = Field("", description="Shared HMAC-SHA256 key; empty disables signatures.")
    shutdown_timeout: int = Field(10, ge=0, description="Seconds to drain requests on shutdown.")
    sqlalchemy_echo: bool = Field(False, description="Enable SQL echo logging.")
    log_level: str = "INFO"
    log_format: str = "plain"

    @field_validator("address")
    def ensure_port(cls, value: str) -> str:
        _split_address(value)
        return value

    @field_validator("database_dsn")
    def ensure_sqlite_directory(cls, value: str) -> str:
        if value.startswith(SQLITE_PREFIX):
            path = Path(value.replace(SQLITE_PREFIX, "", 1))
            path.parent.mkdir(parents=True, exist_ok=True)
        return value

    @property
    def host(self) -> str:
        return _split_address(self.address)[0]

    @property
    def port(self) -> int:
        return _split_address(self.address)[1]

    class Config:
        env_file = ".env"
        extra = "ignore"


class AgentSettings(BaseSettings):
    address: str = Field("localhost:8080", description="Server address, with or without scheme.")
    poll_interval: int = Field(2, ge=1, description="Seconds between runtime samples.")
    report_interval: int = Field(10, ge=1, description="Seconds between batch reports.")
    key: str = Field("", description="Shared HMAC-SHA256 key; empty disables signatures.")
    request_timeout: float = Field(15.0, gt=0, description="HTTP timeout per delivery attempt.")
    log_level: str = "INFO"
    log_format: str = "plain"

    @property
    def server_url(self) -> str:
        if "://" in self.address:
            return self.address.rstrip("/")
        return f"http://{self.address}".rstrip("/")

    class Config:
        env_file = ".env"
        extra = "ignore"
