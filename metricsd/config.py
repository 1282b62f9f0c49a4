"""Server configuration and default HTTP timeouts."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_IDLE_TIMEOUT = 60.0
DEFAULT_HEADER_TIMEOUT = 5.0


@dataclass
class DatabaseConfig:
    """Database connection settings."""

    dsn: str = ""
    migrations_path: str = ""


@dataclass
class Config:
    """Settings of the metrics server; ``store_interval`` is in seconds."""

    addr: str = ""
    store_interval: int = 0
    file_storage_path: str = ""
    restore: bool = False
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    private_key: str = ""

    def is_store_enabled(self) -> bool:
        """Whether metrics are saved to a file."""
        return self.file_storage_path != ""

    def is_restore_enabled(self) -> bool:
        """Whether saved metrics are loaded at start-up."""
        return self.restore

    def is_sync_store(self) -> bool:
        """Whether metrics are saved right after every change."""
        return self.store_interval == 0

    def is_database_enabled(self) -> bool:
        """Whether database connection settings were given."""
        return self.database.dsn != ""

    def is_request_signing_enabled(self) -> bool:
        """Whether request signatures are checked."""
        return self.private_key != ""