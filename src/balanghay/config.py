"""Configuration management for the Balanghay library backend.

Settings come from three places, in increasing priority:
1. Defaults declared on the fields below
2. A ``.env`` file in the working directory
3. ``BALANGHAY_*`` environment variables

The same class is used by the server entry point, the migration step and the
circulation code (loan period, receipt QR rendering).
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LibraryConfig(BaseSettings):
    """Runtime configuration for the library backend."""

    model_config = SettingsConfigDict(
        # Use BALANGHAY_ prefix for all env vars
        env_prefix="BALANGHAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application Metadata ===

    app_name: str = Field(
        default="balanghay-library",
        description="Name announced to clients during the handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    app_version: str = Field(
        default="0.1.0",
        description="Application version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/balanghay.db"),
        description="SQLite database file path",
    )

    # === Transport Configuration ===

    transport: str = Field(
        default="stdio",
        description="Message transport between the UI shell and this process",
        pattern=r"^(stdio)$",
    )

    # === Circulation ===

    default_loan_days: int = Field(
        default=14,
        description="Loan period used when a borrow request has no due date",
        ge=1,
        le=365,
    )

    # === Receipts ===

    qr_box_size: int = Field(
        default=8,
        description="Pixel size of one QR module on receipt codes",
        ge=1,
        le=40,
    )

    qr_border: int = Field(
        default=4,
        description="Quiet-zone width (in modules) around receipt codes",
        ge=0,
        le=20,
    )

    # === Seeded Administrator ===

    admin_username: str = Field(default="admin", min_length=1)

    admin_password: str = Field(
        default="admin",
        min_length=1,
        # Never echo the seed password
        repr=False,
    )

    admin_email: str = Field(default="admin@balanghay.com")

    admin_pin: str = Field(default="123456", pattern=r"^\d{4,6}$")

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @property
    def is_development(self) -> bool:
        """True when verbose diagnostics are wanted."""
        return self.debug or self.log_level == "DEBUG"

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LibraryConfig | None = None


def get_config() -> LibraryConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LibraryConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
