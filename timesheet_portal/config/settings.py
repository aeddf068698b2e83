"""Application configuration settings."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


@dataclass
class PaginationSettings:
    """Pagination configuration."""

    default_page_size: int = 20
    max_page_size: int = 100
    min_page_size: int = 1


@dataclass
class CsvImportSettings:
    """CSV import pipeline configuration."""

    # Upload limits
    max_file_size_mb: int = 10
    allowed_extensions: tuple = (".csv",)

    # Number of valid mapped rows echoed back by the validate endpoint
    preview_rows: int = 5

    # Business id of the employee recorded as approver on imported
    # APPROVED timesheets
    default_approver_employee_id: str = "PSEC-000"

    # Initial password for employees created through import (stored hashed)
    default_import_password: str = "123456"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass
class Settings:
    """Main application settings."""

    # Application info
    app_name: str = "Timesheet Portal API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./timesheet_portal.db"
    database_echo: bool = False
    database_auto_create: bool = True

    # Pagination
    pagination: PaginationSettings = field(default_factory=PaginationSettings)

    # CSV import
    csv_import: CsvImportSettings = field(default_factory=CsvImportSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            app_name=os.getenv("APP_NAME", "Timesheet Portal API"),
            app_version=os.getenv("APP_VERSION", "1.0.0"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            database_url=os.getenv("DATABASE_URL", "sqlite:///./timesheet_portal.db"),
            database_echo=os.getenv("DB_ECHO", "false").lower() == "true",
            database_auto_create=os.getenv("DB_AUTO_CREATE", "true").lower() == "true",
            pagination=PaginationSettings(
                default_page_size=int(os.getenv("PAGINATION_DEFAULT_SIZE", "20")),
                max_page_size=int(os.getenv("PAGINATION_MAX_SIZE", "100")),
            ),
            csv_import=CsvImportSettings(
                max_file_size_mb=int(os.getenv("CSV_MAX_FILE_SIZE_MB", "10")),
                preview_rows=int(os.getenv("CSV_PREVIEW_ROWS", "5")),
                default_approver_employee_id=os.getenv(
                    "DEFAULT_APPROVER_EMPLOYEE_ID", "PSEC-000"
                ),
                default_import_password=os.getenv("DEFAULT_IMPORT_PASSWORD", "123456"),
            ),
        )


# Singleton settings instance
_settings: Optional[Settings] = None


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
    get_settings.cache_clear()
