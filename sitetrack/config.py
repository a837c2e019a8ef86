# SiteTrack - Configuration
# Application settings loaded from environment variables

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Create a .env file in the project root for local development:

        # .env
        SITETRACK_DB_SERVER=localhost
        SITETRACK_DB_NAME=sitetrack
        SITETRACK_DB_USER=sitetrack_app
        SITETRACK_DB_PASSWORD=your_password_here
        SITETRACK_MAPS_API_KEY=your-maps-key

    Set SITETRACK_DB_URL to bypass the SQL Server URL builder entirely
    (e.g. "sqlite:///sitetrack.db" or a PostgreSQL URL).

    The client-side settings (server_origin, token_store_path, ...) are
    read by the sitetrack.client package and scripts/live_feed.py.
    """

    model_config = SettingsConfigDict(
        env_prefix="SITETRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "SiteTrack"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:5000"]

    # Database - SQL Server connection
    db_server: str = "localhost"
    db_port: int = 1433
    db_name: str = "sitetrack"
    db_user: str = "sitetrack_app"
    db_password: str = "sitetrack_password"

    # Full SQLAlchemy URL; overrides the SQL Server parts above when set
    db_url: Optional[str] = None

    # Optional: Schema for all tables (e.g., "tracking")
    # If not set, the database default schema is used
    db_schema: Optional[str] = None

    # Optional: Use Windows Authentication instead of SQL auth
    db_trusted_connection: bool = False

    # Connection pool settings
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800  # Recycle connections after 30 min

    # Session settings
    session_expire_minutes: int = 1440  # 24 hours
    bcrypt_rounds: int = 12

    # Tracking
    checkin_accuracy_buffer: int = 50  # meters added to the radius for check-in/out
    notification_stack_size: int = 5  # recent notifications replayed per admin
    maps_api_key: str = ""

    # Client
    server_origin: str = "http://localhost:8000"
    token_store_path: str = ".sitetrack/storage.json"
    token_poll_interval: float = 1.0
    token_poll_timeout: float = 30.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    map_refresh_interval: float = 10.0
    notification_limit: Optional[int] = 50

    @property
    def database_url(self) -> str:
        """
        Build the SQLAlchemy connection URL.

        Uses SITETRACK_DB_URL verbatim when provided, otherwise a
        SQL Server URL for pyodbc with ODBC Driver 17.
        """
        if self.db_url:
            return self.db_url

        if self.db_trusted_connection:
            # Windows Authentication
            connection_string = (
                f"DRIVER={{ODBC Driver 17 for SQL Server}};"
                f"SERVER={self.db_server},{self.db_port};"
                f"DATABASE={self.db_name};"
                f"Trusted_Connection=yes;"
            )
        else:
            # SQL Server Authentication
            connection_string = (
                f"DRIVER={{ODBC Driver 17 for SQL Server}};"
                f"SERVER={self.db_server},{self.db_port};"
                f"DATABASE={self.db_name};"
                f"UID={self.db_user};"
                f"PWD={self.db_password};"
            )

        from urllib.parse import quote_plus
        return f"mssql+pyodbc:///?odbc_connect={quote_plus(connection_string)}"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once.
    """
    return Settings()
