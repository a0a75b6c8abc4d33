"""
Centralized configuration using Pydantic Settings.

All environment variables are loaded and validated here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # IMAP (vendor replies)
    imap_host: str = "imap.gmail.com"
    imap_port: int = 993
    imap_user: str = ""
    imap_password: str = ""
    imap_folder: str = "INBOX"

    # SMTP (outbound RFPs)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_from: str = ""  # Falls back to smtp_user

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "rfp_management"
    db_user: str = "rfp"
    db_password: str = ""

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # Processing
    processing_batch_size: int = 50
    max_retries: int = 3
    ai_body_char_limit: int = 8000

    # Listener (polls the inbox instead of holding an IDLE connection)
    listener_enabled: bool = True
    listener_interval_seconds: int = 60

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True  # False for colored dev output

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL."""
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def imap_configured(self) -> bool:
        """True when IMAP credentials are present."""
        return bool(self.imap_user and self.imap_password)

    @property
    def sender_address(self) -> str:
        """Address RFP emails are sent from."""
        return self.smtp_from or self.smtp_user


# Global settings instance
settings = Settings()
