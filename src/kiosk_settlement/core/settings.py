"""Application settings and configuration.

This module defines all configuration options for the kiosk settlement service.
Settings are loaded from environment variables with sensible defaults.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Kiosk Settlement", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./kiosk.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Kiosk identity
    kiosk_address: str = Field(
        default="0x0000000000000000000000000000000000000000",
        alias="KIOSK_ADDRESS",
    )
    fee_recipient_address: str | None = Field(default=None, alias="FEE_RECIPIENT_ADDRESS")
    pin_pepper: str = Field(default="kiosk-local-pepper", alias="PIN_PEPPER")

    # Accounting (ClearNode gateway) settings
    clearnode_base_url: str | None = Field(default=None, alias="CLEARNODE_BASE_URL")
    clearnode_api_key: str | None = Field(default=None, alias="CLEARNODE_API_KEY")
    accounting_asset: str = Field(default="ytest.usd", alias="ACCOUNTING_ASSET")
    accounting_token_address: str = Field(
        default="0xDB9F293e3898c9E5536A3be1b0C56c89d2b32DEb",
        alias="ACCOUNTING_TOKEN_ADDRESS",
    )
    accounting_chain_id: int = Field(default=84532, alias="ACCOUNTING_CHAIN_ID")

    # Bridge gateway settings
    bridge_base_url: str | None = Field(default=None, alias="BRIDGE_BASE_URL")
    bridge_shared_secret: str | None = Field(default=None, alias="BRIDGE_SHARED_SECRET")
    bridge_audience: str = Field(default="kiosk-bridge", alias="BRIDGE_JWT_AUD")
    bridge_token_ttl_seconds: int = Field(default=300, alias="BRIDGE_TOKEN_TTL_SECONDS")
    bridge_source_chain: str = Field(default="Arc_Testnet", alias="BRIDGE_SOURCE_CHAIN")
    bridge_http_timeout_seconds: float = Field(
        default=60.0,
        alias="BRIDGE_HTTP_TIMEOUT_SECONDS",
    )

    # Destination resolver (name -> address lookup)
    resolver_base_url: str | None = Field(default=None, alias="RESOLVER_BASE_URL")

    # Settlement behaviour
    external_call_timeout_seconds: float = Field(
        default=30.0,
        alias="EXTERNAL_CALL_TIMEOUT_SECONDS",
    )
    sweep_attempt_cap: int = Field(default=3, alias="SWEEP_ATTEMPT_CAP")
    manual_attempt_cap: int | None = Field(default=None, alias="MANUAL_ATTEMPT_CAP")
    claim_lease_seconds: int = Field(default=600, alias="CLAIM_LEASE_SECONDS")
    pin_max_failures: int = Field(default=5, alias="PIN_MAX_FAILURES")
    pin_lockout_seconds: int = Field(default=900, alias="PIN_LOCKOUT_SECONDS")

    # Background retry sweep
    retry_sweep_enabled: bool = Field(default=False, alias="RETRY_SWEEP_ENABLED")
    retry_sweep_interval_seconds: float = Field(
        default=300.0,
        alias="RETRY_SWEEP_INTERVAL_SECONDS",
    )

    # CORS configuration for kiosk frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("kiosk_address", "accounting_token_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        if not _ADDRESS_RE.match(value):
            raise ValueError("Invalid address format")
        return value

    @field_validator("fee_recipient_address")
    @classmethod
    def _validate_optional_address(cls, value: str | None) -> str | None:
        if not value:
            return None
        if not _ADDRESS_RE.match(value):
            raise ValueError("Invalid address format")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
