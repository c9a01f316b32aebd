# mcp_gateway/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import logging
from pathlib import Path

# Configure logging for settings module
logger = logging.getLogger(__name__)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s SETTINGS.PY - [%(levelname)s] - %(message)s'
    )

# This settings.py file is at <project>/mcp_gateway/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

logger.info(f"SETTINGS.PY: Determined PROJECT_ROOT as: {PROJECT_ROOT}")

if DOTENV_PATH.exists():
    logger.info(f"SETTINGS.PY: .env file FOUND at explicit path: {DOTENV_PATH}")
else:
    logger.warning(
        f"SETTINGS.PY: .env file NOT FOUND at explicit path: {DOTENV_PATH}. "
        "Will rely on OS env vars or defaults."
    )


class Settings(BaseSettings):
    """Gateway settings with environment variable support."""

    app_name: str = "MCP Gateway"
    app_version: str = "1.0.0"
    debug_mode: bool = False
    log_level: str = "INFO"
    public_base_url: Optional[str] = Field(
        default=None,
        description="Externally visible base URL. Derived from the request when unset."
    )

    # Key-value store backing tokens, OAuth state and grants ("redis" or "memory")
    storage_backend: str = "redis"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_ssl: bool = False

    # Upstream identity provider (Google)
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    hosted_domain: Optional[str] = Field(
        default="agile6.com",
        description="Email domain allowed to authenticate via OAuth."
    )

    # Cookie signing and grant encryption
    cookie_encryption_key: Optional[str] = Field(
        default=None,
        description="Secret used to sign the state-binding, CSRF and approval cookies. At least 32 characters."
    )
    props_encryption_key: Optional[str] = Field(
        default=None,
        description="Fernet key used to encrypt identity props stored with OAuth grants."
    )

    # Authentication policy
    require_authentication: bool = True
    allowed_auth_methods: str = "oauth,mcp-token"
    oauth_state_ttl_seconds: int = Field(default=600, validation_alias="OAUTH_TOKEN_TTL_SECONDS")
    session_cookie_max_age: int = 2592000
    access_token_ttl_seconds: int = 3600
    mcp_token_expiry_days: Optional[int] = Field(
        default=None,
        description="Lifetime of newly issued MCP tokens in days. Unset means tokens never expire."
    )
    enable_auth_logging: bool = True

    # Admin access
    admin_api_key: Optional[str] = Field(
        default=None,
        description="API Key for accessing admin routes."
    )
    admin_emails: Optional[str] = Field(
        default=None,
        description="Comma-separated list of admin email addresses."
    )

    # Upstream data API
    tango_api_key: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8',
        populate_by_name=True
    )

    @property
    def allowed_auth_methods_list(self) -> List[str]:
        return [m.strip() for m in self.allowed_auth_methods.split(",") if m.strip()]

    @property
    def admin_emails_list(self) -> List[str]:
        if not self.admin_emails:
            return []
        return [e.strip().lower() for e in self.admin_emails.split(",") if e.strip()]

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.cookie_encryption_key)


# Initialize settings instance
settings = Settings()

# Log configuration values for debugging (sensitive values are masked)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.debug_mode: "
    f"{settings.debug_mode} (Type: {type(settings.debug_mode)})"
)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.storage_backend: "
    f"'{settings.storage_backend}' (Type: {type(settings.storage_backend)})"
)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.redis_host: "
    f"'{settings.redis_host}' (Type: {type(settings.redis_host)})"
)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.hosted_domain: "
    f"'{settings.hosted_domain}' (Type: {type(settings.hosted_domain)})"
)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.google_client_secret: "
    f"{'********' if settings.google_client_secret else 'None'}"
)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.cookie_encryption_key: "
    f"{'********' if settings.cookie_encryption_key else 'None'}"
)
logger.info(
    f"SETTINGS.PY: Post-Settings() settings.admin_api_key: "
    f"{'********' if settings.admin_api_key else 'None'} (Type: {type(settings.admin_api_key)})"
)
