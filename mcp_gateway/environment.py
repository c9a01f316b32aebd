# mcp_gateway/environment.py
import logging
import re
from typing import List

from pydantic import BaseModel, Field

from .settings import Settings

logger = logging.getLogger(__name__)

VALID_AUTH_METHODS = {"oauth", "mcp-token"}
VALID_STORAGE_BACKENDS = {"redis", "memory"}
MIN_COOKIE_KEY_LENGTH = 32
MAX_RECOMMENDED_EXPIRY_DAYS = 730
MIN_RECOMMENDED_STATE_TTL_SECONDS = 300

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class EnvironmentConfigurationError(RuntimeError):
    """Raised at startup when the gateway configuration cannot be used."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid gateway configuration: " + "; ".join(errors))


class EnvironmentValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def validate_environment(config: Settings) -> EnvironmentValidationResult:
    """
    Check the loaded settings for missing or inconsistent values.

    Errors make the configuration unusable; warnings are logged but allow
    startup to continue.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not config.tango_api_key:
        errors.append("TANGO_API_KEY is required for upstream data API access.")

    if config.storage_backend not in VALID_STORAGE_BACKENDS:
        errors.append(
            f"STORAGE_BACKEND '{config.storage_backend}' is not supported. "
            f"Use one of: {', '.join(sorted(VALID_STORAGE_BACKENDS))}."
        )

    # Google OAuth is all-or-nothing
    oauth_values = {
        "GOOGLE_CLIENT_ID": config.google_client_id,
        "GOOGLE_CLIENT_SECRET": config.google_client_secret,
        "COOKIE_ENCRYPTION_KEY": config.cookie_encryption_key,
    }
    present = [name for name, value in oauth_values.items() if value]
    if present and len(present) != len(oauth_values):
        missing = [name for name in oauth_values if name not in present]
        errors.append(
            f"Partial OAuth configuration: {', '.join(present)} set but {', '.join(missing)} missing."
        )

    if config.cookie_encryption_key and len(config.cookie_encryption_key) < MIN_COOKIE_KEY_LENGTH:
        errors.append(
            f"COOKIE_ENCRYPTION_KEY must be at least {MIN_COOKIE_KEY_LENGTH} characters "
            f"(got {len(config.cookie_encryption_key)})."
        )

    if config.oauth_configured and not config.props_encryption_key:
        warnings.append(
            "PROPS_ENCRYPTION_KEY is not set. A key derived from COOKIE_ENCRYPTION_KEY will be used for grant props."
        )

    if not config.require_authentication:
        warnings.append("REQUIRE_AUTHENTICATION is disabled. This is not recommended for production.")

    if not config.hosted_domain:
        warnings.append("HOSTED_DOMAIN is not set. OAuth sign-in will reject every account.")

    if config.mcp_token_expiry_days is not None:
        if config.mcp_token_expiry_days < 1:
            errors.append("MCP_TOKEN_EXPIRY_DAYS must be at least 1 when set.")
        elif config.mcp_token_expiry_days > MAX_RECOMMENDED_EXPIRY_DAYS:
            warnings.append(
                f"MCP_TOKEN_EXPIRY_DAYS is {config.mcp_token_expiry_days}, "
                f"above the recommended maximum of {MAX_RECOMMENDED_EXPIRY_DAYS}."
            )

    for email in config.admin_emails_list:
        if not _EMAIL_PATTERN.match(email):
            errors.append(f"ADMIN_EMAILS contains an invalid address: '{email}'.")

    methods = config.allowed_auth_methods_list
    if not methods:
        errors.append("ALLOWED_AUTH_METHODS must list at least one method.")
    for method in methods:
        if method not in VALID_AUTH_METHODS:
            errors.append(
                f"ALLOWED_AUTH_METHODS contains unknown method '{method}'. "
                f"Valid methods: {', '.join(sorted(VALID_AUTH_METHODS))}."
            )

    if config.oauth_state_ttl_seconds < 1:
        errors.append("OAUTH_TOKEN_TTL_SECONDS must be at least 1.")
    elif config.oauth_state_ttl_seconds < MIN_RECOMMENDED_STATE_TTL_SECONDS:
        warnings.append(
            f"OAUTH_TOKEN_TTL_SECONDS is {config.oauth_state_ttl_seconds}s. "
            "Users may not finish signing in before the state expires."
        )

    if config.session_cookie_max_age < 1:
        errors.append("SESSION_COOKIE_MAX_AGE must be at least 1.")

    return EnvironmentValidationResult(valid=not errors, errors=errors, warnings=warnings)


def initialize_environment(config: Settings) -> EnvironmentValidationResult:
    """Validate settings at startup, logging the outcome and failing fast on errors."""
    result = validate_environment(config)
    for warning in result.warnings:
        logger.warning(f"Environment: {warning}")
    if not result.valid:
        for error in result.errors:
            logger.error(f"Environment: {error}")
        raise EnvironmentConfigurationError(result.errors)
    logger.info(
        f"Environment validated. Storage: {config.storage_backend}, "
        f"OAuth configured: {config.oauth_configured}, "
        f"Auth methods: {config.allowed_auth_methods_list}"
    )
    return result
