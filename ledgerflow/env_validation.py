import os
import logging
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

# Mandatory environment variables for production
REQUIRED_PRODUCTION_ENV_VARS = [
    "SECRET_KEY",
    "DATABASE_URL",
]

# Engine tuning knobs that must parse as numbers when present
NUMERIC_ENV_VARS = {
    "INVOICING_STORE_RETRY_ATTEMPTS": int,
    "INVOICING_STORE_RETRY_BACKOFF": float,
    "INVOICING_QUOTE_VALIDITY_DAYS": int,
}


def validate_env():
    """
    Validate critical environment variables for Django settings.
    Runs once per process; subsequent calls are idempotent.
    """
    is_production = os.getenv("PRODUCTION", "false").lower() == "true"

    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        if is_production:
            raise ImproperlyConfigured("CRITICAL: SECRET_KEY is required in production.")
        else:
            logger.warning("SECRET_KEY not set, using insecure default for development.")

    for var, cast in NUMERIC_ENV_VARS.items():
        value = os.getenv(var)
        if value is None:
            continue
        try:
            parsed = cast(value)
        except ValueError:
            raise ImproperlyConfigured(f"{var} must be a number, got {value!r}")
        if parsed < 0:
            raise ImproperlyConfigured(f"{var} cannot be negative")

    if is_production:
        missing = [var for var in REQUIRED_PRODUCTION_ENV_VARS if not os.getenv(var)]
        if missing:
            error_msg = f"CRITICAL: Missing required environment variables in production: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ImproperlyConfigured(error_msg)

        # Enforce secure SECRET_KEY
        if secret_key and (secret_key.startswith("django-insecure") or len(secret_key) < 50):
            error_msg = "CRITICAL: SECRET_KEY must be a long, secure string in production"
            logger.critical(error_msg)
            raise ImproperlyConfigured(error_msg)

    logger.info("Environment validation passed successfully")
