"""Startup configuration checks.

Run at application startup. Production and staging deployments must meet the
browser-facing security requirements below; development is not checked.
"""

import logging
from typing import List
from urllib.parse import urlparse

from agent_relay.config import Settings
from agent_relay.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def validate_production_settings(settings: Settings) -> List[str]:
    """Validate production configuration requirements.

    Returns a list of error messages (empty if valid) so that all violations
    are reported at once.
    """
    errors: List[str] = []

    if not settings.cors_origins_list:
        errors.append("CORS_ORIGINS must list the frontend origin in production")

    if "*" in settings.cors_origins:
        errors.append("CORS_ORIGINS must not contain wildcard '*' in production")

    for origin in settings.cors_origins_list:
        if origin.startswith("http://"):
            errors.append(
                f"CORS_ORIGINS must be https-only in production; "
                f"found insecure origin: '{origin}'"
            )

    if settings.debug:
        errors.append("DEBUG must be false in production")

    if settings.authority and urlparse(settings.authority).scheme != "https":
        errors.append("AUTHORITY must be an https URL")

    if settings.direct_connect_url and urlparse(settings.direct_connect_url).scheme != "https":
        errors.append("DIRECT_CONNECT_URL must be an https URL")

    return errors


def run_startup_validations(settings: Settings) -> None:
    """Run all startup validations based on environment.

    Raises:
        ConfigurationError: If a production/staging requirement is violated.
    """
    if not settings.is_prod_like:
        return

    errors = validate_production_settings(settings)
    if errors:
        error_msg = "\n".join(f"  - {e}" for e in errors)
        logger.error(f"Production configuration validation failed:\n{error_msg}")
        raise ConfigurationError(f"Production configuration errors:\n{error_msg}")

    logger.info("Production configuration validation passed")
