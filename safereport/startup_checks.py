"""Startup validation: catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings
from safereport.store.selector import MODES

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "safereport-dev-secret-change-in-prod"


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = settings.DATABASE_URL and "sqlite" not in settings.DATABASE_URL

    # Critical: JWT secret must be changed in production
    if is_prod and settings.JWT_SECRET == DEFAULT_JWT_SECRET:
        logger.critical("JWT_SECRET is still the default! Set a real secret for production.")
        sys.exit(1)

    if settings.STORE_BACKEND not in MODES:
        logger.critical("STORE_BACKEND=%r is not one of %s", settings.STORE_BACKEND, ", ".join(MODES))
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to *, restrict in production")

    if settings.STORE_BACKEND == "memory":
        warnings.append("STORE_BACKEND=memory: reports and chats are lost on restart")

    if settings.STORE_PROBE_TIMEOUT_SECONDS <= 0:
        warnings.append("STORE_PROBE_TIMEOUT_SECONDS must be positive; every probe will time out")

    for w in warnings:
        logger.warning("%s", w)

    if not warnings:
        logger.info("All startup checks passed")

    return warnings
