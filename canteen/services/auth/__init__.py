"""
Auth Service Factory

Returns the header-trusting mock in development and the signed-token
verifier otherwise.
"""

import logging

from canteen.core.config import Settings
from canteen.services.auth.base import BaseAuthService, Principal, Role
from canteen.services.auth.mock import MockAuthService
from canteen.services.auth.real import TokenAuthService, sign_token

logger = logging.getLogger(__name__)


def build_auth_service(settings: Settings) -> BaseAuthService:
    """Get the configured auth service."""
    if settings.is_development:
        logger.info("Auth Service: Using MockAuthService (development mode)")
        return MockAuthService()

    logger.info(f"Auth Service: Using TokenAuthService ({settings.env_mode.value} mode)")
    return TokenAuthService(secret=settings.auth_secret)


__all__ = [
    "build_auth_service",
    "BaseAuthService",
    "Principal",
    "Role",
    "MockAuthService",
    "TokenAuthService",
    "sign_token",
]
