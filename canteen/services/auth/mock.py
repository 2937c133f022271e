"""
Mock Auth Service Implementation

Development-only resolver that trusts identity headers:

    X-User-Id:   principal id (required)
    X-User-Role: customer | staff | admin (default: customer)

Never enabled outside ENV_MODE=development.
"""

import logging
from typing import Mapping

from canteen.core.exceptions import UnauthorizedError
from canteen.services.auth.base import BaseAuthService, Principal, Role, parse_role

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"
USER_ROLE_HEADER = "x-user-role"


class MockAuthService(BaseAuthService):

    @property
    def provider_name(self) -> str:
        return "mock"

    def authenticate(self, headers: Mapping[str, str]) -> Principal:
        principal_id = (headers.get(USER_ID_HEADER) or "").strip()
        if not principal_id:
            raise UnauthorizedError("Missing X-User-Id header")

        raw_role = headers.get(USER_ROLE_HEADER)
        role = parse_role(raw_role) if raw_role else Role.CUSTOMER
        return Principal(principal_id=principal_id, role=role)
