"""
Token Auth Service Implementation

Verifies bearer tokens of the form

    <principal_id>.<role>.<hex hmac-sha256 of "<principal_id>.<role>">

signed with AUTH_SECRET. Token issuance belongs to the identity service;
this side only checks signatures and extracts the role.
"""

import hashlib
import hmac
import logging
from typing import Mapping

from canteen.core.exceptions import UnauthorizedError
from canteen.services.auth.base import BaseAuthService, Principal, Role, parse_role

logger = logging.getLogger(__name__)


def sign_token(secret: str, principal_id: str, role: Role) -> str:
    """Build a token for the given principal. Used by tooling and tests."""
    payload = f"{principal_id}.{role.value}"
    signature = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return f"{payload}.{signature}"


class TokenAuthService(BaseAuthService):

    def __init__(self, secret: str):
        if not secret:
            raise ValueError(
                "AUTH_SECRET is required for production mode. "
                "Set it in your .env file or environment variables."
            )
        self._secret = secret

    @property
    def provider_name(self) -> str:
        return "token"

    def authenticate(self, headers: Mapping[str, str]) -> Principal:
        header = headers.get("authorization") or ""
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise UnauthorizedError("Missing bearer token")

        parts = token.strip().rsplit(".", 2)
        if len(parts) != 3:
            raise UnauthorizedError("Malformed bearer token")
        principal_id, raw_role, signature = parts

        role = parse_role(raw_role)
        expected = sign_token(self._secret, principal_id, role).rsplit(".", 1)[1]
        if not hmac.compare_digest(expected, signature):
            logger.warning(f"Rejected token with bad signature for principal {principal_id}")
            raise UnauthorizedError("Invalid bearer token")

        return Principal(principal_id=principal_id, role=role)
