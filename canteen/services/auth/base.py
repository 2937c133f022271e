"""
Auth Service Abstract Base Class

Authentication is an opaque capability: given the request headers, an
implementation either yields a Principal or raises UnauthorizedError. How
identities are proven is the implementation's business.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping

from canteen.core.exceptions import UnauthorizedError


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """The caller of an operation."""
    principal_id: str
    role: Role

    @property
    def is_elevated(self) -> bool:
        """Staff and admins may act on any order."""
        return self.role in (Role.STAFF, Role.ADMIN)


class BaseAuthService(ABC):
    """Abstract base class for role resolution."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def authenticate(self, headers: Mapping[str, str]) -> Principal:
        """
        Resolve the caller from request headers.

        Raises:
            UnauthorizedError: No usable identity in the request
        """
        pass


def parse_role(value: str) -> Role:
    try:
        return Role(value.strip().lower())
    except ValueError:
        raise UnauthorizedError(f"Unknown role: {value}")
