# src/domain/principal.py

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller of the current request.
    Supplied by the identity provider, never stored process-wide.
    """

    id: str
    email: str | None
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN
