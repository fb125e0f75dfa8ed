"""Type definitions for access control."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# Wildcard permission that grants every slug
ROOT_PERMISSION = "*"


@dataclass(frozen=True)
class Principal:
    """The caller of an operation.

    Attributes:
        user_id: The authenticated user's ID (None for anonymous callers)
        permissions: Permission slugs granted to the caller
    """

    user_id: Any = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls()

    @classmethod
    def with_permissions(cls, *slugs: str, user_id: Any = None) -> "Principal":
        return cls(user_id=user_id, permissions=frozenset(slugs))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {"userId": self.user_id, "permissions": sorted(self.permissions)}


@runtime_checkable
class Authorizer(Protocol):
    """External oracle answering "does this principal hold permission X"."""

    def check_access(self, principal: Principal, slug: str) -> bool: ...
