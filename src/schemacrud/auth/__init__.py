"""Access control for schemacrud."""

from schemacrud.auth.permissions import (
    OPERATION_PERMISSIONS,
    AccessGate,
    PermissionSetAuthorizer,
    resolve_permission,
)
from schemacrud.auth.types import ROOT_PERMISSION, Authorizer, Principal

__all__ = [
    "AccessGate",
    "Authorizer",
    "OPERATION_PERMISSIONS",
    "PermissionSetAuthorizer",
    "Principal",
    "ROOT_PERMISSION",
    "resolve_permission",
]
