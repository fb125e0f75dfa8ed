"""Permission checks for schema operations and custom actions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schemacrud.auth.types import ROOT_PERMISSION, Authorizer, Principal
from schemacrud.exceptions import ForbiddenError

if TYPE_CHECKING:
    from schemacrud.schema.models import Schema

logger = logging.getLogger(__name__)

# Operation -> the schema permission key that guards it
OPERATION_PERMISSIONS = {
    "schema": "read",
    "list": "read",
    "read": "read",
    "details": "read",
    "related": "read",
    "create": "create",
    "update": "update",
    "update_field": "update",
    "attach": "update",
    "detach": "update",
    "sync": "update",
    "delete": "delete",
    "restore": "delete",
}


class PermissionSetAuthorizer:
    """Authorizer backed by the principal's own permission set.

    A principal holding ``"*"`` is granted everything.
    """

    def check_access(self, principal: Principal, slug: str) -> bool:
        return ROOT_PERMISSION in principal.permissions or slug in principal.permissions


def resolve_permission(schema: Schema, action_key: str) -> str | None:
    """Return the permission slug declared for ``action_key``, or None.

    Operation keys (``read``, ``create``, ``update``, ``delete``) are looked
    up in the schema's ``permissions`` map first; custom action keys resolve
    through the action's own ``permission``.
    """
    slug = schema.permissions.get(action_key)
    if slug:
        return slug
    action = schema.get_action(action_key)
    if action is not None and action.permission:
        return action.permission
    return None


class AccessGate:
    """Maps schema actions to permission slugs and asks the Authorizer.

    Fails closed: a declared permission the principal lacks always denies.
    An action with no declared permission is open to every principal.
    """

    def __init__(self, authorizer: Authorizer | None = None):
        self.authorizer = authorizer or PermissionSetAuthorizer()

    def check_access(self, principal: Principal, schema: Schema, action_key: str) -> None:
        """Raise ForbiddenError unless ``principal`` may perform ``action_key``."""
        slug = resolve_permission(schema, action_key)
        if slug is None:
            logger.debug("Action %s on %s declares no permission; allowing", action_key, schema.model)
            return
        if not self.authorizer.check_access(principal, slug):
            logger.debug(
                "Denied %s on %s for user %s (needs %s)",
                action_key, schema.model, principal.user_id, slug,
            )
            raise ForbiddenError(schema.model, action_key, slug)

    def check_operation(self, principal: Principal, schema: Schema, operation: str) -> None:
        """Check a CRUD operation (``list``, ``attach``, ...) via its permission key."""
        self.check_access(principal, schema, OPERATION_PERMISSIONS.get(operation, operation))

    def can(self, principal: Principal, schema: Schema, action_key: str) -> bool:
        try:
            self.check_access(principal, schema, action_key)
        except ForbiddenError:
            return False
        return True
