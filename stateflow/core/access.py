"""Access policy for the surfaces layered on the engine.

Permission string format: "resource:action"
Examples:
  - transitions:apply
  - audit_logs:export

``resource:*`` grants every action on a resource and ``*:*`` grants
everything. The policy is stateless apart from the permission set it was
built with and is injected into handlers rather than inherited.
"""

from enum import Enum
from typing import Iterable, List, NamedTuple, Union

from .errors import AuthorizationError


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    TRANSITIONS = "transitions"
    AUDIT_LOGS = "audit_logs"


class Action(str, Enum):
    """Actions that can be performed on resources."""

    READ = "read"
    LIST = "list"
    APPLY = "apply"
    EXPORT = "export"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'transitions:apply'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), Action(parts[1]))


def grants(granted: Iterable[str], required: str) -> bool:
    """Check whether a set of granted permission strings covers ``required``.

    Shared with the capability guard so that wildcards behave the same in
    both places.
    """
    granted = set(granted)
    if required in granted:
        return True
    if "*:*" in granted:
        return True
    if ":" in required:
        resource = required.split(":")[0]
        if f"{resource}:*" in granted:
            return True
    return False


class AccessPolicy:
    """Checks a caller's permissions."""

    def __init__(self, permissions: Iterable[str]):
        self.permissions = frozenset(permissions)

    def has_permission(self, permission: Union[str, Permission]) -> bool:
        return grants(self.permissions, str(permission))

    def has_any_permission(self, permissions: List[Union[str, Permission]]) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: List[Union[str, Permission]]) -> bool:
        return all(self.has_permission(p) for p in permissions)

    def require(self, *permissions: Union[str, Permission], require_all: bool = False) -> None:
        """Raise ``AuthorizationError`` unless the permissions are held.

        Args:
            permissions: One or more permission strings or Permission objects
            require_all: If True, every permission is needed. Default: any one.
        """
        perm_strs = [str(p) for p in permissions]
        if require_all:
            allowed = self.has_all_permissions(perm_strs)
        else:
            allowed = self.has_any_permission(perm_strs)
        if not allowed:
            raise AuthorizationError(
                f"Insufficient permissions. Required: {', '.join(perm_strs)}"
            )
