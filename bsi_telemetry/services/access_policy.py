from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Tuple

ALL_ROLES: FrozenSet[str] = frozenset({"admin", "manager", "viewer"})
ADMIN: FrozenSet[str] = frozenset({"admin"})
STAFF: FrozenSet[str] = frozenset({"admin", "manager"})

# (action, resource) -> roles allowed on any instance
DEFAULT_RULES: Dict[Tuple[str, str], FrozenSet[str]] = {
    ("create", "users"): ADMIN,
    ("list", "users"): STAFF,
    ("read", "users"): STAFF,
    ("update", "users"): ADMIN,
    ("delete", "users"): ADMIN,
    ("set_role", "users"): ADMIN,
    ("read", "activity_logs"): ADMIN,
    ("create", "node_assignments"): ADMIN,
    ("read", "node_assignments"): ADMIN,
    ("delete", "node_assignments"): ADMIN,
    ("update", "node_access"): ADMIN,
    ("list", "available_nodes"): ADMIN,
    ("create", "metric_mappings"): ADMIN,
    ("update", "metric_mappings"): ADMIN,
    ("delete", "metric_mappings"): ADMIN,
    ("read", "metric_mapping_audit"): ADMIN,
    ("list", "metric_mappings"): STAFF,
    ("list", "unmapped_nodes"): ADMIN,
    ("read", "nodes"): ALL_ROLES,
    ("read", "telemetry"): ALL_ROLES,
    ("read", "telemetry_mappings"): ALL_ROLES,
    ("read", "reports"): ALL_ROLES,
    ("send", "reports"): ALL_ROLES,
}

# (action, resource) pairs any role may perform on its own user record
DEFAULT_SELF_SERVICE: FrozenSet[Tuple[str, str]] = frozenset(
    {
        ("read", "users"),
        ("update", "users"),
        ("read", "node_assignments"),
    }
)


class PermissionDenied(RuntimeError):
    def __init__(self, action: str, resource: str, role: str):
        super().__init__(f"Role '{role}' may not {action} {resource}")
        self.action = action
        self.resource = resource
        self.role = role


@dataclass(frozen=True)
class AuthorizationPolicy:
    """Role gate keyed by (action, resource, role) triples.

    Unknown (action, resource) pairs are denied. Self-service pairs are also
    granted to any role when the subject of the request is the caller.
    """

    rules: Mapping[Tuple[str, str], FrozenSet[str]] = field(default_factory=lambda: dict(DEFAULT_RULES))
    self_service: FrozenSet[Tuple[str, str]] = DEFAULT_SELF_SERVICE

    def allows(self, role: str, action: str, resource: str, *, is_self: bool = False) -> bool:
        role = (role or "").strip().lower()
        if role not in ALL_ROLES:
            return False
        if role in self.rules.get((action, resource), frozenset()):
            return True
        return bool(is_self and (action, resource) in self.self_service)

    def check(self, role: str, action: str, resource: str, *, is_self: bool = False) -> None:
        if not self.allows(role, action, resource, is_self=is_self):
            raise PermissionDenied(action, resource, role)

    def roles_for(self, action: str, resource: str) -> Iterable[str]:
        return sorted(self.rules.get((action, resource), frozenset()))
