"""Actor & role model.

Every role check in the service goes through ``ROLE_CAPABILITIES``; routers
and presentation code consult the same table instead of comparing role
strings directly.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    SYSTEM_OWNER = "system_owner"
    COMPANY_ADMIN = "company_admin"
    TECHNICIAN = "technician"
    CLIENT_USER = "client_user"


class Capability(str, Enum):
    COMMENT = "comment"
    VIEW_PRIVATE = "view_private"
    VIEW_HISTORY = "view_history"
    ISSUE_SHARE_LINK = "issue_share_link"
    EDIT_TICKET = "edit_ticket"
    CROSS_TENANT = "cross_tenant"


_STAFF = frozenset(
    {
        Capability.COMMENT,
        Capability.VIEW_PRIVATE,
        Capability.VIEW_HISTORY,
        Capability.ISSUE_SHARE_LINK,
        Capability.EDIT_TICKET,
    }
)

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.SYSTEM_OWNER: _STAFF | {Capability.CROSS_TENANT},
    Role.COMPANY_ADMIN: _STAFF,
    Role.TECHNICIAN: _STAFF,
    # Client commentary is further restricted to own tickets (see comment_store).
    Role.CLIENT_USER: frozenset({Capability.COMMENT, Capability.VIEW_HISTORY}),
}

NO_CAPABILITIES: frozenset[Capability] = frozenset()


def parse_role(value: str | Role | None) -> Role | None:
    if isinstance(value, Role):
        return value
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def capabilities_for(role: str | Role | None) -> frozenset[Capability]:
    parsed = parse_role(role)
    if parsed is None:
        # Unknown role: explicit default deny.
        return NO_CAPABILITIES
    return ROLE_CAPABILITIES.get(parsed, NO_CAPABILITIES)


def capability_table() -> dict[str, list[str]]:
    """Role -> sorted capability names, for UI collaborators."""
    return {
        role.value: sorted(c.value for c in ROLE_CAPABILITIES[role])
        for role in Role
    }


@dataclass(frozen=True)
class Actor:
    id: str
    role: str
    company_id: str

    @property
    def capabilities(self) -> frozenset[Capability]:
        return capabilities_for(self.role)

    @property
    def role_tag(self) -> Role | None:
        return parse_role(self.role)

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def can_access_company(self, company_id: str) -> bool:
        if self.can(Capability.CROSS_TENANT):
            return True
        return bool(company_id) and company_id == self.company_id


def share_actor(share_id: str, company_id: str) -> Actor:
    """Synthetic client-equivalent actor used by the public share endpoint."""
    return Actor(id=f"share:{share_id}", role=Role.CLIENT_USER.value, company_id=company_id)
