"""
auth/roles.py -- Single place that turns role ids into names and back.

Accounts and sessions carry role_id only. Every "is this caller an admin?"
check and every presentation of a role name goes through RoleDirectory, so
there is one lookup path instead of ad hoc queries in each route.

Role names are looked up per call (not cached): renaming or re-assigning a
role takes effect on the next request.
"""

from __future__ import annotations

from auth.errors import PreconditionError
from auth.models import Role, SessionIdentity
from auth.store import AccountStore


class RoleDirectory:
    def __init__(self, store: AccountStore, admin_role_name: str = "Admin") -> None:
        self.store = store
        self.admin_role_name = admin_role_name

    def name_of(self, role_id: int) -> str | None:
        role = self.store.get_role_by_id(role_id)
        return role.name if role is not None else None

    def resolve(self, name: str) -> Role:
        """Return the role called name. Raises PreconditionError if unknown."""
        role = self.store.get_role_by_name(name)
        if role is None:
            raise PreconditionError(f"Unknown role: {name}")
        return role

    def is_admin(self, identity: SessionIdentity) -> bool:
        return self.name_of(identity.role_id) == self.admin_role_name
