"""
auth/dependencies.py -- FastAPI Depends() helpers for session identity.

The identity lives in the signed session cookie (Starlette SessionMiddleware).
Each request re-checks that the account still exists, so a removed account's
cookie stops working immediately.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises AuthorizationError (401).
require_admin() wraps get_current_identity() and raises AuthorizationError
(401, not 403: a non-admin learns nothing more than an anonymous caller).

auth/dependencies.py may import from fastapi because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import AuthorizationError
from auth.models import SessionIdentity
from auth.roles import RoleDirectory
from auth.session import current_identity, terminate_session
from auth.store import AccountStore


def try_get_current_identity(request: Request) -> SessionIdentity | None:
    """Return the signed-in identity, or None. Never raises."""
    identity = current_identity(request.session)
    if identity is None:
        return None
    store: AccountStore = request.app.state.store
    if store.get_account_by_id(identity.id) is None:
        terminate_session(request.session)
        return None
    return identity


def get_current_identity(request: Request) -> SessionIdentity:
    """Require a session.

    Use as a FastAPI dependency:
        @router.post("/protected")
        async def route(identity: SessionIdentity = Depends(get_current_identity)): ...
    """
    identity = try_get_current_identity(request)
    if identity is None:
        raise AuthorizationError("Not Logged In")
    return identity


def require_admin(request: Request) -> SessionIdentity:
    """Require a session whose role resolves to the admin role."""
    identity = get_current_identity(request)
    roles: RoleDirectory = request.app.state.roles
    if not roles.is_admin(identity):
        raise AuthorizationError("Admin access required.")
    return identity
