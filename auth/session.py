"""
auth/session.py -- Read and write the signed-in identity on a session mapping.

The mapping is request.session from Starlette's SessionMiddleware (a signed
cookie) in the app, and a plain dict in service tests. Only SessionIdentity
fields are stored; never a password, hash or salt.
"""

from __future__ import annotations

from collections.abc import MutableMapping

from auth.models import SessionIdentity

_SESSION_KEY = "identity"


def establish_session(session: MutableMapping, identity: SessionIdentity) -> None:
    # Drop whatever the anonymous session held before binding the identity.
    session.clear()
    session[_SESSION_KEY] = identity.to_session()


def terminate_session(session: MutableMapping) -> None:
    session.clear()


def current_identity(session: MutableMapping) -> SessionIdentity | None:
    data = session.get(_SESSION_KEY)
    if not isinstance(data, dict):
        return None
    return SessionIdentity.from_session(data)
