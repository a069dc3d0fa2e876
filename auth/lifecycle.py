"""
auth/lifecycle.py -- Account creation and removal.

Signup order matters:
  1. create the account (email_verified=False, verified=False)
  2. send the verification email and wait for the result
  3. on delivery failure delete the account again (compensating delete)
  4. derive salt + hash and store them, still before responding
  5. attach the initial verification request if a document URL was given

Step 4 is awaited, so a successful response always means the password is
usable. A failure in step 4 also deletes the account.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping

from sqlalchemy.exc import IntegrityError

from auth.authenticator import Authenticator
from auth.errors import (
    AuthorizationError,
    ConflictError,
    DependencyFailure,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from auth.models import Account, SessionIdentity
from auth.roles import RoleDirectory
from auth.session import terminate_session
from auth.store import AccountStore
from auth.verifier import IdentityVerifier

logger = logging.getLogger("memberauth.accounts")


class AccountLifecycle:
    def __init__(
        self,
        store: AccountStore,
        roles: RoleDirectory,
        authenticator: Authenticator,
        verifier: IdentityVerifier,
    ) -> None:
        self.store = store
        self.roles = roles
        self.authenticator = authenticator
        self.verifier = verifier

    async def sign_up(
        self,
        draft: Account,
        password: str,
        role_name: str,
        verification_file_url: str | None = None,
    ) -> Account:
        if not draft.email or not draft.name or not password:
            raise ValidationError()
        # Admins are promoted by other admins, never self-registered.
        if role_name == self.roles.admin_role_name:
            raise PreconditionError(f"Cannot sign up with role: {role_name}")
        role = self.roles.resolve(role_name)

        draft.role_id = role.id
        draft.email_verified = False
        draft.verified = False
        try:
            account_id = self.store.create_account(draft)
        except IntegrityError as exc:
            raise ConflictError("A user with that email already exists.") from exc
        draft.id = account_id

        if not await self.verifier.send_verification_email(draft):
            self.store.delete_account(account_id)
            logger.warning("Signup rolled back for %s: verification email not delivered", draft.email)
            raise DependencyFailure("Invalid email is used.")

        try:
            await self.authenticator.set_password(account_id, password)
        except Exception as exc:
            # A signed-up account never exists without credentials.
            logger.exception("Signup rolled back for account %d: storing credentials failed", account_id)
            self.store.delete_account(account_id)
            raise DependencyFailure() from exc

        if verification_file_url:
            self.store.upsert_verification_request(account_id, verification_file_url)

        logger.info("Account %d signed up with role %s", account_id, role.name)
        return self.store.get_account_by_id(account_id)

    def remove_account(
        self,
        session: MutableMapping,
        identity: SessionIdentity,
        email: str | None = None,
    ) -> None:
        """Delete an account. Members may remove only themselves; admins anyone.

        The permission check runs before the lookup so a member cannot probe
        which emails exist.
        """
        target_email = email or identity.email
        if target_email != identity.email and not self.roles.is_admin(identity):
            raise AuthorizationError()
        account = self.store.get_account_by_email(target_email)
        if account is None:
            raise NotFoundError("User Not Found")
        self.store.delete_account(account.id)
        logger.info("Account %d removed by account %d", account.id, identity.id)
        if account.id == identity.id:
            terminate_session(session)
