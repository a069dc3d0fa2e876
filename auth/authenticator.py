"""
auth/authenticator.py -- Sign-in state machine and password management.

Sign-in, one attempt:

    Anonymous
      -> CredentialsSubmitted      body present (else ValidationError)
      -> account lookup            NotFoundError / LegacyMigrationRequired
      -> CredentialValid           hash matches under the live salt
         | CredentialInvalid       AuthenticationError
      -> VerificationChecked       email_verified, then verified
         | Rejected                session terminated, PreconditionError
      -> SessionEstablished

Passwords are only ever written through set_password() or the
compare-and-swap in change_password(). Both derive a fresh salt and hand the
(salt, hash) pair to AccountStore.replace_credentials(), which writes them in
one transaction.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import MutableMapping

from auth.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DependencyFailure,
    LegacyMigrationRequired,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from auth.hasher import CredentialHasher, generate_temp_password
from auth.models import Account, SessionIdentity
from auth.session import establish_session, terminate_session
from auth.store import AccountStore
from core.config import Settings
from notify.messages import temporary_password_email
from notify.sink import NotificationSink, deliver

logger = logging.getLogger("memberauth.auth")


def verification_denial(account: Account) -> str | None:
    """Return the reason sign-in is refused for a credential-valid account, or None."""
    if not account.email_verified:
        return "Email Not Verified"
    if not account.verified:
        return "Account Not Verified"
    return None


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class Authenticator:
    def __init__(
        self,
        store: AccountStore,
        hasher: CredentialHasher,
        sink: NotificationSink,
        settings: Settings,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.sink = sink
        self.settings = settings

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    async def sign_in(self, session: MutableMapping, email: str, password: str) -> Account:
        """Run one sign-in attempt. On success the session carries the identity."""
        if not email or not password:
            raise ValidationError()

        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("User Not Found")
        if not account.password_hash:
            raise LegacyMigrationRequired()

        salt = self.store.get_salt(account.id)
        if salt is None:
            logger.error("Account %d has a password hash but no salt", account.id)
            raise DependencyFailure()

        if not await self.hasher.verify_async(password, salt.value, account.password_hash):
            logger.info("Sign-in rejected for account %d: incorrect password", account.id)
            raise AuthenticationError("Incorrect password")

        reason = verification_denial(account)
        if reason is not None:
            terminate_session(session)
            logger.info("Sign-in denied for account %d: %s", account.id, reason)
            raise PreconditionError(reason)

        establish_session(session, SessionIdentity.from_account(account))
        logger.info("Account %d signed in", account.id)
        return account

    def sign_out(self, session: MutableMapping) -> None:
        """Terminate the session. A failure is logged, never raised to the caller."""
        try:
            terminate_session(session)
        except Exception:
            logger.exception("Failed to terminate session")

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def set_password(self, account_id: int, password: str) -> None:
        """Rotate the salt and store the new hash, unconditionally."""
        salt = self.hasher.derive_salt()
        password_hash = await self.hasher.hash_async(password, salt)
        self.store.replace_credentials(account_id, salt, password_hash)

    async def change_password(self, identity: SessionIdentity, previous: str, new: str) -> None:
        """Self-service change: previous password must verify under the live salt.

        Nothing is rotated on a mismatch. The rotation is a compare-and-swap
        against the salt that was verified, so a concurrent change for the
        same account makes this call fail with ConflictError instead of
        silently overwriting it.
        """
        if not previous or not new:
            raise ValidationError()
        account = self.store.get_account_by_id(identity.id)
        if account is None:
            raise AuthorizationError()
        salt = self.store.get_salt(account.id)
        if salt is None or not account.password_hash:
            raise LegacyMigrationRequired()

        if not await self.hasher.verify_async(previous, salt.value, account.password_hash):
            logger.info("Password change rejected for account %d: previous password mismatch", account.id)
            raise AuthenticationError("Incorrect password")

        new_salt = self.hasher.derive_salt()
        new_hash = await self.hasher.hash_async(new, new_salt)
        if not self.store.replace_credentials(account.id, new_salt, new_hash, expected_salt=salt.value):
            logger.warning("Concurrent credential update detected for account %d", account.id)
            raise ConflictError("Password was changed by another request. Please try again.")
        logger.info("Password changed for account %d", account.id)

    async def admin_reset_password(self, email: str, password: str) -> Account:
        """Set a password without the previous one (legacy migration path).

        Only reachable behind require_admin; see api/routes/v1/auth.py.
        """
        if not email or not password:
            raise ValidationError()
        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("User Not Found")
        await self.set_password(account.id, password)
        logger.info("Password for account %d set by an admin", account.id)
        return self.store.get_account_by_id(account.id)

    async def recover_password(self, email: str, name: str, year_of_birth: int) -> None:
        """Reset a forgotten password after a name + year-of-birth challenge.

        Both values must match. The temporary password is stored under a
        fresh salt first and then mailed in plaintext; an undelivered email
        is reported as a DependencyFailure.
        """
        if not email or not name or year_of_birth is None:
            raise ValidationError()
        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("No such user")
        name_ok = _same(account.name, name)
        yob_ok = _same(str(account.year_of_birth), str(year_of_birth))
        if not (name_ok and yob_ok):
            logger.info("Password recovery challenge failed for account %d", account.id)
            raise AuthenticationError("Information mismatch")

        temp_password = generate_temp_password(self.settings.temp_password_bytes)
        await self.set_password(account.id, temp_password)

        subject, body = temporary_password_email(self.settings.organization_name, temp_password)
        if not await deliver(self.sink, account.email, subject, body):
            logger.error("Temporary password email to account %d was not delivered", account.id)
            raise DependencyFailure("Temporary Password Email Sending Failed")
        logger.info("Temporary password issued for account %d", account.id)
