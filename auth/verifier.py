"""
auth/verifier.py -- Email confirmation and the staff document-review queue.

An account carries two independent flags:

  email_verified  flipped by visiting the signed link mailed at signup
  verified        flipped when staff approve a submitted identity document

Email links are /api/v1/auth/email-verify/{id}/{signature} where signature is
HMAC-SHA256(SECRET_KEY, "email-verify:{id}"). The id alone is guessable; the
signature is not. Confirming is idempotent.

Approve and deny claim the request by deleting it (see AccountStore); the
second of two reviewers acting on the same request gets NotFoundError. The
resulting notices are sent by the caller as background work through
notify_approved() / notify_denied(), whose failures are only logged.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from auth.errors import DependencyFailure, NotFoundError, PreconditionError, ValidationError
from auth.models import Account, SessionIdentity, VerificationRequest
from auth.roles import RoleDirectory
from auth.store import AccountStore
from blobs.store import BlobStore
from core.config import Settings
from notify.messages import approval_email, denial_email, verification_email
from notify.sink import NotificationSink, deliver, deliver_quietly

logger = logging.getLogger("memberauth.verification")

_DOCUMENT_PREFIX = "verifications"


@dataclass
class PendingReview:
    """One row of the staff review queue."""

    request: VerificationRequest
    account: Account
    role_name: str | None


class IdentityVerifier:
    def __init__(
        self,
        store: AccountStore,
        roles: RoleDirectory,
        sink: NotificationSink,
        blobs: BlobStore,
        settings: Settings,
    ) -> None:
        self.store = store
        self.roles = roles
        self.sink = sink
        self.blobs = blobs
        self.settings = settings

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def signature_for(self, account_id: int) -> str:
        return hmac.new(
            self.settings.secret_key.encode(),
            f"email-verify:{account_id}".encode(),
            hashlib.sha256,
        ).hexdigest()

    def verification_link(self, account_id: int) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}/api/v1/auth/email-verify/{account_id}/{self.signature_for(account_id)}"

    async def send_verification_email(self, account: Account) -> bool:
        subject, body = verification_email(self.settings.organization_name, self.verification_link(account.id))
        return await deliver(self.sink, account.email, subject, body)

    async def resend_verification_email(self, email: str) -> None:
        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("No such user exists")
        if not await self.send_verification_email(account):
            raise DependencyFailure("Error while sending verification email")

    def confirm_email(self, account_id: int, signature: str) -> Account:
        """Mark the account's email as verified. Repeat visits succeed too."""
        if not hmac.compare_digest(self.signature_for(account_id).encode(), signature.encode("utf-8")):
            raise NotFoundError("User Not Found")
        account = self.store.get_account_by_id(account_id)
        if account is None:
            raise NotFoundError("User Not Found")
        if not account.email_verified:
            self.store.update_account(account_id, email_verified=True)
            account.email_verified = True
            logger.info("Email verified for account %d", account_id)
        return account

    # ------------------------------------------------------------------
    # Staff review queue
    # ------------------------------------------------------------------

    def pending_requests(self) -> list[PendingReview]:
        """All outstanding requests, most recently updated first."""
        reviews: list[PendingReview] = []
        for request in self.store.list_verification_requests():
            account = self.store.get_account_by_id(request.account_id)
            if account is None:
                continue
            reviews.append(PendingReview(request, account, self.roles.name_of(account.role_id)))
        return reviews

    def approve(self, request_id: int) -> Account:
        account = self.store.approve_verification_request(request_id)
        if account is None:
            raise NotFoundError("Verification request not found")
        logger.info("Verification request %d approved (account %d)", request_id, account.id)
        return account

    def deny(self, request_id: int) -> Account:
        request = self.store.take_verification_request(request_id)
        if request is None:
            raise NotFoundError("Verification request not found")
        account = self.store.get_account_by_id(request.account_id)
        if account is None:
            raise NotFoundError("User Not Found")
        logger.info("Verification request %d denied (account %d)", request_id, account.id)
        return account

    async def notify_approved(self, email: str) -> None:
        subject, body = approval_email(self.settings.organization_name)
        await deliver_quietly(self.sink, email, subject, body)

    async def notify_denied(self, email: str, reason: str | None) -> None:
        subject, body = denial_email(self.settings.organization_name, reason)
        await deliver_quietly(self.sink, email, subject, body)

    # ------------------------------------------------------------------
    # Document submission
    # ------------------------------------------------------------------

    async def submit_document(
        self,
        file_name: str,
        data: bytes,
        identity: SessionIdentity | None = None,
    ) -> tuple[str, int | None]:
        """Store an identity document; return (url, verification request id).

        Without a session (document uploaded during signup) only the URL is
        returned and the signup body carries it. With a session the account's
        pending request is created or replaced.

        Each upload lands under its own random directory, so one caller can
        never overwrite a document another request points at.
        """
        if not file_name:
            raise ValidationError()
        if file_name in (".", "..") or "/" in file_name or "\\" in file_name:
            raise PreconditionError("Invalid file name")
        if not data:
            raise PreconditionError("No file attached")
        key = f"{_DOCUMENT_PREFIX}/{secrets.token_hex(8)}/{file_name}"
        try:
            url = await run_in_threadpool(self.blobs.put, key, data)
        except ValueError as exc:
            raise PreconditionError("Invalid file name") from exc
        except OSError:
            logger.exception("Failed to store verification document %s", key)
            raise DependencyFailure()

        request_id = None
        if identity is not None:
            request_id = self.store.upsert_verification_request(identity.id, url)
            logger.info("Verification request %d submitted by account %d", request_id, identity.id)
        return url, request_id
