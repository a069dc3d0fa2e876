"""
api/routes/v1/auth.py -- Authentication, account and verification REST endpoints.

Routes:
  POST /api/v1/auth/signin                              -- password sign-in; sets session cookie
  POST /api/v1/auth/signout                             -- clears the session; 200
  POST /api/v1/auth/signup                              -- create an account, mail the email link
  GET  /api/v1/auth/me                                  -- current identity (requires session)
  GET  /api/v1/auth/email-verify/{user_id}/{signature}  -- confirm email (link from the mail)
  GET  /api/v1/auth/verification-email/{email}          -- re-send the email link (admin only)
  POST /api/v1/auth/password                            -- change own password (requires session)
  POST /api/v1/auth/legacy-password                     -- set a password without the old one (admin only)
  POST /api/v1/auth/password-recovery                   -- mail a temporary password
  POST /api/v1/auth/verification-documents/{file_name}  -- upload an identity document
  GET  /api/v1/auth/verifications                       -- pending review queue (admin only)
  POST /api/v1/auth/verifications/approve               -- approve a request (admin only)
  POST /api/v1/auth/verifications/deny                  -- deny a request (admin only)
  POST /api/v1/auth/account/remove                      -- remove own account, or any (admin)

Errors are raised as auth.errors.MembershipError subclasses and rendered by
the handler in api/main.py; handlers here never build error responses.

Security:
  POST /signin and POST /password-recovery are rate-limited per IP.
  Cache-Control: no-store on responses that carry profile data.
  Admin checks run as dependencies, before any lookup, so a non-admin cannot
  learn whether an email or request id exists.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, UploadFile

from api.limiter import limiter
from api.models import (
    AdminPasswordRequest,
    DocumentUploadResponse,
    MeResponse,
    MessageResponse,
    PasswordChangeRequest,
    PasswordRecoveryRequest,
    PendingVerificationResponse,
    ProfileResponse,
    RemoveAccountRequest,
    ReviewAccount,
    SignInRequest,
    SignUpRequest,
    VerificationDecision,
    VerificationDenial,
)
from auth.authenticator import Authenticator
from auth.dependencies import get_current_identity, require_admin, try_get_current_identity
from auth.errors import PreconditionError
from auth.lifecycle import AccountLifecycle
from auth.models import SessionIdentity
from auth.roles import RoleDirectory
from auth.verifier import IdentityVerifier
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /auth/signin, /auth/signout, /auth/signup, /auth/password-recovery: public
# - GET  /auth/email-verify/...: public, HMAC-signed link
# - POST /auth/verification-documents/{file_name}: public (signup flow); a
#        session additionally files the verification request
# - GET  /auth/me, POST /auth/password, POST /auth/account/remove: session
# - everything under /auth/verifications, /auth/verification-email,
#   /auth/legacy-password: admin
router = APIRouter()


def _services(request: Request) -> tuple[Authenticator, AccountLifecycle, IdentityVerifier, RoleDirectory]:
    state = request.app.state
    return state.authenticator, state.lifecycle, state.verifier, state.roles


# ---------------------------------------------------------------------------
# Sign-in / sign-out / signup
# ---------------------------------------------------------------------------


@limiter.limit(_settings.signin_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/signin", response_model=ProfileResponse)
async def signin(request: Request, response: Response, body: SignInRequest) -> ProfileResponse:
    """Sign in with email and password.

    Requires a matching password AND both verification flags. A
    credential-valid account that is not yet verified gets 400 with the
    reason, and any existing session is terminated.
    """
    authenticator, _, _, roles = _services(request)
    account = await authenticator.sign_in(request.session, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return ProfileResponse.from_account(account, roles.name_of(account.role_id))


@router.post("/auth/signout", response_model=MessageResponse)
async def signout(request: Request) -> MessageResponse:
    authenticator, _, _, _ = _services(request)
    authenticator.sign_out(request.session)
    return MessageResponse(message="Signed out.")


@router.post("/auth/signup", response_model=MessageResponse)
async def signup(request: Request, body: SignUpRequest) -> MessageResponse:
    """Create an account and mail the email verification link.

    If the email cannot be delivered the account is deleted again and the
    request fails with 417. The password is stored before this returns.
    """
    _, lifecycle, _, _ = _services(request)
    await lifecycle.sign_up(
        body.to_account(),
        password=body.password,
        role_name=body.role,
        verification_file_url=body.verification_file_url,
    )
    return MessageResponse(message="Signup Successful")


@router.get("/auth/me", response_model=MeResponse)
async def me(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> MeResponse:
    _, _, _, roles = _services(request)
    return MeResponse(
        id=identity.id,
        email=identity.email,
        name=identity.name,
        role=roles.name_of(identity.role_id),
        profile_image_url=identity.profile_image_url,
    )


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.get("/auth/email-verify/{user_id}/{signature}", response_model=MessageResponse)
async def email_verify(request: Request, user_id: int, signature: str) -> MessageResponse:
    _, _, verifier, _ = _services(request)
    verifier.confirm_email(user_id, signature)
    return MessageResponse(message="User's email is successfully verified.")


@router.get("/auth/verification-email/{email}", response_model=MessageResponse)
async def send_verification_email(
    request: Request,
    email: str,
    identity: SessionIdentity = Depends(require_admin),
) -> MessageResponse:
    _, _, verifier, _ = _services(request)
    await verifier.resend_verification_email(email)
    return MessageResponse(message="Verification Email Successfully Sent")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


@router.post("/auth/password", response_model=MessageResponse)
async def change_password(
    request: Request,
    body: PasswordChangeRequest,
    identity: SessionIdentity = Depends(get_current_identity),
) -> MessageResponse:
    authenticator, _, _, _ = _services(request)
    await authenticator.change_password(identity, body.prev_password, body.password)
    return MessageResponse(message="Password updated.")


@router.post("/auth/legacy-password", response_model=ProfileResponse)
async def set_legacy_password(
    request: Request,
    response: Response,
    body: AdminPasswordRequest,
    identity: SessionIdentity = Depends(require_admin),
) -> ProfileResponse:
    """Give an account migrated from the legacy provider a local password. Admin only."""
    authenticator, _, _, roles = _services(request)
    account = await authenticator.admin_reset_password(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return ProfileResponse.from_account(account, roles.name_of(account.role_id))


@limiter.limit(_settings.recovery_rate_limit)
@router.post("/auth/password-recovery", response_model=MessageResponse)
async def recover_password(request: Request, body: PasswordRecoveryRequest) -> MessageResponse:
    authenticator, _, _, _ = _services(request)
    await authenticator.recover_password(body.email, body.name, body.year_of_birth)
    return MessageResponse(message="Email with temporary password successfully sent.")


# ---------------------------------------------------------------------------
# Identity documents and the review queue
# ---------------------------------------------------------------------------


@router.post("/auth/verification-documents/{file_name}", response_model=DocumentUploadResponse)
async def upload_verification_document(
    request: Request,
    file_name: str,
    file: Optional[UploadFile] = None,
) -> DocumentUploadResponse:
    """Store an identity document and return its URL.

    Anonymous uploads (during signup) only return the URL. With a session the
    account's pending verification request is created or replaced.
    """
    if file is None:
        raise PreconditionError("No file attached")
    data = await file.read(_settings.max_document_bytes + 1)
    if len(data) > _settings.max_document_bytes:
        raise PreconditionError("File too large")
    _, _, verifier, _ = _services(request)
    identity = try_get_current_identity(request)
    url, request_id = await verifier.submit_document(file_name, data, identity)
    return DocumentUploadResponse(url=url, verification_id=request_id)


@router.get("/auth/verifications", response_model=list[PendingVerificationResponse])
async def list_pending_verifications(
    request: Request,
    identity: SessionIdentity = Depends(require_admin),
) -> list[PendingVerificationResponse]:
    _, _, verifier, _ = _services(request)
    return [
        PendingVerificationResponse(
            id=review.request.id,
            file_url=review.request.file_url,
            created_at=review.request.created_at or "",
            updated_at=review.request.updated_at or "",
            user=ReviewAccount(
                name=review.account.name,
                email=review.account.email,
                gender=review.account.gender,
                major=review.account.major,
                kakao_talk_id=review.account.kakao_talk_id,
                role=review.role_name,
            ),
        )
        for review in verifier.pending_requests()
    ]


@router.post("/auth/verifications/approve", response_model=MessageResponse)
async def approve_verification(
    request: Request,
    body: VerificationDecision,
    background_tasks: BackgroundTasks,
    identity: SessionIdentity = Depends(require_admin),
) -> MessageResponse:
    """Mark the requester verified. Approving an already-handled request is 404."""
    _, _, verifier, _ = _services(request)
    account = verifier.approve(body.verification_id)
    background_tasks.add_task(verifier.notify_approved, account.email)
    return MessageResponse(message="Account verified.")


@router.post("/auth/verifications/deny", response_model=MessageResponse)
async def deny_verification(
    request: Request,
    body: VerificationDenial,
    background_tasks: BackgroundTasks,
    identity: SessionIdentity = Depends(require_admin),
) -> MessageResponse:
    _, _, verifier, _ = _services(request)
    account = verifier.deny(body.verification_id)
    background_tasks.add_task(verifier.notify_denied, account.email, body.denial_message)
    return MessageResponse(message="Verification request denied.")


# ---------------------------------------------------------------------------
# Account removal
# ---------------------------------------------------------------------------


@router.post("/auth/account/remove", response_model=MessageResponse)
async def remove_account(
    request: Request,
    body: RemoveAccountRequest,
    identity: SessionIdentity = Depends(get_current_identity),
) -> MessageResponse:
    _, lifecycle, _, _ = _services(request)
    lifecycle.remove_account(request.session, identity, body.email)
    return MessageResponse(message="Deleted Successfully")
