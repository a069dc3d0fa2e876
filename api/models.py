"""
API request and response models for MemberAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two.

Wire format is camelCase (the membership frontend's convention); the Python
side stays snake_case through the to_camel alias generator.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Account

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)
_WIRE_OUT = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignInRequest(BaseModel):
    model_config = _WIRE

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup.

    yearOfBirth is also accepted as "yob", the field name older clients send.
    """

    model_config = _WIRE

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    role: str = Field(min_length=1, max_length=50)
    year_of_birth: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("yearOfBirth", "yob", "year_of_birth"),
    )
    gender: Optional[str] = Field(default=None, max_length=30)
    enrolled_year: Optional[int] = None
    major: Optional[str] = Field(default=None, max_length=255)
    kakao_talk_id: Optional[str] = Field(default=None, max_length=255)
    profile_image_url: Optional[str] = None
    verification_file_url: Optional[str] = None

    def to_account(self) -> Account:
        # role_id is resolved by AccountLifecycle.sign_up
        return Account(
            name=self.name,
            email=self.email,
            role_id=0,
            year_of_birth=self.year_of_birth,
            gender=self.gender,
            enrolled_year=self.enrolled_year,
            major=self.major,
            kakao_talk_id=self.kakao_talk_id,
            profile_image_url=self.profile_image_url,
        )


class PasswordChangeRequest(BaseModel):
    model_config = _WIRE

    prev_password: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class AdminPasswordRequest(BaseModel):
    model_config = _WIRE

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class PasswordRecoveryRequest(BaseModel):
    model_config = _WIRE

    email: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    year_of_birth: int


class VerificationDecision(BaseModel):
    model_config = _WIRE

    verification_id: int


class VerificationDenial(BaseModel):
    model_config = _WIRE

    verification_id: int
    denial_message: Optional[str] = Field(default=None, max_length=2000)


class RemoveAccountRequest(BaseModel):
    """Omit email to remove the signed-in account itself."""

    model_config = _WIRE

    email: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ProfileResponse(BaseModel):
    """Public profile returned after sign-in. Never includes credentials."""

    model_config = _WIRE_OUT

    name: str
    email: str
    profile_image_url: Optional[str] = None
    enrolled_year: Optional[int] = None
    major: Optional[str] = None
    year_of_birth: Optional[int] = None
    role: Optional[str] = None
    gender: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account, role_name: Optional[str]) -> "ProfileResponse":
        return cls(
            name=account.name,
            email=account.email,
            profile_image_url=account.profile_image_url,
            enrolled_year=account.enrolled_year,
            major=account.major,
            year_of_birth=account.year_of_birth,
            role=role_name,
            gender=account.gender,
        )


class MeResponse(BaseModel):
    model_config = _WIRE_OUT

    id: int
    email: str
    name: str
    role: Optional[str] = None
    profile_image_url: Optional[str] = None


class ReviewAccount(BaseModel):
    """Public fields of the account behind a pending verification request."""

    model_config = _WIRE_OUT

    name: str
    email: str
    gender: Optional[str] = None
    major: Optional[str] = None
    kakao_talk_id: Optional[str] = None
    role: Optional[str] = None


class PendingVerificationResponse(BaseModel):
    model_config = _WIRE_OUT

    id: int
    file_url: str
    created_at: str
    updated_at: str
    user: ReviewAccount


class DocumentUploadResponse(BaseModel):
    model_config = _WIRE_OUT

    url: str
    verification_id: Optional[int] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
