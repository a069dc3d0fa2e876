"""
auth/models.py -- Domain dataclasses for membership entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these own the domain shape.

Layer rule: no imports from api/, notify/, or blobs/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Role:
    name: str  # "Admin", "Member"
    id: int | None = None


@dataclass
class Account:
    """A member of the society.

    password_hash is None for accounts carried over from the legacy auth
    provider. Those accounts cannot sign in until an admin sets a password
    through the legacy-password route, which also creates the salt.

    verified is the staff approval flag, email_verified the proof of control
    over the address. Sign-in requires both.
    """

    name: str
    email: str
    role_id: int
    id: int | None = None
    password_hash: str | None = None  # None = needs migration from legacy auth
    email_verified: bool = False
    verified: bool = False
    year_of_birth: int | None = None
    gender: str | None = None
    enrolled_year: int | None = None
    major: str | None = None
    profile_image_url: str | None = None
    kakao_talk_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Salt:
    """The single live salt for an account. Rotated on every password change."""

    account_id: int
    value: str  # base64 of salt_bytes random bytes
    id: int | None = None


@dataclass
class VerificationRequest:
    """A pending staff review of an identity document.

    At most one exists per account (unique account_id). Approving sets
    Account.verified and deletes the row; denying only deletes it.
    """

    account_id: int
    file_url: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class SessionIdentity:
    """What the session cookie carries between requests.

    Deliberately excludes password_hash and salt. role_id is resolved to a
    name per request through RoleDirectory, so a role rename or demotion takes
    effect without re-login.
    """

    id: int
    email: str
    name: str
    role_id: int
    profile_image_url: str | None = None

    @classmethod
    def from_account(cls, account: Account) -> "SessionIdentity":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role_id=account.role_id,
            profile_image_url=account.profile_image_url,
        )

    def to_session(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role_id": self.role_id,
            "profile_image_url": self.profile_image_url,
        }

    @classmethod
    def from_session(cls, data: dict) -> "SessionIdentity | None":
        try:
            return cls(
                id=int(data["id"]),
                email=str(data["email"]),
                name=str(data["name"]),
                role_id=int(data["role_id"]),
                profile_image_url=data.get("profile_image_url"),
            )
        except (KeyError, TypeError, ValueError):
            return None
