"""
notify/messages.py -- Subject and body text for every membership email.

Each builder returns (subject, body). Bodies are pre-rendered plain text; the
sink does no templating.
"""

from __future__ import annotations


def verification_email(org: str, link: str) -> tuple[str, str]:
    subject = f"{org} -- please confirm your email address"
    body = (
        f"Hello, this is {org}.\n\n"
        "Thank you for signing up. Please open the link below to confirm that "
        "this email address belongs to you. Once it is confirmed, your account "
        "will be reviewed by our staff.\n\n"
        f"{link}\n\n"
        f"Thank you,\n{org}"
    )
    return subject, body


def approval_email(org: str) -> tuple[str, str]:
    subject = f"{org} -- your account has been approved"
    body = (
        f"Hello, this is {org}.\n\n"
        "Your identity documents have been reviewed and your account is now "
        "verified. You can sign in with your email and password.\n\n"
        f"Thank you,\n{org}"
    )
    return subject, body


def denial_email(org: str, reason: str | None) -> tuple[str, str]:
    subject = f"{org} -- your verification request was not approved"
    body = (
        f"Hello, this is {org}.\n\n"
        "We could not approve the identity document you submitted.\n\n"
        f"Reason: {reason or 'not specified'}\n\n"
        "Please upload a new document and we will review it again.\n\n"
        f"Thank you,\n{org}"
    )
    return subject, body


def temporary_password_email(org: str, temp_password: str) -> tuple[str, str]:
    subject = f"{org} -- your temporary password"
    body = (
        f"Hello, this is {org}.\n\n"
        "We received a request to reset your password. Sign in with the "
        "temporary password below and change it right away from your profile.\n\n"
        "If you did not request this, contact us.\n\n"
        f"Temporary password: {temp_password}\n\n"
        f"Thank you,\n{org}"
    )
    return subject, body
