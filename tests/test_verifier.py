"""Service-level tests for auth/verifier.py.

Covers:
- signed email links: correct signature verifies, tampered one is 404,
  repeat visits stay successful
- review queue annotation (profile fields + resolved role name)
- approve / deny idempotency and notification side effects
- document submission with and without a session, file name validation
"""

import asyncio
import re

import pytest

from auth.errors import DependencyFailure, NotFoundError, PreconditionError
from auth.models import SessionIdentity
from conftest import make_account


def _identity(services, email) -> SessionIdentity:
    return SessionIdentity.from_account(services.store.get_account_by_email(email))


class TestEmailVerification:
    def test_link_confirms_and_is_idempotent(self, services):
        account_id = make_account(services, "a@x.com", email_verified=False)
        signature = services.verifier.signature_for(account_id)
        assert services.verifier.confirm_email(account_id, signature).email_verified is True
        assert services.verifier.confirm_email(account_id, signature).email_verified is True
        assert services.store.get_account_by_id(account_id).email_verified is True

    def test_tampered_signature(self, services):
        account_id = make_account(services, "a@x.com", email_verified=False)
        with pytest.raises(NotFoundError):
            services.verifier.confirm_email(account_id, "0" * 64)
        assert services.store.get_account_by_id(account_id).email_verified is False

    def test_unknown_account_with_valid_signature(self, services):
        with pytest.raises(NotFoundError):
            services.verifier.confirm_email(999, services.verifier.signature_for(999))

    def test_signature_is_per_account(self, services):
        assert services.verifier.signature_for(1) != services.verifier.signature_for(2)

    def test_resend(self, services):
        account_id = make_account(services, "a@x.com", email_verified=False)
        asyncio.run(services.verifier.resend_verification_email("a@x.com"))
        (_, body), = services.sink.to("a@x.com")
        assert services.verifier.verification_link(account_id) in body

    def test_resend_failure(self, services):
        make_account(services, "a@x.com", email_verified=False)
        services.sink.fail.add("a@x.com")
        with pytest.raises(DependencyFailure):
            asyncio.run(services.verifier.resend_verification_email("a@x.com"))


class TestReviewQueue:
    def test_pending_requests_are_annotated(self, services):
        account_id = make_account(services, "a@x.com", verified=False)
        services.store.upsert_verification_request(account_id, "https://files/a.png")
        (review,) = services.verifier.pending_requests()
        assert review.account.email == "a@x.com"
        assert review.account.kakao_talk_id == "kt-a"
        assert review.role_name == "Member"

    def test_approve_twice(self, services):
        account_id = make_account(services, "a@x.com", verified=False)
        request_id = services.store.upsert_verification_request(account_id, "https://files/a.png")
        assert services.verifier.approve(request_id).verified is True
        with pytest.raises(NotFoundError):
            services.verifier.approve(request_id)
        assert services.store.get_account_by_id(account_id).verified is True

    def test_deny_leaves_account_untouched(self, services):
        account_id = make_account(services, "a@x.com", verified=False)
        request_id = services.store.upsert_verification_request(account_id, "https://files/a.png")
        assert services.verifier.deny(request_id).id == account_id
        assert services.store.get_account_by_id(account_id).verified is False
        assert services.store.list_verification_requests() == []
        with pytest.raises(NotFoundError):
            services.verifier.deny(request_id)

    def test_denial_notice_carries_reason(self, services):
        asyncio.run(services.verifier.notify_denied("a@x.com", "Document is blurry"))
        (_, body), = services.sink.to("a@x.com")
        assert "Document is blurry" in body

    def test_notification_failure_is_swallowed(self, services):
        services.sink.fail.add("a@x.com")
        asyncio.run(services.verifier.notify_approved("a@x.com"))
        assert services.sink.sent == []


_DOCUMENT_URL = re.compile(r"^https://files\.test/uploads/verifications/[0-9a-f]{16}/id\.png$")


def _stored_bytes(services, url: str) -> bytes:
    rel = url.removeprefix("https://files.test/uploads/")
    return (services.blobs.root / rel).read_bytes()


class TestDocuments:
    def test_anonymous_upload_returns_url_only(self, services):
        url, request_id = asyncio.run(services.verifier.submit_document("id.png", b"png-bytes"))
        assert _DOCUMENT_URL.match(url)
        assert _stored_bytes(services, url) == b"png-bytes"
        assert request_id is None
        assert services.store.list_verification_requests() == []

    def test_upload_with_session_files_request(self, services):
        make_account(services, "a@x.com", verified=False)
        identity = _identity(services, "a@x.com")
        url, request_id = asyncio.run(services.verifier.submit_document("id.png", b"png-bytes", identity))
        assert services.store.get_verification_request(request_id).file_url == url

    def test_same_name_never_overwrites_another_document(self, services):
        make_account(services, "a@x.com", verified=False)
        identity = _identity(services, "a@x.com")
        first, request_id = asyncio.run(services.verifier.submit_document("id.png", b"mine", identity))
        second, _ = asyncio.run(services.verifier.submit_document("id.png", b"someone else"))
        assert first != second
        assert _stored_bytes(services, first) == b"mine"
        assert services.store.get_verification_request(request_id).file_url == first

    def test_empty_upload(self, services):
        with pytest.raises(PreconditionError):
            asyncio.run(services.verifier.submit_document("id.png", b""))

    def test_key_escaping_root(self, services):
        with pytest.raises(PreconditionError):
            asyncio.run(services.verifier.submit_document("../../etc", b"x"))

    @pytest.mark.parametrize("file_name", [".", "..", "sub/id.png", "sub\\id.png"])
    def test_file_name_must_be_a_plain_name(self, services, file_name):
        with pytest.raises(PreconditionError, match="Invalid file name"):
            asyncio.run(services.verifier.submit_document(file_name, b"x"))

    def test_rejected_dot_name_leaves_uploads_working(self, services):
        with pytest.raises(PreconditionError):
            asyncio.run(services.verifier.submit_document(".", b"x"))
        assert not (services.blobs.root / "verifications").is_file()
        url, _ = asyncio.run(services.verifier.submit_document("id.png", b"png-bytes"))
        assert _stored_bytes(services, url) == b"png-bytes"
