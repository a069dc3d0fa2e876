"""Service-level tests for auth/lifecycle.py -- signup and account removal.

Covers:
- signup: compensating delete when the email is rejected, the transport
  fails or storing credentials fails; password usable on return; initial
  verification request
- account removal permissions
"""

import asyncio

import pytest

from auth.errors import (
    AuthorizationError,
    ConflictError,
    DependencyFailure,
    NotFoundError,
    PreconditionError,
)
from auth.models import Account, SessionIdentity
from conftest import make_account


def _identity(services, email) -> SessionIdentity:
    return SessionIdentity.from_account(services.store.get_account_by_email(email))


class TestSignUp:
    def _draft(self, email="new@x.com") -> Account:
        return Account(name="New Member", email=email, role_id=0, year_of_birth=2002)

    def test_signup_creates_unverified_account_with_usable_password(self, services):
        account = asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Member"))
        assert account.email_verified is False
        assert account.verified is False
        salt = services.store.get_salt(account.id)
        assert services.hasher.verify("p1", salt.value, account.password_hash)
        (_, body), = services.sink.to("new@x.com")
        assert services.verifier.verification_link(account.id) in body

    def test_signup_with_document_url_files_request(self, services):
        account = asyncio.run(
            services.lifecycle.sign_up(self._draft(), "p1", "Member", verification_file_url="https://files/doc.png")
        )
        (request,) = services.store.list_verification_requests()
        assert request.account_id == account.id

    def test_rejected_email_rolls_back(self, services):
        services.sink.reject.add("new@x.com")
        with pytest.raises(DependencyFailure, match="Invalid email is used."):
            asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Member"))
        assert services.store.count_accounts() == 0

    def test_transport_failure_rolls_back(self, services):
        services.sink.fail.add("new@x.com")
        with pytest.raises(DependencyFailure):
            asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Member"))
        assert services.store.get_account_by_email("new@x.com") is None

    @pytest.mark.parametrize("error", [ValueError("bad digest"), RuntimeError("thread pool shut down")])
    def test_credential_failure_rolls_back(self, services, monkeypatch, error):
        async def failing_set_password(account_id, password):
            raise error

        monkeypatch.setattr(services.authenticator, "set_password", failing_set_password)
        with pytest.raises(DependencyFailure):
            asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Member"))
        assert services.store.count_accounts() == 0
        assert services.store.get_account_by_email("new@x.com") is None

    def test_unknown_role(self, services):
        with pytest.raises(PreconditionError):
            asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Wizard"))
        assert services.store.count_accounts() == 0

    def test_admin_role_cannot_self_register(self, services):
        with pytest.raises(PreconditionError):
            asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Admin"))

    def test_duplicate_email(self, services):
        make_account(services, "new@x.com")
        with pytest.raises(ConflictError):
            asyncio.run(services.lifecycle.sign_up(self._draft(), "p1", "Member"))


class TestRemoveAccount:
    def test_member_removes_self_and_session_ends(self, services):
        account_id = make_account(services, "a@x.com")
        session = {"identity": {"id": account_id}}
        services.lifecycle.remove_account(session, _identity(services, "a@x.com"))
        assert services.store.get_account_by_id(account_id) is None
        assert session == {}

    def test_member_cannot_remove_others(self, services):
        make_account(services, "a@x.com")
        other = make_account(services, "b@x.com")
        with pytest.raises(AuthorizationError):
            services.lifecycle.remove_account({}, _identity(services, "a@x.com"), "b@x.com")
        assert services.store.get_account_by_id(other) is not None

    def test_member_probe_of_missing_email_is_unauthorized(self, services):
        make_account(services, "a@x.com")
        with pytest.raises(AuthorizationError):
            services.lifecycle.remove_account({}, _identity(services, "a@x.com"), "ghost@x.com")

    def test_admin_removes_anyone(self, services):
        make_account(services, "admin@x.com", role="Admin")
        other = make_account(services, "b@x.com")
        session: dict = {"identity": {}}
        services.lifecycle.remove_account(session, _identity(services, "admin@x.com"), "b@x.com")
        assert services.store.get_account_by_id(other) is None
        assert session == {"identity": {}}

    def test_admin_missing_email(self, services):
        make_account(services, "admin@x.com", role="Admin")
        with pytest.raises(NotFoundError):
            services.lifecycle.remove_account({}, _identity(services, "admin@x.com"), "ghost@x.com")
