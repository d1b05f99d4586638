"""
Tests for registration, email verification and login.

These tests verify:
  - Users and agencies register with per-kind email uniqueness
  - Weak passwords are rejected with every violated rule listed
  - Registration without required verification returns tokens immediately
  - Login is refused until the email is verified
  - Wrong password and unknown email produce the same 401 (anti-enumeration)
  - Non-ACTIVE statuses are refused with their specific errors
  - Refresh rotation is single-use
  - Profile and activity endpoints reflect the account
"""

import uuid

import pytest
from sqlalchemy import select, update

from authcore.config import settings
from authcore.models.account import Account, AccountKind, AccountStatus
from authcore.models.activity_log import ActivityLog
from authcore.services import token_service


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegister:
    """Tests for POST /auth/register and /auth/register/agency."""

    async def test_register_user_requires_verification(self, client, notifier):
        """A new user gets no tokens yet and is sent an email verification code."""
        response = await client.post(
            "/auth/register",
            json={
                "email": "newuser@example.com",
                "password": "StrongPass99!",
                "firstName": "Jane",
                "lastName": "Doe",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["accountType"] == "user"
        assert data["emailVerificationRequired"] is True
        assert data["accessToken"] is None
        assert data["refreshToken"] is None
        uuid.UUID(data["userId"])

        # A verification code went out to the new address
        assert notifier.sent[-1].destination == "newuser@example.com"

    async def test_register_email_is_normalized(self, client):
        """The stored email is lower-cased."""
        response = await client.post(
            "/auth/register",
            json={
                "email": "Mixed.Case@Example.com",
                "password": "StrongPass99!",
                "firstName": "Jane",
                "lastName": "Doe",
            },
        )
        assert response.status_code == 201
        assert response.json()["email"] == "mixed.case@example.com"

    async def test_register_issues_tokens_when_verification_disabled(self, client, monkeypatch):
        """Without required verification, registration returns a usable token pair."""
        monkeypatch.setattr(settings, "REQUIRE_EMAIL_VERIFICATION", False)

        response = await client.post(
            "/auth/register",
            json={
                "email": "instant@example.com",
                "password": "StrongPass99!",
                "firstName": "Jane",
                "lastName": "Doe",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["emailVerificationRequired"] is False
        assert data["accessToken"]
        assert data["refreshToken"]
        assert data["tokenType"] == "Bearer"

        claims = token_service.verify_access(data["accessToken"])
        assert claims.subject == uuid.UUID(data["userId"])
        assert claims.account_kind == AccountKind.USER

    async def test_register_duplicate_email(self, client, register_account):
        """A second user with the same email is a 409 conflict."""
        await register_account(client, "duplicate@example.com", verify=False)

        response = await client.post(
            "/auth/register",
            json={
                "email": "duplicate@example.com",
                "password": "StrongPass99!",
                "firstName": "Again",
                "lastName": "User",
            },
        )
        assert response.status_code == 409
        assert response.json()["error_type"] == "conflict"

    async def test_register_duplicate_phone(self, client, register_account):
        """A phone number already on another account is a 409 conflict."""
        await register_account(client, "phone1@example.com", verify=False, phone="+15550001111")

        response = await client.post(
            "/auth/register",
            json={
                "email": "phone2@example.com",
                "password": "StrongPass99!",
                "firstName": "Other",
                "lastName": "User",
                "phone": "+15550001111",
            },
        )
        assert response.status_code == 409

    async def test_same_email_allowed_for_user_and_agency(self, client, register_account):
        """Email uniqueness is per account kind."""
        user_id = await register_account(client, "shared@example.com", verify=False)
        agency_id = await register_account(client, "shared@example.com", kind="agency", verify=False)
        assert user_id != agency_id

    async def test_register_agency_stores_profile(self, client, register_account, login):
        """Agency profile fields are kept and returned by /auth/profile."""
        await register_account(
            client,
            "agency@example.com",
            kind="agency",
            agencyName="Blue Sky Tours",
            businessType="tour_operator",
            description="Guided tours",
        )
        login_response = await login(client, "agency@example.com", kind="agency")
        assert login_response.status_code == 200
        assert login_response.json()["accountType"] == "agency"

        token = login_response.json()["accessToken"]
        profile = await client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})
        assert profile.status_code == 200
        data = profile.json()
        assert data["accountType"] == "agency"
        assert data["profile"]["agency_name"] == "Blue Sky Tours"
        assert data["profile"]["business_type"] == "tour_operator"

    async def test_register_weak_password_lists_all_violations(self, client):
        """Every failed password rule is reported at once."""
        response = await client.post(
            "/auth/register",
            json={
                "email": "weak@example.com",
                "password": "short",
                "firstName": "Weak",
                "lastName": "User",
            },
        )
        assert response.status_code == 422
        data = response.json()
        assert data["error_type"] == "weak_credential"
        # too short, no uppercase, no digit, no symbol
        assert len(data["errors"]) == 4

    async def test_register_invalid_email(self, client):
        """A malformed email fails request validation."""
        response = await client.post(
            "/auth/register",
            json={
                "email": "not-an-email",
                "password": "StrongPass99!",
                "firstName": "Test",
                "lastName": "User",
            },
        )
        assert response.status_code == 422

    async def test_register_missing_fields(self, client):
        """A body without the required fields fails request validation."""
        response = await client.post("/auth/register", json={"email": "missing@example.com"})
        assert response.status_code == 422

    async def test_register_survives_delivery_failure(self, client, failing_notifier):
        """Registration succeeds even when the verification code cannot be delivered."""
        response = await client.post(
            "/auth/register",
            json={
                "email": "undeliverable@example.com",
                "password": "StrongPass99!",
                "firstName": "Test",
                "lastName": "User",
            },
        )
        assert response.status_code == 201
        assert failing_notifier.attempts == 1


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

class TestEmailVerification:

    async def test_login_refused_until_verified(self, client, register_account, login, notifier):
        """Login is refused with email_not_verified until the code is confirmed."""
        await register_account(client, "pending@example.com", verify=False)

        response = await login(client, "pending@example.com")
        assert response.status_code == 403
        assert response.json()["error_type"] == "email_not_verified"

        verify = await client.post(
            "/auth/verify-email",
            json={"email": "pending@example.com", "code": notifier.last_code("pending@example.com")},
        )
        assert verify.status_code == 200

        response = await login(client, "pending@example.com")
        assert response.status_code == 200

    async def test_wrong_code_rejected(self, client, register_account, notifier):
        """A code that was not sent is rejected."""
        await register_account(client, "wrongcode@example.com", verify=False)
        real = notifier.last_code("wrongcode@example.com")
        wrong = "100000" if real != "100000" else "100001"

        response = await client.post(
            "/auth/verify-email",
            json={"email": "wrongcode@example.com", "code": wrong},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_or_expired_otp"

    async def test_code_cannot_be_reused(self, client, register_account, notifier):
        """A verification code works only once."""
        await register_account(client, "reuse@example.com", verify=False)
        code = notifier.last_code("reuse@example.com")
        body = {"email": "reuse@example.com", "code": code}

        assert (await client.post("/auth/verify-email", json=body)).status_code == 200
        assert (await client.post("/auth/verify-email", json=body)).status_code == 400

    async def test_resend_is_uniform(self, client, register_account, notifier):
        """Known and unknown emails get the same resend response."""
        await register_account(client, "resend@example.com", verify=False)
        sent_before = len(notifier.sent)

        known = await client.post("/auth/resend-verification", json={"email": "resend@example.com"})
        unknown = await client.post("/auth/resend-verification", json={"email": "ghost@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(notifier.sent) == sent_before + 1


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for POST /auth/login."""

    async def test_login_success(self, client, register_account, login):
        """Valid credentials return a token pair for the account."""
        account_id = await register_account(client, "login@example.com")

        response = await login(client, "login@example.com")
        assert response.status_code == 200
        data = response.json()
        assert data["tokenType"] == "Bearer"
        assert data["mfaRequired"] is False
        assert data["userId"] == account_id
        assert data["accountType"] == "user"
        assert data["expiresIn"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

        claims = token_service.verify_access(data["accessToken"])
        assert claims.subject == uuid.UUID(account_id)
        assert claims.account_kind == AccountKind.USER

    async def test_login_wrong_password(self, client, register_account, login):
        """A wrong password is a 401 with a Bearer challenge."""
        await register_account(client, "wrongpw@example.com")

        response = await login(client, "wrongpw@example.com", password="WrongPass99!")
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_login_unknown_email_same_error(self, client, register_account, login):
        """An unknown email fails exactly like a wrong password."""
        await register_account(client, "known@example.com")

        wrong_password = await login(client, "known@example.com", password="WrongPass99!")
        unknown = await login(client, "nobody@example.com")

        assert unknown.status_code == wrong_password.status_code == 401
        assert unknown.json() == wrong_password.json()

    async def test_login_wrong_account_kind(self, client, register_account, login):
        """A user's credentials do not open an agency account of the same email."""
        await register_account(client, "kinds@example.com")

        response = await login(client, "kinds@example.com", kind="agency")
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "status, error_type",
        [
            (AccountStatus.BLOCKED, "account_blocked"),
            (AccountStatus.DORMANT, "account_dormant"),
            (AccountStatus.SUSPENDED, "account_inactive"),
            (AccountStatus.CLOSED, "account_inactive"),
        ],
    )
    async def test_login_refused_for_inactive_status(
        self, client, register_account, login, session_factory, status, error_type
    ):
        """Each non-active status is refused with its own error type."""
        account_id = await register_account(client, "status@example.com")
        async with session_factory() as session:
            await session.execute(
                update(Account).where(Account.id == uuid.UUID(account_id)).values(status=status)
            )
            await session.commit()

        response = await login(client, "status@example.com")
        assert response.status_code == 403
        assert response.json()["error_type"] == error_type

    async def test_wrong_password_on_blocked_account_is_generic(
        self, client, register_account, login, session_factory
    ):
        """Status is only revealed after the password checks out."""
        account_id = await register_account(client, "blocked@example.com")
        async with session_factory() as session:
            await session.execute(
                update(Account)
                .where(Account.id == uuid.UUID(account_id))
                .values(status=AccountStatus.BLOCKED)
            )
            await session.commit()

        response = await login(client, "blocked@example.com", password="WrongPass99!")
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

class TestRefresh:
    """Tests for POST /auth/refresh."""

    async def test_refresh_returns_new_pair(self, auth_user):
        """Refreshing returns a different refresh token for the same account."""
        response = await auth_user.client.post(
            "/auth/refresh", json={"refreshToken": auth_user.refresh_token}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["refreshToken"] != auth_user.refresh_token
        assert data["userId"] == str(auth_user.account_id)

    async def test_refresh_token_is_single_use(self, auth_user):
        """A rotated refresh token is rejected; its replacement still works."""
        first = await auth_user.client.post(
            "/auth/refresh", json={"refreshToken": auth_user.refresh_token}
        )
        assert first.status_code == 200

        replay = await auth_user.client.post(
            "/auth/refresh", json={"refreshToken": auth_user.refresh_token}
        )
        assert replay.status_code == 401
        assert replay.json()["error_type"] == "invalid_token"

        # The replacement still works
        second = await auth_user.client.post(
            "/auth/refresh", json={"refreshToken": first.json()["refreshToken"]}
        )
        assert second.status_code == 200

    async def test_access_token_is_not_a_refresh_token(self, auth_user):
        """An access token cannot be used to refresh."""
        response = await auth_user.client.post(
            "/auth/refresh", json={"refreshToken": auth_user.access_token}
        )
        assert response.status_code == 401

    async def test_garbage_refresh_token(self, client):
        """A malformed refresh token is a 401."""
        response = await client.post("/auth/refresh", json={"refreshToken": "not.a.token"})
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Protected endpoints
# ---------------------------------------------------------------------------

class TestProtectedEndpoints:

    async def test_profile_requires_token(self, client):
        """The profile endpoint challenges anonymous requests."""
        response = await client.get("/auth/profile")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_profile_rejects_refresh_token_as_bearer(self, auth_user):
        """A refresh token is not accepted as a bearer token."""
        response = await auth_user.client.get(
            "/auth/profile", headers={"Authorization": f"Bearer {auth_user.refresh_token}"}
        )
        assert response.status_code == 401

    async def test_profile(self, auth_user):
        """The profile reflects the verified, logged-in account."""
        response = await auth_user.client.get("/auth/profile")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(auth_user.account_id)
        assert data["email"] == auth_user.email
        assert data["emailVerified"] is True
        assert data["mfaEnabled"] is False
        assert data["status"] == "ACTIVE"
        assert data["lastLoginAt"] is not None
        assert data["profile"]["first_name"] == "Test"

    async def test_activity_log_records_login(self, auth_user):
        """Registration, verification and login appear in the activity log."""
        response = await auth_user.client.get("/auth/activity")
        assert response.status_code == 200
        actions = [entry["action"] for entry in response.json()]
        assert "login" in actions
        assert "register" in actions
        assert "email_verified" in actions

    async def test_failed_login_is_logged(self, auth_user, login, client):
        """A failed login on a known account is logged against it."""
        await login(client, auth_user.email, password="WrongPass99!")

        response = await auth_user.client.get("/auth/activity")
        failures = [e for e in response.json() if e["action"] == "login" and not e["success"]]
        assert len(failures) == 1
        assert failures[0]["errorMessage"] == "Invalid credentials"
        # Known account: no identifier copy in details
        assert failures[0]["details"] == {}

    async def test_failed_login_for_unknown_email_keeps_masked_identifier(
        self, client, login, session_factory
    ):
        """A failure with no matching account is recorded with a masked identifier only."""
        await login(client, "Ghost.User@Example.com", password="WrongPass99!")

        async with session_factory() as session:
            result = await session.execute(
                select(ActivityLog).where(ActivityLog.account_id.is_(None), ActivityLog.action == "login")
            )
            entries = list(result.scalars().all())

        assert len(entries) == 1
        assert entries[0].success is False
        assert entries[0].account_kind == AccountKind.USER
        assert entries[0].details == {"identifier": "gh***@example.com"}

    async def test_token_of_deactivated_account_rejected(self, auth_user, session_factory):
        """A valid token stops working once the account is suspended."""
        async with session_factory() as session:
            await session.execute(
                update(Account)
                .where(Account.id == auth_user.account_id)
                .values(status=AccountStatus.SUSPENDED)
            )
            await session.commit()

        response = await auth_user.client.get("/auth/profile")
        assert response.status_code == 401


class TestPhoneVerification:

    async def test_send_and_verify_phone(self, auth_user, notifier):
        """A phone code sent to a new number verifies and stores it."""
        sent = await auth_user.client.post(
            "/auth/phone/send-verification", json={"phone": "+15557654321"}
        )
        assert sent.status_code == 200

        code = notifier.last_code("+15557654321")
        verified = await auth_user.client.post("/auth/phone/verify", json={"code": code})
        assert verified.status_code == 200

        profile = (await auth_user.client.get("/auth/profile")).json()
        assert profile["phone"] == "+15557654321"
        assert profile["phoneVerified"] is True

    async def test_send_without_phone_on_file(self, auth_user):
        """Sending a code with no phone given or on file is a 404."""
        response = await auth_user.client.post("/auth/phone/send-verification", json={})
        assert response.status_code == 404

    async def test_phone_taken_by_other_account(self, auth_user, client, register_account):
        """A phone number owned by another account is a 409 conflict."""
        await register_account(client, "hasphone@example.com", verify=False, phone="+15550009999")

        response = await auth_user.client.post(
            "/auth/phone/send-verification", json={"phone": "+15550009999"}
        )
        assert response.status_code == 409
