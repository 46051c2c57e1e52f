import pytest
from datetime import datetime, timedelta, UTC
from jose import jwt

from reservapp.config import settings
from reservapp.core.exceptions import (
    ExpiredTokenError,
    InvalidTokenError,
    MalformedClaimError,
    MissingTokenError,
    UnauthorizedException,
)
from reservapp.core.security import (
    create_access_token,
    hash_password,
    verify_authorization_header,
    verify_password,
    verify_token,
)
from tests.conftest import create_test_token


def _encode(payload: dict, key: str | None = None) -> str:
    return jwt.encode(payload, key or settings.SECRET_KEY, algorithm="HS256")


class TestVerifyToken:
    """Decoding and validating bearer tokens"""

    def test_issued_token_round_trip(self):
        token = create_access_token("user-1", "guest@example.com", "MANAGER")
        claim = verify_token(token)

        assert claim.subject_id == "user-1"
        assert claim.email == "guest@example.com"
        assert claim.role == "MANAGER"
        assert claim.expires_at > datetime.now(UTC)
        assert claim.issued_at <= claim.expires_at

    def test_default_lifetime_is_seven_days(self):
        claim = verify_token(create_access_token("user-1", "a@example.com", "USER"))
        lifetime = claim.expires_at - claim.issued_at
        assert lifetime == timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    def test_claim_is_immutable(self):
        claim = verify_token(create_test_token())
        with pytest.raises(AttributeError):
            claim.role = "SUPER_ADMIN"

    def test_expired_token(self):
        with pytest.raises(ExpiredTokenError):
            verify_token(create_test_token(expired=True))

    def test_wrong_signature_is_invalid_not_expired(self):
        token = _encode(
            {
                "sub": "u",
                "email": "e@example.com",
                "role": "USER",
                "exp": datetime.now(UTC) + timedelta(minutes=5),
            },
            key="wrong-secret-key",
        )
        with pytest.raises(InvalidTokenError):
            verify_token(token)

    def test_garbage_token(self):
        with pytest.raises(InvalidTokenError):
            verify_token("not-a-valid-jwt-token")

    @pytest.mark.parametrize("claim_name", ["sub", "email", "role"])
    def test_missing_required_claim(self, claim_name):
        payload = {
            "sub": "u",
            "email": "e@example.com",
            "role": "USER",
            "exp": datetime.now(UTC) + timedelta(minutes=5),
        }
        del payload[claim_name]
        with pytest.raises(MalformedClaimError) as exc_info:
            verify_token(_encode(payload))
        assert claim_name in str(exc_info.value)

    def test_missing_expiration_is_malformed(self):
        token = _encode({"sub": "u", "email": "e@example.com", "role": "USER"})
        with pytest.raises(MalformedClaimError):
            verify_token(token)

    def test_unknown_role_still_verifies(self):
        claim = verify_token(create_test_token(role="JANITOR"))
        assert claim.role == "JANITOR"

    def test_all_verification_errors_are_unauthorized(self):
        for error in (MissingTokenError, InvalidTokenError, ExpiredTokenError, MalformedClaimError):
            assert issubclass(error, UnauthorizedException)


class TestAuthorizationHeader:
    @pytest.mark.parametrize("header", [None, "", "Basic abc123", "bearer abc", "Token abc"])
    def test_missing_or_wrong_scheme(self, header):
        with pytest.raises(MissingTokenError):
            verify_authorization_header(header)

    def test_empty_bearer_token(self):
        with pytest.raises(MissingTokenError):
            verify_authorization_header("Bearer    ")

    def test_valid_bearer(self):
        claim = verify_authorization_header(f"Bearer {create_test_token(user_id='abc')}")
        assert claim.subject_id == "abc"


def test_password_hashing():
    password_hash = hash_password("s3cret-pass")
    assert password_hash != "s3cret-pass"
    assert verify_password("s3cret-pass", password_hash)
    assert not verify_password("other-pass", password_hash)
