from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from reservapp.config import settings
from reservapp.core.exceptions import (
    ExpiredTokenError,
    InvalidTokenError,
    MalformedClaimError,
    MissingTokenError,
)

BEARER_PREFIX = "Bearer "
REQUIRED_CLAIMS = ("sub", "email", "role")

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class Claim:
    """
    Identity carried by a verified access token.

    ``role`` is kept as the raw string from the token; an unknown role is
    not a verification error, it simply authorizes nothing.
    """

    subject_id: str
    email: str
    role: str
    issued_at: datetime | None
    expires_at: datetime


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return _pwd_context.verify(plain_password, password_hash)


def create_access_token(
    subject_id: str, email: str, role: str, expires_delta: timedelta | None = None
) -> str:
    """
    Issue a signed access token at login.

    Args:
        subject_id: User ID stored in the 'sub' claim
        email: User e-mail
        role: User role value
        expires_delta: Lifetime override, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(UTC)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "sub": subject_id,
        "email": email,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + expires_delta).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and validate JWT token using shared SECRET_KEY.

    Args:
        token: JWT access token from Authorization header

    Returns:
        Decoded token payload

    Raises:
        ExpiredTokenError: If 'exp' has passed
        InvalidTokenError: If signature or encoding is invalid
        MalformedClaimError: If a required claim is missing
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise ExpiredTokenError("Token has expired") from e
    except JWTError as e:
        raise InvalidTokenError(f"Invalid token: {str(e)}") from e

    # jose only checks expiration when the claim is present
    if payload.get("exp") is None:
        raise MalformedClaimError("Token missing expiration")

    missing = [name for name in REQUIRED_CLAIMS if not payload.get(name)]
    if missing:
        raise MalformedClaimError(f"Token missing required claims: {', '.join(missing)}")

    return payload


def verify_token(token: str) -> Claim:
    payload = decode_jwt(token)
    issued_at = payload.get("iat")
    return Claim(
        subject_id=str(payload["sub"]),
        email=payload["email"],
        role=payload["role"],
        issued_at=datetime.fromtimestamp(issued_at, UTC) if issued_at is not None else None,
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
    )


def verify_authorization_header(raw_header_value: str | None) -> Claim:
    """
    Verify an ``Authorization`` header value and return its claim.

    Raises:
        MissingTokenError: If the header is absent, lacks the Bearer prefix or is empty
        InvalidTokenError, ExpiredTokenError, MalformedClaimError: see decode_jwt
    """
    if not raw_header_value or not raw_header_value.startswith(BEARER_PREFIX):
        raise MissingTokenError("Authorization token required")

    token = raw_header_value[len(BEARER_PREFIX):].strip()
    if not token:
        raise MissingTokenError("Authorization token is empty")

    return verify_token(token)
