from typing import Callable

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from reservapp.config import settings
from reservapp.core.exceptions import UnauthorizedException
from reservapp.core.permissions import require_permission
from reservapp.core.security import Claim, verify_authorization_header
from reservapp.database import get_db
from reservapp.models.user import User
from reservapp.repositories.user_repository import UserRepository
from reservapp.services.gateway import PaymentGateway, StripeGateway


async def get_current_claim(authorization: str | None = Header(default=None)) -> Claim:
    """
    FastAPI dependency that verifies the bearer token.

    Flow:
    1. Read the Authorization header
    2. Require the 'Bearer ' prefix and a non-empty token
    3. Validate the JWT with the shared SECRET_KEY
    4. Return the decoded claim (sub, email, role, iat, exp)

    Verification errors are UnauthorizedException subclasses and are
    rendered as 401 by the application's exception handlers.
    """
    return verify_authorization_header(authorization)


async def get_current_user(
    claim: Claim = Depends(get_current_claim), db: Session = Depends(get_db)
) -> User:
    """Load the active user row behind a verified claim."""
    user = UserRepository(db).get_by_id(claim.subject_id)
    if not user or not user.is_active:
        raise UnauthorizedException("User not found or inactive")
    return user


def require(module: str, action: str) -> Callable:
    """
    Build a dependency that admits only roles holding ``module:action``.

    Usage:
        @router.post("/refund")
        async def refund(claim: Claim = Depends(require("payments", "refund"))):
            ...
    """

    async def dependency(claim: Claim = Depends(get_current_claim)) -> Claim:
        require_permission(claim.role, module, action)
        return claim

    return dependency


def get_payment_gateway() -> PaymentGateway:
    """Payment gateway dependency; tests override it with a fake."""
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        api_version=settings.STRIPE_API_VERSION,
    )
