import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reservapp.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
)
from reservapp.core.permissions import can_assign_role
from reservapp.core.security import Claim, create_access_token, hash_password, verify_password
from reservapp.models.role import UserRole
from reservapp.models.user import User
from reservapp.repositories.user_repository import UserRepository
from reservapp.schemas.auth_schemas import RegisterRequest

logger = logging.getLogger(__name__)


class AuthService:
    """Registration, login and role management"""

    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository(db)

    def register(self, data: RegisterRequest) -> tuple[str, User]:
        """
        Create a USER account and issue its first token.

        Raises:
            ConflictException: If the e-mail is already registered
        """
        email = data.email.lower()
        if self.user_repo.get_by_email(email):
            raise ConflictException("Email already registered")

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            role=UserRole.USER,
        )
        try:
            user = self.user_repo.create(user)
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictException("Email already registered") from e

        logger.info("Registered user %s", user.id)
        return self._issue_token(user), user

    def login(self, email: str, password: str) -> tuple[str, User]:
        """
        Raises:
            UnauthorizedException: If credentials are wrong or the account is inactive
        """
        user = self.user_repo.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email.lower())
            raise UnauthorizedException("Invalid email or password")
        if not user.is_active:
            raise UnauthorizedException("Account is disabled")
        return self._issue_token(user), user

    def change_role(self, user_id: str, new_role: UserRole, claim: Claim) -> User:
        """
        Change another user's role.

        The caller must be allowed to assign both the user's current role
        and the new one, so nobody can demote a peer or a superior.

        Raises:
            NotFoundException: If the user doesn't exist
            ForbiddenException: If the caller may not make this change
        """
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundException("User not found")
        if user.id == claim.subject_id:
            raise ForbiddenException("Cannot change your own role")
        if not (can_assign_role(claim.role, user.role) and can_assign_role(claim.role, new_role)):
            raise ForbiddenException(f"Not allowed to assign role {new_role.value}")

        previous = user.role
        user.role = new_role
        user = self.user_repo.update(user)
        logger.info(
            "User %s changed role of %s from %s to %s",
            claim.subject_id,
            user.id,
            previous.value,
            new_role.value,
        )
        return user

    @staticmethod
    def _issue_token(user: User) -> str:
        return create_access_token(subject_id=user.id, email=user.email, role=user.role.value)
