from sqlalchemy.orm import Session
from reservapp.models.user import User


class UserRepository:
    """Repository for User model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> User | None:
        """Lookup is case-insensitive; e-mails are stored lower-cased"""
        return self.db.query(User).filter(User.email == email.lower()).first()

    def create(self, user: User) -> User:
        """
        Create a new user.

        Raises:
            IntegrityError: If the e-mail is already registered
        """
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update(self, user: User) -> User:
        self.db.commit()
        self.db.refresh(user)
        return user
