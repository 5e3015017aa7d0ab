"""User model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String

from backend.database import Base


class UserRole(str, enum.Enum):
    ADMIN = 'ADMIN'
    SECRETARY = 'SECRETARY'


STAFF_ROLES = (UserRole.ADMIN, UserRole.SECRETARY)


class User(Base):
    """Represents a staff member who can sign in to the system."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(Enum(UserRole, name='user_role'), nullable=False, default=UserRole.SECRETARY)
    is_active = Column(Boolean, nullable=False, default=True)
    # Bumped on logout and password change so outstanding refresh tokens stop working.
    token_version = Column(Integer, nullable=False, default=0)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'
