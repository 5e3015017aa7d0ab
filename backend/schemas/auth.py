from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from backend.models.user import UserRole
from backend.schemas.common import CamelModel


def _normalize_email(value: str) -> str:
    return value.strip().lower()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)

    normalize_email = field_validator('email', mode='before')(_normalize_email)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    role: UserRole = UserRole.SECRETARY

    normalize_email = field_validator('email', mode='before')(_normalize_email)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str


class ProfileUpdate(CamelModel):
    first_name: str | None = Field(default=None, min_length=2, max_length=50)
    last_name: str | None = Field(default=None, min_length=2, max_length=50)
    email: EmailStr | None = None


class UserResponse(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'
    expires_in: int


class AuthResponse(TokenPair):
    user: UserResponse
