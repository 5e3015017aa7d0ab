import logging
from datetime import datetime

from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.passwords import hash_password, validate_password_strength, verify_password
from backend.core.errors import AuthenticationError, BadRequestError, DuplicateResourceError, NotFoundError
from backend.models.user import User
from backend.schemas.auth import ChangePasswordRequest, LoginRequest, ProfileUpdate, RegisterRequest

logger = logging.getLogger(__name__)


def _check_password(password: str) -> None:
    check = validate_password_strength(password)
    if not check.is_valid:
        raise BadRequestError('; '.join(check.errors))


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def login(self, data: LoginRequest) -> tuple[User, dict]:
        user = self.db.query(User).filter(User.email == data.email).first()
        if user is None or not verify_password(data.password, user.hashed_password):
            logger.warning('Failed login attempt for %s', data.email)
            raise AuthenticationError('Invalid email or password', code='INVALID_CREDENTIALS')
        if not user.is_active:
            raise AuthenticationError('User is inactive', code='USER_INACTIVE')

        user.last_login_at = datetime.now()
        self.db.commit()
        self.db.refresh(user)

        logger.info('User logged in: %s', user.email)
        return user, jwt_handler.create_token_pair(user)

    def register(self, data: RegisterRequest) -> User:
        if self.db.query(User.id).filter(User.email == data.email).first() is not None:
            raise DuplicateResourceError('A user with this email already exists')
        _check_password(data.password)

        user = User(
            email=data.email,
            hashed_password=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            role=data.role,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info('User registered: %s (%s)', user.email, user.role.value)
        return user

    def refresh(self, refresh_token: str) -> tuple[User, dict]:
        payload = jwt_handler.decode_refresh_token(refresh_token)
        subject = payload.get('sub')
        if not subject or not str(subject).isdigit():
            raise AuthenticationError('Invalid refresh token')

        user = self.db.get(User, int(subject))
        if user is None or not user.is_active:
            raise AuthenticationError('Invalid refresh token')
        if payload.get('token_version') != user.token_version:
            raise AuthenticationError('Refresh token has been revoked')

        return user, jwt_handler.create_token_pair(user)

    def logout(self, user: User) -> None:
        """Revoke every refresh token issued to ``user`` so far."""
        user.token_version = (user.token_version or 0) + 1
        self.db.commit()
        logger.info('User logged out: %s', user.email)

    def change_password(self, user: User, data: ChangePasswordRequest) -> None:
        if not verify_password(data.current_password, user.hashed_password):
            raise BadRequestError('Current password is incorrect', code='INVALID_CREDENTIALS')
        if data.current_password == data.new_password:
            raise BadRequestError('New password must be different from the current one')
        _check_password(data.new_password)

        user.hashed_password = hash_password(data.new_password)
        user.token_version = (user.token_version or 0) + 1
        self.db.commit()
        logger.info('Password changed for %s', user.email)

    def get_profile(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError('User not found', code='USER_NOT_FOUND')
        return user

    def update_profile(self, user_id: int, data: ProfileUpdate) -> User:
        user = self.get_profile(user_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if 'email' in changes:
            changes['email'] = changes['email'].strip().lower()
            taken = (
                self.db.query(User.id)
                .filter(User.email == changes['email'], User.id != user.id)
                .first()
            )
            if taken is not None:
                raise DuplicateResourceError('A user with this email already exists')

        for field, value in changes.items():
            setattr(user, field, value.strip() if isinstance(value, str) else value)

        self.db.commit()
        self.db.refresh(user)
        logger.info('Profile updated: %s', user.email)
        return user
