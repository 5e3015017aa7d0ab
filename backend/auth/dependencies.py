from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core.errors import AuthenticationError, PermissionDeniedError
from backend.database import get_db
from backend.models.user import STAFF_ROLES, User, UserRole

security = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required", code="MISSING_TOKEN")

    payload = jwt_handler.decode_access_token(credentials.credentials)

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise AuthenticationError("Invalid token subject")

    user = db.get(User, int(subject))
    if user is None:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")
    if not user.is_active:
        raise AuthenticationError("User is inactive", code="USER_INACTIVE")

    # Rate limiters key on the authenticated user when one is present.
    request.state.user = user
    return user


def require_roles(*roles: UserRole):
    allowed = set(roles)

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise PermissionDeniedError("You do not have permission to access this resource")
        return current_user

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(*STAFF_ROLES)
