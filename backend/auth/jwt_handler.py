from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config
from backend.core.errors import AuthenticationError


def create_access_token(user, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": getattr(user.role, "value", user.role),
        "first_name": user.first_name,
        "last_name": user.last_name,
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_AUDIENCE,
        "exp": now + timedelta(minutes=expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def create_refresh_token(user) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "token_version": user.token_version or 0,
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_REFRESH_AUDIENCE,
        "exp": now + timedelta(days=config.JWT_REFRESH_EXPIRES_DAYS),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_REFRESH_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def create_token_pair(user) -> dict:
    return {
        "access_token": create_access_token(user),
        "refresh_token": create_refresh_token(user),
        "token_type": "bearer",
        "expires_in": config.JWT_EXPIRES_MINUTES * 60,
    }


def _decode(token: str, secret: str, audience: str) -> dict:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[config.JWT_ALGORITHM],
            audience=audience,
            issuer=config.JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc


def decode_access_token(token: str) -> dict:
    return _decode(token, config.JWT_SECRET_KEY, config.JWT_AUDIENCE)


def decode_refresh_token(token: str) -> dict:
    return _decode(token, config.JWT_REFRESH_SECRET_KEY, config.JWT_REFRESH_AUDIENCE)
