from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_admin
from backend.core.rate_limit import general_limiter, login_limiter, password_change_limiter, register_limiter
from backend.database import get_db
from backend.models.user import User
from backend.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UserResponse,
)
from backend.schemas.common import ApiResponse, MessageResponse
from backend.services.auth_service import AuthService

router = APIRouter(tags=['auth'], dependencies=[Depends(general_limiter)])


@router.post('/login', response_model=ApiResponse[AuthResponse], dependencies=[Depends(login_limiter)])
def login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user, tokens = AuthService(db).login(data)
    # Successful logins do not count against the login limit.
    login_limiter.reset(login_limiter.key_for(request))
    return ApiResponse[AuthResponse](
        message='Login successful',
        data=AuthResponse(**tokens, user=UserResponse.model_validate(user)),
    )


@router.post(
    '/register',
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin), Depends(register_limiter)],
)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    user = AuthService(db).register(data)
    return ApiResponse[UserResponse](message='User registered successfully', data=UserResponse.model_validate(user))


@router.post('/refresh', response_model=ApiResponse[TokenPair])
def refresh(data: RefreshRequest, db: Session = Depends(get_db)):
    _, tokens = AuthService(db).refresh(data.refresh_token)
    return ApiResponse[TokenPair](message='Token refreshed', data=TokenPair(**tokens))


@router.post('/logout', response_model=MessageResponse)
def logout(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    AuthService(db).logout(current_user)
    return MessageResponse(message='Logout successful')


@router.post('/change-password', response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    _: None = Depends(password_change_limiter),
    db: Session = Depends(get_db),
):
    AuthService(db).change_password(current_user, data)
    return MessageResponse(message='Password changed successfully')


@router.get('/profile', response_model=ApiResponse[UserResponse])
def get_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user = AuthService(db).get_profile(current_user.id)
    return ApiResponse[UserResponse](message='Profile retrieved', data=UserResponse.model_validate(user))


@router.put('/profile', response_model=ApiResponse[UserResponse])
def update_profile(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = AuthService(db).update_profile(current_user.id, data)
    return ApiResponse[UserResponse](message='Profile updated', data=UserResponse.model_validate(user))


@router.get('/validate', response_model=ApiResponse[UserResponse])
def validate_token(current_user: User = Depends(get_current_user)):
    return ApiResponse[UserResponse](message='Token is valid', data=UserResponse.model_validate(current_user))
