"""
Authentication API endpoints.

Registration creates a pending account; login is refused until an
administrator approves it.
"""

from fastapi import APIRouter, Depends, status

from incident_backend.app.core.dependencies import get_current_session, get_user_service
from incident_backend.app.core.exceptions import ResourceNotFoundError
from incident_backend.app.core.jwt import create_access_token
from incident_backend.app.core.permissions import CallerSession
from incident_backend.app.schemas.auth import TokenResponse, UserLogin, UserRegister, UserResponse
from incident_backend.app.services.users import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserRegister, users: UserService = Depends(get_user_service)):
    """
    Register a new account.

    The account starts in the pending role and cannot log in until approved.
    """
    account = await users.register(user_data.username, user_data.password)
    return UserResponse.model_validate(account)


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, users: UserService = Depends(get_user_service)):
    """Login and return a JWT token. Pending accounts get 403."""
    account = await users.authenticate(credentials.username, credentials.password)
    access_token = create_access_token(data={"sub": account.username, "user_id": account.id})
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=account.id,
        username=account.username,
        role=account.role,
        is_owner=account.is_owner,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(
    session: CallerSession = Depends(get_current_session),
    users: UserService = Depends(get_user_service),
):
    account = await users.backend.get_user(session.user_id)
    if account is None:
        raise ResourceNotFoundError("User", session.user_id)
    return UserResponse.model_validate(account)
