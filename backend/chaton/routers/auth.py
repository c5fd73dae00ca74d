"""
Authentication routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.user import (
    UserRegister,
    UserLogin,
    Token,
    UserProfile,
    ProfileUpdate,
    RefreshTokenRequest
)
from ..services.auth_service import AuthService
from ..services.chat_client import ClientRegistry
from ..utils.security import get_current_user
from ..models.user import User
from .chats import get_registry


router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/register", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserRegister, db: AsyncSession = Depends(get_db)):
    """Register a new user account."""
    auth_service = AuthService(db)

    try:
        return await auth_service.register(user_data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.post("/login", response_model=Token)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Login, go online and receive access tokens."""
    auth_service = AuthService(db)

    user = await auth_service.authenticate(login_data)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled"
        )

    await auth_service.mark_online(user)
    return auth_service.create_tokens(user)


@router.post("/refresh", response_model=Token)
async def refresh_token(request: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    """Refresh access token using refresh token."""
    auth_service = AuthService(db)

    try:
        return await auth_service.refresh_tokens(request.refresh_token)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )


@router.get("/me", response_model=UserProfile)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user profile."""
    return current_user


@router.put("/profile", response_model=UserProfile)
async def update_profile(
    updates: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: ClientRegistry = Depends(get_registry)
):
    """Update display name and photo."""
    user = await AuthService(db).update_profile(current_user, updates)

    if registry.get(user.id) is not None:
        registry.get_or_create(UserProfile.model_validate(user))
    return user


@router.post("/heartbeat", response_model=UserProfile)
async def heartbeat(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Keep the current user online for another presence window."""
    return await AuthService(db).heartbeat(current_user)


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: ClientRegistry = Depends(get_registry)
):
    """Go offline (best effort) and drop the chat surface."""
    await AuthService(db).logout(current_user.id)
    registry.discard(current_user.id)
    return {"message": "Signed out"}
