"""User profile routes (protected)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.auth.dependencies import get_current_user
from highway_notes.db.engine import get_db
from highway_notes.db.models import User
from highway_notes.schemas.common import MessageResponse
from highway_notes.schemas.user import ProfileUpdate, UserPublic, UserResponse
from highway_notes.services.user_service import UserService

router = APIRouter(prefix="/user")


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).update_profile(user, name=body.name)
    return UserResponse(
        message="Profile updated successfully",
        user=UserPublic.model_validate(user),
    )


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete the account and its notes. Outstanding tokens stop working."""
    await UserService(db).delete_account(user)
    return MessageResponse(message="Account deleted successfully")
