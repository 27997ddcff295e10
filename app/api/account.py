"""Account routes: registration and profile."""

from fastapi import APIRouter, Depends, status

from app.models.user import User
from app.services.auth.dependencies import get_current_user, get_user_directory
from app.services.auth.directory import UserDirectory
from app.services.auth_schemas import CreateUserInput, UserResponse


router = APIRouter(prefix="/account", tags=["account"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    data: CreateUserInput,
    directory: UserDirectory = Depends(get_user_directory),
) -> bool:
    """Register a new account. Does not log in."""
    await directory.create(data)
    return True


@router.get("/me", response_model=UserResponse)
async def find_profile(user: User = Depends(get_current_user)):
    """Profile of the authenticated user."""
    return user
