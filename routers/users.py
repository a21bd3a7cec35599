""" User router for account profile endpoints.
"""

import logfire

from fastapi import APIRouter

from typing import List

from models.users import User

from schema.users import PublicUserResponse, UserResponse

from security.dependencies import AdminUser, CurrentUser, OptionalUser
from security.helpers import parse_object_id

from utils.errors import InvalidRequestError, NotFoundError

router = APIRouter(
    prefix="/api/users",
    tags=["Users"],
)


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(current_user: CurrentUser):
    """Profile of the authenticated caller.

    Clients call this on startup to confirm that stored tokens are still
    accepted.
    """
    return UserResponse.from_user(current_user)


@router.get("", response_model=List[UserResponse])
async def list_users(admin: AdminUser):
    """List every account. Admin only.

    ## Possible Errors
    - 401 Unauthorized: No valid access token.
    - 403 Forbidden: The caller is not an admin.
    """
    users = await User.find_all().sort(-User.created_at).to_list()
    logfire.info(f"Admin {admin.id} listed {len(users)} users")
    return [UserResponse.from_user(user) for user in users]


@router.get("/{user_id}", response_model=PublicUserResponse)
async def get_user_profile(user_id: str, viewer: OptionalUser):
    """Public profile of any account.

    Anonymous callers are served too; `isCurrentUser` is only set when
    the caller is identified and is looking at their own profile.
    """
    object_id = parse_object_id(user_id)
    if object_id is None:
        raise InvalidRequestError("Invalid user ID format")

    user = await User.get(object_id)
    if user is None:
        raise NotFoundError("User not found")

    profile = UserResponse.from_user(user).model_dump()
    return PublicUserResponse(
        **profile,
        is_current_user=viewer is not None and viewer.id == user.id,
    )
