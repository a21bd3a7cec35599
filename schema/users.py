"""Contains the schema definition for requests and responses related to users
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from typing import Annotated, List

from models.users import User

from .security import TokenPair


class RegisterRequest(BaseModel):
    """Describes the structure of the register request.

    Every field is optional here; presence is checked by the handler so
    that missing fields produce a 400 with the usual message.
    """

    name: Annotated[str | None, Field(default=None)]
    email: Annotated[str | None, Field(default=None)]
    username: Annotated[str | None, Field(default=None)]
    password: Annotated[str | None, Field(default=None)]

    def missing_fields(self) -> List[str]:
        return [field for field, value in self.model_dump().items() if not value]


class LoginRequest(BaseModel):
    """Describes the structure of the login request."""

    email: Annotated[str | None, Field(default=None)]
    password: Annotated[str | None, Field(default=None)]


class UserResponse(BaseModel):
    """Account profile without any credential data."""

    model_config = ConfigDict(populate_by_name=True)

    id: Annotated[str, Field(alias="_id")]
    name: str
    email: str
    username: str
    avatar: Annotated[str, Field(default="")]
    bio: Annotated[str, Field(default="")]
    is_admin: Annotated[bool, Field(default=False, alias="isAdmin")]
    created_at: Annotated[datetime | None, Field(default=None, alias="createdAt")]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            username=user.username,
            avatar=user.avatar,
            bio=user.bio,
            is_admin=user.is_admin,
            created_at=user.created_at,
        )


class PublicUserResponse(UserResponse):
    """Profile as seen by an arbitrary, possibly anonymous, caller."""

    is_current_user: Annotated[bool, Field(default=False, alias="isCurrentUser")]


class AuthData(BaseModel):
    user: UserResponse
    tokens: TokenPair


class AuthResponse(BaseModel):
    """Response returned by register and login."""

    success: Annotated[bool, Field(default=True)]
    data: AuthData


class MessageResponse(BaseModel):
    success: Annotated[bool, Field(default=True)]
    message: str
