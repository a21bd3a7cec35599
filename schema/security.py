"""Defines schema of requests and responses related to security"""

from pydantic import BaseModel, ConfigDict, Field, AliasChoices

from typing import Annotated


class TokenPair(BaseModel):
    """Model representing both access and refresh tokens."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: Annotated[str, Field(alias="accessToken")]
    refresh_token: Annotated[str, Field(alias="refreshToken")]


class RefreshTokenRequest(BaseModel):
    """Model for refresh token request.

    The token is optional at the schema level so that a missing value is
    answered with a 400 by the handler instead of a 422.
    """

    refresh_token: Annotated[
        str | None,
        Field(default=None, validation_alias=AliasChoices("refreshToken", "refresh_token")),
    ]


class RefreshTokenResponse(BaseModel):
    """Response returned by the refresh endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: Annotated[bool, Field(default=True)]
    access_token: Annotated[str, Field(alias="accessToken")]
    refresh_token: Annotated[str, Field(alias="refreshToken")]


class TokenData(BaseModel):
    """Model representing data contained in an access or refresh token."""

    id: str
    jti: str | None = None
    exp: int | None = None  # Unix timestamp
