"""
API request and response models for DocVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (fullName, confirmationPassword, metaData) via the
to_camel alias generator; Python attributes stay snake_case. No response model
has a password field, so a password cannot be serialized by accident.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from auth.tokens import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/users.

    The password must fit bcrypt's 72-byte input limit; anything longer would
    be silently truncated by the hash.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str = Field(max_length=255)
    username: str = Field(max_length=255)
    password: str = Field(min_length=1)
    confirmation_password: str

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user record."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    email: str
    username: str
    full_name: Optional[str] = None
    bio: Optional[str] = None
    role: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build the public view from a domain User, leaving the digest behind."""
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            full_name=user.full_name,
            bio=user.bio,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenResponse(BaseModel):
    """Response for login and signup."""

    model_config = ConfigDict(frozen=True)

    token: str
    message: str


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users.

    meta_data is the page description when limit and offset were given,
    otherwise just {"count": n}.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    users: list[UserResponse]
    meta_data: dict[str, int]


class UserUpdateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse
    message: str


class SearchResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    matches: int
    users: list[UserResponse]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class FieldErrorDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[list[FieldErrorDetail]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
