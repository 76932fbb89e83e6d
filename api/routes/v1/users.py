"""
api/routes/v1/users.py -- Authentication and user management REST endpoints.

Routes:
  POST   /api/v1/users/login     -- password login; returns a token
  POST   /api/v1/users           -- signup; returns a token for the new account
  GET    /api/v1/users           -- list users, paged when ?limit=&offset= given
  GET    /api/v1/users/{id}      -- one user (public view)
  PUT    /api/v1/users/{id}      -- update profile (re-authentication required)
  DELETE /api/v1/users/{id}      -- delete user; always reported successful
  GET    /api/v1/search/users    -- case-insensitive email substring search

Error handling:
  Handlers call auth.accounts and let IdentityFailure propagate. The app-level
  handler in api/main.py renders it through core.errors.classify(), so no
  route builds an error body by hand.

  The {user_id} path parameter is a plain string on purpose: a non-integer id
  is a 400 MALFORMED_IDENTIFIER, not FastAPI's generic 422.

Security:
  Login returns the same 401 body for an unknown email and a wrong password.
  PUT requires the caller's current password in the body in addition to the
  bearer token. Token responses carry Cache-Control: no-store.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    MessageResponse,
    SearchResponse,
    SignupRequest,
    TokenResponse,
    UserListResponse,
    UserResponse,
    UserUpdateResponse,
)
from auth import accounts
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenIssuer

# Auth policy:
# - POST   /api/v1/users/login:   public -- login endpoint must be unauthenticated
# - POST   /api/v1/users:         public -- signup
# - GET    /api/v1/users:         requires auth (get_current_user)
# - GET    /api/v1/users/{id}:    requires auth (get_current_user)
# - PUT    /api/v1/users/{id}:    requires auth + current password in body
# - DELETE /api/v1/users/{id}:    requires auth (get_current_user)
# - GET    /api/v1/search/users:  requires auth (get_current_user)
router = APIRouter()


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def _token_response(token: str, message: str) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=TokenResponse(token=token, message=message).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; respond with a signed token."""
    token = accounts.login_user(_store(request), _issuer(request), body.email, body.password)
    return _token_response(token, accounts.LOGIN_MESSAGE)


@router.post("/users", response_model=TokenResponse)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account and respond with a token for it."""
    token = accounts.signup_user(
        _store(request),
        _issuer(request),
        email=body.email,
        password=body.password,
        confirmation_password=body.confirmation_password,
        username=body.username,
    )
    return _token_response(token, accounts.SIGNUP_MESSAGE)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    limit: Optional[str] = Query(default=None),
    offset: Optional[str] = Query(default=None),
    current_user: User = Depends(get_current_user),
) -> UserListResponse:
    """List users. Both limit and offset must be integers when given (else 406)."""
    users, meta = accounts.list_users(_store(request), limit, offset)
    return UserListResponse(users=[UserResponse.from_user(u) for u in users], meta_data=meta)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return UserResponse.from_user(accounts.get_user(_store(request), user_id))


@router.put("/users/{user_id}", response_model=UserUpdateResponse)
def update_user(
    request: Request,
    user_id: str,
    payload: dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
) -> UserUpdateResponse:
    """Update email, username, password, fullName or bio.

    The body must carry the account's current password under "password".
    A password change sends newPassword and confirmationPassword as well.
    Unknown and empty fields are ignored.
    """
    updated, message = accounts.update_user_info(_store(request), user_id, payload)
    return UserUpdateResponse(user=UserResponse.from_user(updated), message=message)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Delete a user. Succeeds whether or not the id exists."""
    return MessageResponse(message=accounts.delete_user(_store(request), user_id))


@router.get("/search/users", response_model=SearchResponse)
def search_users(
    request: Request,
    q: str = Query(default="", max_length=255),
    current_user: User = Depends(get_current_user),
) -> SearchResponse:
    """Find users whose email contains q (case-insensitive). 404 when none match."""
    users, count = accounts.search_users(_store(request), q)
    return SearchResponse(matches=count, users=[UserResponse.from_user(u) for u in users])
