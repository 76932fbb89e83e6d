"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an Authorization: Bearer <token> header carrying a
token minted by TokenIssuer. The issuer and the store are read from app.state,
where the API lifespan put them at startup.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: auth/dependencies.py may import from fastapi (for
Request/HTTPException) because it is part of the dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenIssuer


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via its Bearer token.

    Returns the User on success, None on any failure. A token whose user has
    since been deleted does not authenticate.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    if not token:
        return None

    issuer: TokenIssuer = request.app.state.token_issuer
    payload = issuer.decode(token)
    if payload is None:
        return None

    user_store: UserStore = request.app.state.user_store
    try:
        user_id = int(payload["user_id"])
    except (TypeError, ValueError):
        return None
    return user_store.get_by_id(user_id)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
