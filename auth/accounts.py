"""
auth/accounts.py -- Account operations composed from the credential core.

Each public function here is one user-facing operation. They raise
core.errors.IdentityFailure for every expected failure; the HTTP boundary
catches it once and renders it with core.errors.classify(). Nothing here knows
about requests or responses.

Retry policy: only signup recovers, and only once. If the insert loses a
uniqueness race (IntegrityError) or the store errors out, the record is
re-fetched by email; a token is issued only if the record exists and the
supplied password verifies against it. Everything else fails straight through.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenIssuer, authenticate_user, hash_password, identity_snapshot, verify_password
from auth.updates import authorize_update, select_update_fields
from core.errors import FailureCause, IdentityFailure
from core.pagination import paginate, parse_page_query

logger = logging.getLogger("docvault.accounts")

LOGIN_MESSAGE = "You have successfully logged in."
SIGNUP_MESSAGE = "Your account was successfully created."
DELETE_MESSAGE = "User was successfully deleted."

# SQLite INTEGER is a signed 64-bit value.
_MAX_ID = 2**63 - 1

# Column name for each allow-listed update field.
_COLUMN_FOR_FIELD = {
    "email": "email",
    "username": "username",
    "fullName": "full_name",
    "bio": "bio",
}


def parse_user_id(raw: str | int) -> int:
    """Parse a path identifier, raising MALFORMED_IDENTIFIER for non-integers."""
    if isinstance(raw, bool):
        raise IdentityFailure(FailureCause.MALFORMED_IDENTIFIER)
    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()):
        raise IdentityFailure(FailureCause.MALFORMED_IDENTIFIER)
    user_id = int(text, 10)
    if not 0 <= user_id <= _MAX_ID:
        raise IdentityFailure(FailureCause.MALFORMED_IDENTIFIER)
    return user_id


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def login_user(store: UserStore, issuer: TokenIssuer, email: str, password: str) -> str:
    """Return a fresh token for matching credentials.

    Unknown email and wrong password raise the same WRONG_CREDENTIAL failure.
    """
    user = authenticate_user(store, email, password)
    if user is None:
        logger.info("Login rejected")
        raise IdentityFailure(FailureCause.WRONG_CREDENTIAL)
    logger.info("Login succeeded for user_id=%s", user.id)
    return issuer.issue(identity_snapshot(user))


def signup_user(
    store: UserStore,
    issuer: TokenIssuer,
    email: str,
    password: str,
    confirmation_password: str,
    username: str,
) -> str:
    """Create an account and return a token for it."""
    if password != confirmation_password:
        raise IdentityFailure(
            FailureCause.PASSWORD_CONFIRMATION_MISMATCH,
            message="Password and confirmation password do not match.",
        )

    new_user = User(email=email, username=username, hashed_password=hash_password(password))
    try:
        created = store.create_user(new_user)
    except IdentityFailure:
        raise
    except SQLAlchemyError as exc:
        logger.warning("Signup insert failed (%s); re-fetching by email", type(exc).__name__)
        return _recover_signup(store, issuer, email, password)

    logger.info("Created user_id=%s", created.id)
    return issuer.issue(identity_snapshot(created))


def _recover_signup(store: UserStore, issuer: TokenIssuer, email: str, password: str) -> str:
    try:
        existing = store.get_by_email(email)
    except SQLAlchemyError:
        existing = None
    if existing is not None and verify_password(password, existing.hashed_password):
        return issuer.issue(identity_snapshot(existing))
    raise IdentityFailure(FailureCause.TRANSIENT_STORE_FAILURE)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_user(store: UserStore, raw_id: str | int) -> User:
    user = store.get_by_id(parse_user_id(raw_id))
    if user is None:
        raise IdentityFailure(FailureCause.UNKNOWN_IDENTITY)
    return user


def list_users(
    store: UserStore,
    limit: str | int | None = None,
    offset: str | int | None = None,
) -> tuple[list[User], dict[str, int]]:
    """Return users and their list metadata.

    With both limit and offset the metadata is the full page description;
    otherwise every user is returned with just the count.
    """
    window = parse_page_query(limit, offset)
    if window is None:
        users, count = store.find_and_count_all()
        return users, {"count": count}
    page_limit, page_offset = window
    users, count = store.find_and_count_all(limit=page_limit, offset=page_offset)
    return users, paginate(page_limit, page_offset, count).as_dict()


def search_users(store: UserStore, term: str) -> tuple[list[User], int]:
    users, count = store.search_by_email(term or "")
    if not count:
        raise IdentityFailure(FailureCause.NO_SEARCH_MATCHES)
    return users, count


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def update_user_info(store: UserStore, raw_id: str | int, payload: Mapping[str, Any]) -> tuple[User, str]:
    """Authorize and apply a profile update. Returns (updated user, message).

    Store-level validation failures propagate unchanged -- never retried.
    """
    user_id = parse_user_id(raw_id)
    proposed = select_update_fields(payload)
    current = store.get_by_id(user_id)
    accepted = authorize_update(proposed, payload, current)

    columns = {_COLUMN_FOR_FIELD[key]: value for key, value in accepted.fields.items() if key != "password"}
    if "password" in accepted.fields:
        columns["hashed_password"] = hash_password(accepted.fields["password"])

    if not columns:
        return current, accepted.message
    updated = store.update_user(user_id, **columns)
    if updated is None:
        raise IdentityFailure(FailureCause.UNKNOWN_IDENTITY)
    logger.info("Updated user_id=%s fields=%s", user_id, sorted(columns))
    return updated, accepted.message


def delete_user(store: UserStore, raw_id: str | int) -> str:
    """Delete a user. Reported successful whether or not the id existed."""
    removed = store.delete_user(parse_user_id(raw_id))
    logger.info("Delete user_id=%s removed=%d", raw_id, removed)
    return DELETE_MESSAGE
