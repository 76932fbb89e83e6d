"""
auth/updates.py -- Gatekeeper for user record mutations.

Every update goes through authorize_update() before the store sees it. The
checks run in a fixed order and the first failure wins:

  1. the target identity must exist                 -> UNKNOWN_IDENTITY
  2. payload["password"] must verify against the
     stored digest (re-authentication gate)          -> REAUTHENTICATION_FAILED
  3. newPassword / confirmationPassword, if either
     is given, must be equal                         -> PASSWORD_CONFIRMATION_MISMATCH
  4. only allow-listed, truthy fields are forwarded

The gate in step 2 applies to every mutation, including a password change,
regardless of any bearer token the request carried. A rejection leaves the
record untouched: nothing is forwarded unless all checks pass.

The accepted password (when a change is authorized) is still plaintext here.
auth.accounts hashes it before it reaches the store.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from auth.models import User
from auth.tokens import MAX_PASSWORD_BYTES, verify_password
from core.errors import FailureCause, FieldError, IdentityFailure

UPDATE_ALLOW_LIST = ("email", "username", "password", "fullName", "bio")

UPDATED_MESSAGE = "Your profile was successfully updated."
PASSWORD_UPDATED_NOTE = "Password was also updated."


@dataclass
class AcceptedUpdate:
    """The outcome of a successful authorization.

    fields is empty for a no-op update. password, when present, is the new
    plaintext password.
    """

    fields: dict[str, Any] = field(default_factory=dict)
    password_changed: bool = False

    @property
    def message(self) -> str:
        if self.password_changed:
            return f"{UPDATED_MESSAGE} {PASSWORD_UPDATED_NOTE}"
        return UPDATED_MESSAGE


def select_update_fields(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Keep allow-listed keys whose values are truthy; drop everything else."""
    if not payload:
        return {}
    return {key: payload[key] for key in UPDATE_ALLOW_LIST if payload.get(key)}


def authorize_update(
    proposed: Mapping[str, Any],
    raw_payload: Mapping[str, Any],
    current: User | None,
) -> AcceptedUpdate:
    """Authorize a proposed mutation of `current` or raise IdentityFailure.

    `proposed` is the output of select_update_fields(raw_payload). The current
    password it carries proves the caller's identity and is not itself
    forwarded, so a payload holding only the current password is an accepted
    no-op.
    """
    if current is None:
        raise IdentityFailure(FailureCause.UNKNOWN_IDENTITY)

    candidate = proposed.get("password")
    if not isinstance(candidate, str) or not verify_password(candidate, current.hashed_password):
        raise IdentityFailure(FailureCause.REAUTHENTICATION_FAILED)

    new_password = raw_payload.get("newPassword")
    confirmation = raw_payload.get("confirmationPassword")
    changing_password = bool(new_password or confirmation)
    if changing_password and new_password != confirmation:
        raise IdentityFailure(FailureCause.PASSWORD_CONFIRMATION_MISMATCH)

    accepted = {key: value for key, value in proposed.items() if key != "password"}
    if changing_password:
        if not isinstance(new_password, str) or len(new_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            message = f"New password must be a string of at most {MAX_PASSWORD_BYTES} bytes."
            raise IdentityFailure(
                FailureCause.VALIDATION_FAILURE,
                field_errors=[FieldError("newPassword", message)],
            )
        accepted["password"] = new_password
    return AcceptedUpdate(fields=accepted, password_changed=changing_password)
