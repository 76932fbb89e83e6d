"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Stores and account
operations do the work; these classes only own the shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

ADMIN_ROLE = 1
REGULAR_ROLE = 2


@dataclass
class User:
    """A registered identity in DocVault.

    hashed_password is the bcrypt digest. It never leaves the auth package:
    token payloads are built from identity_snapshot() and API responses from
    a model that has no password field.

    role is a foreign key into the roles table. New accounts get REGULAR_ROLE.
    """

    email: str
    username: str
    id: int | None = None
    hashed_password: str | None = None
    full_name: str | None = None
    bio: str | None = None
    role: int = REGULAR_ROLE
    created_at: str | None = None
    updated_at: str | None = None
