"""tests/helpers.py -- Constants and builders shared by the test modules."""

from __future__ import annotations

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password

TEST_SECRET = "k" * 64
TEST_PASSWORD = "testpass123"


def make_user(store: UserStore, email: str, username: str, password: str = TEST_PASSWORD, **extra) -> User:
    """Insert a user whose digest matches `password` and return the stored record."""
    return store.create_user(User(email=email, username=username, hashed_password=hash_password(password), **extra))
