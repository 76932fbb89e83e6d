"""
auth/tokens.py -- Password hashing, session-token issuance, and login checks.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper) with a fixed cost
       factor of 10. The cost is a module constant, not configuration, so
       verification latency is bounded and identical across deployments.
       verify_password() never raises: a malformed digest is just a mismatch,
       and callers treat "wrong password" and "no password" the same way.

  Tokens: python-jose with HS256. TokenIssuer receives the signing key at
       construction (built once in the API lifespan from Settings) instead of
       reading a module global. Each token carries a random jti and the issue
       time, so two tokens for the same identity are never byte-identical.

  Snapshot: the token payload is client-visible once base64-decoded. The
       password is removed from every snapshot unconditionally -- both by
       identity_snapshot() and again inside issue().

  Login: authenticate_user() always runs bcrypt, against _DUMMY_HASH when the
       email is unknown, so response time does not reveal whether an account
       exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("docvault.auth")

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

BCRYPT_ROUNDS = 10

# bcrypt only looks at the first 72 bytes of its input. The API layer rejects
# longer passwords so nothing is silently truncated.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str | None, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt digest.

    Returns False for a missing candidate, a missing digest, or a digest that
    bcrypt cannot parse. An empty candidate still runs bcrypt.
    """
    if plain is None or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first failed login is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("docvault_timing_dummy")


# ---------------------------------------------------------------------------
# Identity snapshot
# ---------------------------------------------------------------------------

_PASSWORD_KEYS = frozenset({"password", "hashed_password"})


def identity_snapshot(user: User) -> dict[str, Any]:
    """Return the subset of a user record that is safe to embed in a token."""
    return {
        "user_id": user.id,
        "sub": user.username,
        "email": user.email,
        "role": user.role,
    }


# ---------------------------------------------------------------------------
# Token issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints and verifies signed session tokens with a fixed signing key.

    Usage:
        issuer = TokenIssuer(settings.secret_key, settings.token_expire_seconds)
        token = issuer.issue(identity_snapshot(user))
        claims = issuer.decode(token)

    The key is never mutated after construction. A missing or short key
    raises ValueError here, so the failure happens at startup.
    """

    ALGORITHM = "HS256"

    def __init__(self, secret_key: str, expire_seconds: int = 24 * 3600) -> None:
        if not secret_key or len(secret_key) < 32:
            raise ValueError("TokenIssuer requires a signing key of at least 32 characters.")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive.")
        self._secret_key = secret_key
        self._expire_seconds = expire_seconds

    def issue(self, snapshot: Mapping[str, Any]) -> str:
        """Sign a token for the given identity snapshot.

        Any password key in the snapshot is dropped before signing. jti is a
        128-bit nonce from the secrets module, which is safe to call from
        concurrent request threads.
        """
        now = datetime.now(timezone.utc)
        payload = {k: v for k, v in snapshot.items() if k not in _PASSWORD_KEYS}
        payload.update(
            {
                "jti": secrets.token_hex(16),
                "iat": now,
                "exp": now + timedelta(seconds=self._expire_seconds),
            }
        )
        if "sub" in payload and payload["sub"] is not None:
            payload["sub"] = str(payload["sub"])
        try:
            return jwt.encode(payload, self._secret_key, algorithm=self.ALGORITHM)
        except (JWTError, TypeError, ValueError) as exc:
            # Never put the payload in the message -- it holds identity data.
            logger.error("Token signing failed: %s", type(exc).__name__)
            raise RuntimeError("Token signing failed.") from None

    def decode(self, token: str) -> dict | None:
        """Decode and verify a token. Returns the claims or None on any failure.

        Route dependencies turn None into 401.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.ALGORITHM])
        except JWTError:
            return None
        if "user_id" not in payload or "jti" not in payload:
            return None
        return payload


# ---------------------------------------------------------------------------
# Login check (constant effort)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Return the User whose email and password match, or None.

    bcrypt runs whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the stored digest
    """
    user = store.get_by_email(email) if email else None
    if user is None or user.hashed_password is None:
        verify_password(password or "", _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
