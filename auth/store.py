"""
auth/store.py -- SQLAlchemy Core persistence layer for identity records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Account operations
and routes never touch SQL directly.

Validation:
  Field rules live here, next to the schema: email shape, username 2-15
  chars, full name up to 25, bio up to 240. Email and username uniqueness is
  pre-checked so the caller gets a per-field error list. A concurrent insert
  that slips past the pre-check still hits the UNIQUE index and surfaces as
  sqlalchemy.exc.IntegrityError -- signup treats that as its race signal.

  The store never hashes. It receives hashed_password already computed by
  auth.tokens.hash_password().

Security:
  All queries use bound parameters. No f-strings in SQL. The search pattern is
  a bound value with LIKE wildcards in the user's term escaped.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import ADMIN_ROLE, REGULAR_ROLE, User
from core.config import get_settings
from core.errors import FailureCause, FieldError, IdentityFailure

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(30), nullable=False, unique=True),
)

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(15), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("full_name", String(25)),
    Column("bio", String(240)),
    Column(
        "role",
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        server_default=str(REGULAR_ROLE),
    ),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_SEED_ROLES = ((ADMIN_ROLE, "admin"), (REGULAR_ROLE, "regular"))

# ---------------------------------------------------------------------------
# Field rules
# ---------------------------------------------------------------------------

_EMAIL_ADAPTER = TypeAdapter(EmailStr)

USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 15
FULL_NAME_MAX_LENGTH = 25
BIO_MAX_LENGTH = 240

_UPDATABLE_FIELDS = frozenset({"email", "username", "hashed_password", "full_name", "bio", "role"})


def _is_valid_email(value) -> bool:
    """Check address shape with email-validator; no DNS lookup is made."""
    if not isinstance(value, str):
        return False
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


# Column names as the client knows them, for field-level error messages.
_FIELD_LABELS = {"full_name": "fullName", "hashed_password": "password"}


def _field_errors(fields: dict) -> list[FieldError]:
    """Return one FieldError per rule a supplied value breaks.

    Only keys present in `fields` are checked, so the same rules serve both
    create (all fields) and update (a subset).
    """
    errors: list[FieldError] = []
    for name in ("email", "username", "full_name", "bio", "hashed_password"):
        if name in fields and fields[name] is not None and not isinstance(fields[name], str):
            label = _FIELD_LABELS.get(name, name)
            errors.append(FieldError(label, f"{label} must be a string."))

    email = fields.get("email")
    if "email" in fields and not _is_valid_email(email):
        if not any(e.field == "email" for e in errors):
            errors.append(FieldError("email", "Please provide a valid email address."))

    username = fields.get("username")
    if "username" in fields and isinstance(username, str):
        if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
            errors.append(
                FieldError(
                    "username",
                    f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters.",
                )
            )
    elif "username" in fields and username is None:
        errors.append(FieldError("username", "Username is required."))

    full_name = fields.get("full_name")
    if isinstance(full_name, str) and len(full_name) > FULL_NAME_MAX_LENGTH:
        errors.append(FieldError("fullName", f"Full name must not exceed {FULL_NAME_MAX_LENGTH} characters."))

    bio = fields.get("bio")
    if isinstance(bio, str) and len(bio) > BIO_MAX_LENGTH:
        errors.append(FieldError("bio", f"Bio must not exceed {BIO_MAX_LENGTH} characters."))

    if "hashed_password" in fields and not fields["hashed_password"]:
        errors.append(FieldError("password", "Password is required."))
    return errors


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        user = store.create_user(User(email="a@b.co", username="ab", hashed_password=hash_password("s3cret")))
        same = store.get_by_email("a@b.co")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)
        self._ensure_roles()

    def _ensure_roles(self) -> None:
        """Seed the admin and regular roles. Idempotent -- safe on every startup."""
        with self.engine.connect() as conn:
            existing = {row.id for row in conn.execute(select(_roles.c.id))}
            for role_id, title in _SEED_ROLES:
                if role_id not in existing:
                    conn.execute(_roles.insert().values(id=role_id, title=title))
            conn.commit()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def find_and_count_all(self, limit: int | None = None, offset: int | None = None) -> tuple[list[User], int]:
        """Return one window of users ordered by id, plus the total row count.

        With limit and offset both None every user is returned.
        """
        query = _users.select().order_by(_users.c.id)
        if limit is not None:
            query = query.limit(limit)
        if offset is not None:
            query = query.offset(offset)
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_users)).scalar() or 0
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows], total

    def search_by_email(self, term: str) -> tuple[list[User], int]:
        """Case-insensitive substring match on email, ordered by id."""
        pattern = f"%{_escape_like(term)}%"
        query = _users.select().where(_users.c.email.ilike(pattern, escape="\\")).order_by(_users.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows], len(rows)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Validate and insert a new user, returning the stored record.

        Raises IdentityFailure(VALIDATION_FAILURE) for malformed fields and
        IdentityFailure(DUPLICATE_UNIQUE) when the email or username is taken.
        Raises sqlalchemy.exc.IntegrityError if a concurrent request inserted
        the same email or username after the pre-check.
        """
        fields = {
            "email": user.email,
            "username": user.username,
            "hashed_password": user.hashed_password,
            "full_name": user.full_name,
            "bio": user.bio,
        }
        errors = _field_errors(fields)
        if errors:
            raise IdentityFailure(FailureCause.VALIDATION_FAILURE, field_errors=errors)

        now = _now_iso()
        with self.engine.connect() as conn:
            duplicates = self._duplicate_errors(conn, fields)
            if duplicates:
                raise IdentityFailure(FailureCause.DUPLICATE_UNIQUE, field_errors=duplicates)
            result = conn.execute(
                _users.insert().values(
                    **fields,
                    role=user.role,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        return self.get_by_id(user_id)

    def update_user(self, user_id: int, **fields) -> User | None:
        """Validate and apply a partial update. Returns the fresh record.

        Accepted fields: email, username, hashed_password, full_name, bio, role.
        Unknown keys raise ValueError. Returns None if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_by_id(user_id)

        errors = _field_errors(fields)
        if errors:
            raise IdentityFailure(FailureCause.VALIDATION_FAILURE, field_errors=errors)

        with self.engine.connect() as conn:
            duplicates = self._duplicate_errors(conn, fields, exclude_id=user_id)
            if duplicates:
                raise IdentityFailure(FailureCause.DUPLICATE_UNIQUE, field_errors=duplicates)
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(**fields, updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def delete_user(self, user_id: int) -> int:
        """Delete a user record. Returns the number of rows removed (0 or 1)."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount

    def _duplicate_errors(self, conn, fields: dict, exclude_id: int | None = None) -> list[FieldError]:
        errors: list[FieldError] = []
        for name in ("email", "username"):
            if name not in fields:
                continue
            query = select(_users.c.id).where(_users.c[name] == fields[name])
            if exclude_id is not None:
                query = query.where(_users.c.id != exclude_id)
            if conn.execute(query).first() is not None:
                errors.append(FieldError(name, f"{name} must be unique."))
        return errors

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        full_name=row.full_name,
        bio=row.bio,
        role=row.role,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
