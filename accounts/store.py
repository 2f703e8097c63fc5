"""
accounts/store.py -- SQLAlchemy Core persistence layer for the Account Directory.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_user / _row_to_alert are the mappers.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Atomicity:
  update_profile() runs the profile UPDATE, the alert policy and the alert
  INSERT inside one engine.begin() block. Readers see both or neither; if the
  policy raises, the update is rolled back with it.

Availability:
  Every connection is opened through _connection(). An OperationalError from
  the driver (database file missing, locked, unreachable server) surfaces as
  UpstreamUnavailableError so the API can answer 503 instead of 500.

Layer rule: no imports from api/, auth/, or serverless/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, or_, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from accounts.alerts import AlertEmitter
from accounts.models import PROFILE_FIELDS, Alert, User
from core.config import get_settings
from core.errors import NotFoundError, UpstreamUnavailableError

logger = logging.getLogger("userportal.accounts")

_KNOWN_ROLES = ("client", "employee")
_UPDATABLE_FIELDS = frozenset(PROFILE_FIELDS) | {"hashed_password"}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),
    Column("full_name", String(255)),
    Column("phone", String(50)),
    Column("address", Text),
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(30), nullable=False, unique=True),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, primary_key=True),
    Column("role_id", Integer, primary_key=True),
)

_alerts = Table(
    "alerts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("category", String(30), nullable=False),
    Column("message", Text, nullable=False),
    Column("is_read", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a profile update.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for users, their roles, and profile-change alerts.

    Usage:
        store = AccountStore()
        uid = store.create_user(User(username="alice", email="a@x.io", roles={"client"}))
        alert = store.update_profile(uid, {"email": "new@x.io"}, kind="client")
        store.mark_alert_read(alert.id)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._ensure_roles()

    @contextmanager
    def _connection(self, write: bool = False) -> Iterator[Connection]:
        """Yield a connection (a transaction when write=True) with outage mapping."""
        try:
            with self.engine.begin() if write else self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Account store unavailable: %s", exc)
            raise UpstreamUnavailableError("Account store is unavailable.") from exc

    def _ensure_roles(self) -> None:
        """Seed the role table. Idempotent -- safe to call on every startup."""
        with self._connection(write=True) as conn:
            existing = set(conn.execute(select(_roles.c.name)).scalars())
            for name in _KNOWN_ROLES:
                if name not in existing:
                    conn.execute(_roles.insert().values(name=name))

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a user with their roles and return the assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email is taken,
        and ValueError for a role name the directory does not know.
        """
        unknown = set(user.roles) - set(_KNOWN_ROLES)
        if unknown:
            raise ValueError(f"Unknown roles: {sorted(unknown)!r}")
        with self._connection(write=True) as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    full_name=user.full_name,
                    phone=user.phone,
                    address=user.address,
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            user_id = result.inserted_primary_key[0]
            role_ids = _role_ids(conn, user.roles)
            for role_id in role_ids:
                conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
        logger.info("Created user_id=%s roles=%s", user_id, sorted(user.roles))
        return user_id

    def get_by_id(self, user_id: int) -> User | None:
        with self._connection() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            return _load_user(conn, row)

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self._connection() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
            return _load_user(conn, row)

    def get_by_login(self, login: str) -> User | None:
        """Look up a user by username or email -- whichever the login form received."""
        with self._connection() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.username == login, _users.c.email == login))
            ).fetchone()
            return _load_user(conn, row)

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with self._connection() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
            roles = _roles_for(conn, [r.id for r in rows])
        return [_row_to_user(r, roles.get(r.id, set())) for r in rows]

    def update_profile(
        self,
        user_id: int,
        changes: dict,
        kind: str,
        emitter: AlertEmitter | None = None,
    ) -> Alert | None:
        """Apply profile changes and create the resulting alert, atomically.

        kind ("client" or "employee") must be one of the target's roles,
        otherwise the target is reported as not found. Returns the persisted
        Alert, or None when the policy decides no alert is due.

        Raises NotFoundError, ValueError for fields outside the updatable set,
        and sqlalchemy.exc.IntegrityError when a new username/email is taken.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)!r}")
        emitter = emitter or AlertEmitter()

        with self._connection(write=True) as conn:
            before = _load_user(conn, conn.execute(_users.select().where(_users.c.id == user_id)).fetchone())
            if before is None or kind not in before.roles:
                raise NotFoundError(f"No {kind} with id {user_id}.")
            if changes:
                conn.execute(_users.update().where(_users.c.id == user_id).values(**changes))
            after = _load_user(conn, conn.execute(_users.select().where(_users.c.id == user_id)).fetchone())

            draft = emitter.emit(kind, before, after)
            if draft is None:
                logger.info("Profile updated user_id=%s fields=%s (no alert)", user_id, sorted(changes))
                return None
            created_at = _now_iso()
            result = conn.execute(
                _alerts.insert().values(
                    user_id=draft.user_id,
                    category=draft.category,
                    message=draft.message,
                    is_read=0,
                    created_at=created_at,
                )
            )
            alert = Alert(
                id=result.inserted_primary_key[0],
                user_id=draft.user_id,
                category=draft.category,
                message=draft.message,
                is_read=False,
                created_at=created_at,
            )
        logger.info("Profile updated user_id=%s fields=%s alert_id=%s", user_id, sorted(changes), alert.id)
        return alert

    # ------------------------------------------------------------------
    # Alert queries
    # ------------------------------------------------------------------

    def list_alerts(self, user_id: int | None = None) -> list[Alert]:
        """Return alerts for one user, or every alert when user_id is None (newest first)."""
        query = _alerts.select().order_by(_alerts.c.id.desc())
        if user_id is not None:
            query = query.where(_alerts.c.user_id == user_id)
        with self._connection() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_alert(r) for r in rows]

    def get_alert(self, alert_id: int) -> Alert | None:
        with self._connection() as conn:
            row = conn.execute(_alerts.select().where(_alerts.c.id == alert_id)).fetchone()
        return _row_to_alert(row) if row is not None else None

    def mark_alert_read(self, alert_id: int) -> Alert:
        """Set is_read on one alert. Idempotent; raises NotFoundError for an unknown id."""
        with self._connection(write=True) as conn:
            row = conn.execute(_alerts.select().where(_alerts.c.id == alert_id)).fetchone()
            if row is None:
                raise NotFoundError(f"No alert with id {alert_id}.")
            if not row.is_read:
                conn.execute(_alerts.update().where(_alerts.c.id == alert_id).values(is_read=1))
            alert = _row_to_alert(row)
        alert.is_read = True
        return alert

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._connection() as conn:
                conn.execute(select(1))
        except UpstreamUnavailableError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Role helpers
# ---------------------------------------------------------------------------


def _role_ids(conn: Connection, names: Iterable[str]) -> list[int]:
    names = list(names)
    if not names:
        return []
    return list(conn.execute(select(_roles.c.id).where(_roles.c.name.in_(names))).scalars())


def _roles_for(conn: Connection, user_ids: list[int]) -> dict[int, set[str]]:
    if not user_ids:
        return {}
    rows = conn.execute(
        select(_user_roles.c.user_id, _roles.c.name)
        .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
        .where(_user_roles.c.user_id.in_(user_ids))
    ).fetchall()
    result: dict[int, set[str]] = {}
    for user_id, name in rows:
        result.setdefault(user_id, set()).add(name)
    return result


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _load_user(conn: Connection, row) -> User | None:
    if row is None:
        return None
    return _row_to_user(row, _roles_for(conn, [row.id]).get(row.id, set()))


def _row_to_user(row, roles: set[str]) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        roles=set(roles),
        hashed_password=row.hashed_password,
        full_name=row.full_name,
        phone=row.phone,
        address=row.address,
        created_at=row.created_at,
        is_active=bool(row.is_active),
    )


def _row_to_alert(row) -> Alert:
    return Alert(
        id=row.id,
        user_id=row.user_id,
        category=row.category,
        message=row.message,
        is_read=bool(row.is_read),
        created_at=row.created_at,
    )
