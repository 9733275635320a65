from __future__ import annotations

import logging
import os
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

from models import Config, DtrEntry, Shift, User

logger = logging.getLogger(__name__)


def _get_db_path() -> Path:
    """Get database path from environment variable or default location."""
    if env_path := os.environ.get("BUNNY_PORTAL_DB"):
        return Path(env_path)
    return Path(__file__).parent / "data" / "portal.db"


DB_PATH = _get_db_path()

SHIFT_FIELDS = ("date", "start_time", "end_time", "net_hours")
DTR_FIELDS = ("company", "time", "description", "created_at", "updated_at")


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Field value replaced with the write instant when the record is stored.
SERVER_TIMESTAMP: Any = _ServerTimestamp()


class NotFoundError(LookupError):
    """Raised when a write targets a record that does not exist."""


def get_connection() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create tables if they don't exist."""
    conn = get_connection()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            display_name TEXT,
            provider TEXT NOT NULL DEFAULT 'password',
            password_hash TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS shifts (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            date TEXT NOT NULL,
            start_time TEXT,
            end_time TEXT,
            net_hours TEXT
        );

        -- Keyed by shift id, no foreign key: entries outlive their shift.
        CREATE TABLE IF NOT EXISTS dtr_entries (
            id TEXT PRIMARY KEY,
            shift_id TEXT NOT NULL,
            company TEXT NOT NULL,
            time TEXT NOT NULL,
            description TEXT NOT NULL,
            created_at TEXT,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_shifts_user_start ON shifts(user_id, start_time);
        CREATE INDEX IF NOT EXISTS idx_dtr_shift_time ON dtr_entries(shift_id, time);
    """)
    conn.commit()
    conn.close()
    _mark_seen()


def _now() -> datetime:
    return datetime.now().astimezone()


def _new_id() -> str:
    return uuid.uuid4().hex


def _encode_instant(value: datetime) -> str:
    # Fixed-width UTC text so ORDER BY matches instant order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _encode(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return _encode_instant(_now())
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime):
        return _encode_instant(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _parse_instant(val: str | None) -> datetime | None:
    if not val:
        return None
    return datetime.fromisoformat(val)


def _execute_write(sql: str, params: list | tuple) -> int:
    """Run a single write statement and return the affected row count."""
    conn = get_connection()
    try:
        cursor = conn.execute(sql, params)
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()


def _update(table: str, allowed: tuple[str, ...], fields: dict[str, Any],
            where: str, where_params: list) -> None:
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown {table} field(s): {', '.join(unknown)}")
    if not fields:
        return
    assignments = ", ".join(f"{name} = ?" for name in fields)
    params = [_encode(v) for v in fields.values()] + where_params
    count = _execute_write(f"UPDATE {table} SET {assignments} WHERE {where}", params)
    if count == 0:
        raise NotFoundError(f"No {table} record matches {where_params}")


# --- Live subscriptions ---


@dataclass(eq=False)
class Subscription:
    """A live query: delivers the full result set on every change."""

    collection: str
    key: str
    fetch: Callable[[], list]
    on_snapshot: Callable[[list], None]
    on_error: Callable[[Exception], None] | None = None
    active: bool = True

    def deliver(self) -> None:
        if not self.active:
            return
        try:
            snapshot = self.fetch()
        except sqlite3.Error as exc:
            # A failed listener stays cancelled; callers must resubscribe.
            logger.exception("Subscription to %s/%s failed", self.collection, self.key)
            self.unsubscribe()
            if self.on_error:
                self.on_error(exc)
            return
        self.on_snapshot(snapshot)

    def unsubscribe(self) -> None:
        self.active = False
        if self in _subscriptions:
            _subscriptions.remove(self)


_subscriptions: list[Subscription] = []
_last_seen: tuple[int, int] | None = None


def _subscribe(collection: str, key: str, fetch: Callable[[], list],
               on_snapshot: Callable[[list], None],
               on_error: Callable[[Exception], None] | None) -> Subscription:
    sub = Subscription(collection, key, fetch, on_snapshot, on_error)
    _subscriptions.append(sub)
    logger.debug("Subscribed to %s/%s", collection, key)
    sub.deliver()
    return sub


def _notify(collection: str, key: str | None = None) -> None:
    _mark_seen()
    for sub in list(_subscriptions):
        if sub.collection == collection and (key is None or sub.key == key):
            sub.deliver()


def active_subscriptions() -> list[Subscription]:
    return list(_subscriptions)


def _db_stamp() -> tuple[int, int] | None:
    try:
        stat = DB_PATH.stat()
    except FileNotFoundError:
        return None
    return (stat.st_mtime_ns, stat.st_size)


def _mark_seen() -> None:
    global _last_seen
    _last_seen = _db_stamp()


def poll_external_changes() -> bool:
    """Redeliver every live subscription if another process wrote to the database.

    Returns True if a change was detected.
    """
    global _last_seen
    stamp = _db_stamp()
    if stamp == _last_seen:
        return False
    _last_seen = stamp
    logger.debug("Database changed externally, refreshing %d subscription(s)", len(_subscriptions))
    for sub in list(_subscriptions):
        sub.deliver()
    return True


# --- Shift Functions ---


def _row_to_shift(row: sqlite3.Row) -> Shift:
    return Shift(
        id=row["id"],
        user_id=row["user_id"],
        date=date.fromisoformat(row["date"]),
        start_time=_parse_instant(row["start_time"]),
        end_time=_parse_instant(row["end_time"]),
        net_hours=Decimal(row["net_hours"]) if row["net_hours"] is not None else None,
    )


def create_shift(user_id: str, day: date, start_time: datetime = SERVER_TIMESTAMP) -> str:
    """Insert an open shift. Returns the new shift id."""
    shift_id = _new_id()
    _execute_write(
        "INSERT INTO shifts (id, user_id, date, start_time) VALUES (?, ?, ?, ?)",
        (shift_id, user_id, _encode(day), _encode(start_time)),
    )
    logger.info("Created shift %s for user %s", shift_id, user_id)
    _notify("shifts")
    return shift_id


def update_shift(shift_id: str, **fields: Any) -> None:
    """Partially update a shift. Raises NotFoundError if it doesn't exist."""
    _update("shifts", SHIFT_FIELDS, fields, "id = ?", [shift_id])
    logger.info("Updated shift %s (%s)", shift_id, ", ".join(fields))
    _notify("shifts")


def delete_shift(shift_id: str) -> None:
    """Delete a shift. Its DTR entries are left in place."""
    _execute_write("DELETE FROM shifts WHERE id = ?", (shift_id,))
    logger.info("Deleted shift %s", shift_id)
    _notify("shifts")


def get_shift(shift_id: str) -> Shift | None:
    conn = get_connection()
    row = conn.execute("SELECT * FROM shifts WHERE id = ?", (shift_id,)).fetchone()
    conn.close()
    return _row_to_shift(row) if row else None


def get_user_shifts(user_id: str) -> list[Shift]:
    """All shifts for a user, newest start first."""
    conn = get_connection()
    rows = conn.execute(
        "SELECT * FROM shifts WHERE user_id = ? ORDER BY start_time DESC",
        (user_id,),
    ).fetchall()
    conn.close()
    return [_row_to_shift(row) for row in rows]


def get_active_shift(user_id: str) -> Shift | None:
    conn = get_connection()
    row = conn.execute(
        "SELECT * FROM shifts WHERE user_id = ? AND end_time IS NULL",
        (user_id,),
    ).fetchone()
    conn.close()
    return _row_to_shift(row) if row else None


def subscribe_shifts(user_id: str, on_snapshot: Callable[[list[Shift]], None],
                     on_error: Callable[[Exception], None] | None = None) -> Subscription:
    return _subscribe("shifts", user_id, lambda: get_user_shifts(user_id), on_snapshot, on_error)


# --- DTR Entry Functions ---


def _row_to_dtr_entry(row: sqlite3.Row) -> DtrEntry:
    return DtrEntry(
        id=row["id"],
        shift_id=row["shift_id"],
        time=row["time"],
        description=row["description"],
        company=row["company"],
        created_at=_parse_instant(row["created_at"]),
        updated_at=_parse_instant(row["updated_at"]),
    )


def create_dtr_entry(shift_id: str, **fields: Any) -> str:
    """Insert an entry in a shift's DTR. Returns the new entry id."""
    unknown = sorted(set(fields) - set(DTR_FIELDS))
    if unknown:
        raise ValueError(f"Unknown dtr_entries field(s): {', '.join(unknown)}")
    entry_id = _new_id()
    columns = ["id", "shift_id", *fields]
    placeholders = ", ".join("?" for _ in columns)
    _execute_write(
        f"INSERT INTO dtr_entries ({', '.join(columns)}) VALUES ({placeholders})",
        [entry_id, shift_id] + [_encode(v) for v in fields.values()],
    )
    logger.info("Created DTR entry %s on shift %s", entry_id, shift_id)
    _notify("dtr_entries", shift_id)
    return entry_id


def update_dtr_entry(shift_id: str, entry_id: str, **fields: Any) -> None:
    _update("dtr_entries", DTR_FIELDS, fields, "shift_id = ? AND id = ?", [shift_id, entry_id])
    logger.info("Updated DTR entry %s on shift %s", entry_id, shift_id)
    _notify("dtr_entries", shift_id)


def delete_dtr_entry(shift_id: str, entry_id: str) -> None:
    _execute_write(
        "DELETE FROM dtr_entries WHERE shift_id = ? AND id = ?",
        (shift_id, entry_id),
    )
    logger.info("Deleted DTR entry %s on shift %s", entry_id, shift_id)
    _notify("dtr_entries", shift_id)


def get_dtr_entries(shift_id: str) -> list[DtrEntry]:
    """All DTR entries for a shift, earliest time first."""
    conn = get_connection()
    rows = conn.execute(
        "SELECT * FROM dtr_entries WHERE shift_id = ? ORDER BY time ASC",
        (shift_id,),
    ).fetchall()
    conn.close()
    return [_row_to_dtr_entry(row) for row in rows]


def subscribe_dtr_entries(shift_id: str, on_snapshot: Callable[[list[DtrEntry]], None],
                          on_error: Callable[[Exception], None] | None = None) -> Subscription:
    return _subscribe("dtr_entries", shift_id, lambda: get_dtr_entries(shift_id), on_snapshot, on_error)


# --- User Functions ---


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        display_name=row["display_name"],
        provider=row["provider"],
    )


def create_user_record(email: str, display_name: str | None = None,
                       provider: str = "password", password_hash: str | None = None) -> User:
    """Insert a user. Raises sqlite3.IntegrityError if the email is taken."""
    user = User(id=_new_id(), email=email.strip().lower(), display_name=display_name, provider=provider)
    _execute_write(
        """
        INSERT INTO users (id, email, display_name, provider, password_hash, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (user.id, user.email, user.display_name, user.provider, password_hash, _encode(SERVER_TIMESTAMP)),
    )
    logger.info("Created %s user %s", provider, user.email)
    return user


def get_user(user_id: str) -> User | None:
    conn = get_connection()
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return _row_to_user(row) if row else None


def get_user_by_email(email: str) -> User | None:
    conn = get_connection()
    row = conn.execute(
        "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
    ).fetchone()
    conn.close()
    return _row_to_user(row) if row else None


def get_password_hash(user_id: str) -> str | None:
    conn = get_connection()
    row = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return row["password_hash"] if row else None


# --- Config Functions ---


def apply_config_value(config: Config, key: str, value: str) -> None:
    """Set one config field from its stored string form."""
    if key == "goal_hours":
        config.goal_hours = Decimal(value)
    elif key == "daily_quota_hours":
        config.daily_quota_hours = Decimal(value)
    elif key == "deadline":
        config.deadline = date.fromisoformat(value)
    elif key == "break_deduction_hours":
        config.break_deduction_hours = Decimal(value)
    elif key == "default_company":
        config.default_company = value
    elif key == "dtr_fallback_time":
        config.dtr_fallback_time = value
    else:
        raise ValueError(f"Unknown config key: {key}")


def get_config() -> Config:
    """Load config from database."""
    conn = get_connection()
    rows = conn.execute("SELECT key, value FROM config").fetchall()
    conn.close()

    config = Config()
    for row in rows:
        try:
            apply_config_value(config, row["key"], row["value"])
        except (ValueError, ArithmeticError):
            logger.warning("Ignoring config entry %s=%r", row["key"], row["value"])
    return config


def save_config(config: Config):
    """Save config to database."""
    values = {
        "goal_hours": str(config.goal_hours),
        "daily_quota_hours": str(config.daily_quota_hours),
        "deadline": config.deadline.isoformat(),
        "break_deduction_hours": str(config.break_deduction_hours),
        "default_company": config.default_company,
        "dtr_fallback_time": config.dtr_fallback_time,
    }
    conn = get_connection()
    for key, value in values.items():
        conn.execute("INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)", (key, value))
    conn.commit()
    conn.close()
