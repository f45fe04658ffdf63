"""
SQLite Storage Implementation

DESIGN DECISION: SQLite gives us the two guarantees the recurring core
needs from its persistence layer:
1. A real uniqueness constraint on (series_id, due_date) for the
   at-most-once rule
2. Transactions, so the ledger write and the series advance commit together

Amounts are stored as TEXT to keep Decimal precision.
Dates are stored as ISO 8601 strings (YYYY-MM-DD).
"""

import sqlite3
import threading
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from recurring_ledger.config import get_settings
from recurring_ledger.models.audit import AuditEvent
from recurring_ledger.models.series import (
    Frequency,
    MaterializationResult,
    PeriodKey,
    RecurringSeries,
    TransactionInstance,
    TransactionKind,
)
from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicatePeriodError,
    NotFoundError,
    RecurringStorageInterface,
    SeriesConflictError,
    StorageConnectionError,
    StorageError,
)


SCHEMA = """
    CREATE TABLE IF NOT EXISTS recurring_series (
        id             TEXT PRIMARY KEY,
        name           TEXT NOT NULL,
        description    TEXT,
        kind           TEXT NOT NULL CHECK(kind IN ('income','expense')),
        amount         TEXT NOT NULL,
        frequency      TEXT NOT NULL CHECK(frequency IN ('daily','weekly','monthly','yearly')),
        category_ref   TEXT,
        source_label   TEXT,
        start_date     TEXT NOT NULL,
        end_date       TEXT,
        next_due_date  TEXT NOT NULL,
        is_active      INTEGER NOT NULL DEFAULT 1
    );

    CREATE INDEX IF NOT EXISTS idx_series_next_due
        ON recurring_series(next_due_date);

    CREATE TABLE IF NOT EXISTS expenses (
        id            TEXT PRIMARY KEY,
        amount        TEXT NOT NULL,
        description   TEXT NOT NULL DEFAULT '',
        occurred_on   TEXT NOT NULL,
        category_ref  TEXT,
        created_at    TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS incomes (
        id            TEXT PRIMARY KEY,
        amount        TEXT NOT NULL,
        description   TEXT NOT NULL DEFAULT '',
        occurred_on   TEXT NOT NULL,
        source_label  TEXT,
        created_at    TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS recurring_periods (
        series_id    TEXT NOT NULL,
        due_date     TEXT NOT NULL,
        instance_id  TEXT NOT NULL,
        PRIMARY KEY (series_id, due_date)
    );

    CREATE TABLE IF NOT EXISTS audit_events (
        event_id        TEXT PRIMARY KEY,
        timestamp       TEXT NOT NULL,
        event_type      TEXT NOT NULL,
        severity        TEXT NOT NULL,
        entity_type     TEXT NOT NULL DEFAULT '',
        entity_id       TEXT NOT NULL DEFAULT '',
        correlation_id  TEXT NOT NULL DEFAULT '',
        description     TEXT NOT NULL,
        details_json    TEXT NOT NULL DEFAULT '',
        error_message   TEXT NOT NULL DEFAULT '',
        is_user_action  INTEGER NOT NULL DEFAULT 0
    );
"""

SERIES_COLUMNS = (
    "id, name, description, kind, amount, frequency, category_ref, "
    "source_label, start_date, end_date, next_due_date, is_active"
)

LEDGER_TABLES = {
    TransactionKind.EXPENSE: "expenses",
    TransactionKind.INCOME: "incomes",
}


def _wrap_sqlite_error(action: str, error: sqlite3.Error) -> StorageError:
    """Map sqlite errors onto the storage exception hierarchy."""
    if isinstance(error, sqlite3.OperationalError):
        return StorageConnectionError(f"Failed to {action}: {error}")
    return StorageError(f"Failed to {action}: {error}")


class SQLiteDatabase:
    """
    Low-level SQLite connection wrapper.

    Handles schema creation and provides retry logic for opening the file.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_settings().storage.sqlite_path
        self._conn: Optional[sqlite3.Connection] = None
        self.lock = threading.RLock()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(StorageConnectionError),
        reraise=True,
    )
    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.executescript(SCHEMA)
                conn.commit()
            except sqlite3.Error as e:
                raise StorageConnectionError(f"Failed to open database {self.db_path}: {e}")
            self._conn = conn
        return self._conn

    def close(self) -> None:
        with self.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class SQLiteRecurringStorage(RecurringStorageInterface):
    """
    SQLite implementation of the recurring persistence boundary.

    Series live in one table, each ledger kind in its own table, and
    claimed periods in recurring_periods keyed by (series_id, due_date).
    """

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    def _row_to_series(self, row: sqlite3.Row) -> RecurringSeries:
        return RecurringSeries(
            id=UUID(row["id"]),
            name=row["name"],
            description=row["description"],
            kind=TransactionKind(row["kind"]),
            amount=Decimal(row["amount"]),
            frequency=Frequency(row["frequency"]),
            category_ref=row["category_ref"],
            source_label=row["source_label"],
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
            next_due_date=date.fromisoformat(row["next_due_date"]),
            active=bool(row["is_active"]),
        )

    def _series_to_row(self, series: RecurringSeries) -> tuple:
        return (
            str(series.id),
            series.name,
            series.description,
            series.kind.value,
            str(series.amount),
            series.frequency.value,
            series.category_ref,
            series.source_label,
            series.start_date.isoformat(),
            series.end_date.isoformat() if series.end_date else None,
            series.next_due_date.isoformat(),
            1 if series.active else 0,
        )

    def _row_to_instance(self, kind: TransactionKind, row: sqlite3.Row) -> TransactionInstance:
        return TransactionInstance(
            id=UUID(row["id"]),
            kind=kind,
            amount=Decimal(row["amount"]),
            description=row["description"],
            occurred_on=date.fromisoformat(row["occurred_on"]),
            category_ref=row["category_ref"] if kind == TransactionKind.EXPENSE else None,
            source_label=row["source_label"] if kind == TransactionKind.INCOME else None,
        )

    def _insert_instance(self, conn: sqlite3.Connection, instance: TransactionInstance) -> None:
        if instance.kind == TransactionKind.EXPENSE:
            conn.execute(
                """INSERT INTO expenses (id, amount, description, occurred_on, category_ref)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    str(instance.id), str(instance.amount), instance.description,
                    instance.occurred_on.isoformat(), instance.category_ref,
                ),
            )
        else:
            conn.execute(
                """INSERT INTO incomes (id, amount, description, occurred_on, source_label)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    str(instance.id), str(instance.amount), instance.description,
                    instance.occurred_on.isoformat(), instance.source_label,
                ),
            )

    async def load(self, series_id: UUID) -> RecurringSeries:
        try:
            with self._db.lock:
                row = self._db.get_connection().execute(
                    f"SELECT {SERIES_COLUMNS} FROM recurring_series WHERE id = ?",
                    (str(series_id),),
                ).fetchone()
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("load series", e)

        if row is None:
            raise NotFoundError(f"Recurring series not found: {series_id}")
        return self._row_to_series(row)

    async def save(self, series: RecurringSeries) -> None:
        try:
            with self._db.lock:
                conn = self._db.get_connection()
                with conn:
                    conn.execute(
                        f"INSERT OR REPLACE INTO recurring_series ({SERIES_COLUMNS}) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        self._series_to_row(series),
                    )
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("save series", e)

    async def delete(self, series_id: UUID) -> None:
        try:
            with self._db.lock:
                conn = self._db.get_connection()
                with conn:
                    cursor = conn.execute(
                        "DELETE FROM recurring_series WHERE id = ?", (str(series_id),)
                    )
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("delete series", e)

        if cursor.rowcount == 0:
            raise NotFoundError(f"Recurring series not found: {series_id}")

    async def list_series(
        self,
        kind: Optional[TransactionKind] = None,
        active: Optional[bool] = None,
    ) -> list[RecurringSeries]:
        clauses = []
        params: list = []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind.value)
        if active is not None:
            clauses.append("is_active = ?")
            params.append(1 if active else 0)

        query = f"SELECT {SERIES_COLUMNS} FROM recurring_series"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY next_due_date, name"

        try:
            with self._db.lock:
                rows = self._db.get_connection().execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("list series", e)
        return [self._row_to_series(r) for r in rows]

    async def append(self, instance: TransactionInstance) -> None:
        try:
            with self._db.lock:
                conn = self._db.get_connection()
                with conn:
                    self._insert_instance(conn, instance)
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("append ledger entry", e)

    async def list_instances(
        self,
        kind: Optional[TransactionKind] = None,
    ) -> list[TransactionInstance]:
        kinds = [kind] if kind is not None else [TransactionKind.EXPENSE, TransactionKind.INCOME]
        instances = []
        try:
            with self._db.lock:
                conn = self._db.get_connection()
                for k in kinds:
                    rows = conn.execute(
                        f"SELECT * FROM {LEDGER_TABLES[k]} ORDER BY occurred_on, created_at"
                    ).fetchall()
                    instances.extend(self._row_to_instance(k, r) for r in rows)
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("list ledger entries", e)
        return instances

    async def find_period(self, period: PeriodKey) -> Optional[UUID]:
        try:
            with self._db.lock:
                row = self._db.get_connection().execute(
                    "SELECT instance_id FROM recurring_periods WHERE series_id = ? AND due_date = ?",
                    (str(period.series_id), period.due_date.isoformat()),
                ).fetchone()
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("look up period", e)
        return UUID(row["instance_id"]) if row else None

    async def record_materialization(self, result: MaterializationResult) -> None:
        period = result.period
        advanced = result.updated_series
        try:
            with self._db.lock:
                conn = self._db.get_connection()
                with conn:
                    try:
                        conn.execute(
                            """INSERT INTO recurring_periods (series_id, due_date, instance_id)
                               VALUES (?, ?, ?)""",
                            (str(period.series_id), period.due_date.isoformat(), str(result.instance.id)),
                        )
                    except sqlite3.IntegrityError:
                        row = conn.execute(
                            "SELECT instance_id FROM recurring_periods WHERE series_id = ? AND due_date = ?",
                            (str(period.series_id), period.due_date.isoformat()),
                        ).fetchone()
                        raise DuplicatePeriodError(
                            period, UUID(row["instance_id"]) if row else None
                        )

                    self._insert_instance(conn, result.instance)

                    cursor = conn.execute(
                        """UPDATE recurring_series SET next_due_date = ?, is_active = ?
                           WHERE id = ? AND next_due_date = ? AND is_active = 1""",
                        (
                            advanced.next_due_date.isoformat(),
                            1 if advanced.active else 0,
                            str(advanced.id),
                            period.due_date.isoformat(),
                        ),
                    )
                    if cursor.rowcount == 0:
                        exists = conn.execute(
                            "SELECT 1 FROM recurring_series WHERE id = ?", (str(advanced.id),)
                        ).fetchone()
                        if exists is None:
                            raise NotFoundError(f"Recurring series not found: {advanced.id}")
                        raise SeriesConflictError(period)
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("record materialization", e)


class SQLiteAuditStorage(AuditStorageInterface):
    """Audit events appended to the audit_events table."""

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    def _select(
        self,
        where: str,
        params: tuple,
        order: str = "timestamp",
        limit: Optional[int] = None,
    ) -> list[AuditEvent]:
        query = f"SELECT * FROM audit_events {where} ORDER BY {order}"
        if limit is not None:
            query += " LIMIT ?"
            params = params + (limit,)
        try:
            with self._db.lock:
                rows = self._db.get_connection().execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("read audit events", e)
        return [AuditEvent.from_row(tuple(r)) for r in rows]

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._db.lock:
                conn = self._db.get_connection()
                with conn:
                    conn.execute(
                        "INSERT INTO audit_events VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        event.to_row(),
                    )
            return True
        except sqlite3.Error as e:
            raise _wrap_sqlite_error("append audit event", e)

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._select("WHERE correlation_id = ?", (str(correlation_id),))

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return self._select(
            "WHERE entity_type = ? AND entity_id = ?", (entity_type, str(entity_id))
        )

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return self._select("", (), order="timestamp DESC", limit=limit)
