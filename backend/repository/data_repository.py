"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional
from uuid import uuid4

from backend.domain.models import AliasKind, Resource, ResourceAlias
from backend.domain.naming import normalize_reference
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class EventRecord:
    """Locally authored booking projection used by the local event adapter."""

    event_id: str
    title: str
    start_date: str
    end_date: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    all_day: bool
    location: Optional[str]
    resource_id: Optional[int]
    status: str
    external_reservation_id: Optional[str]
    recurring_pattern: Optional[str]


_DEMO_RESOURCES: tuple[tuple[int, str, Optional[str], str, int], ...] = (
    (101, "Beit Midrash", "101", "Sanctuary", 120),
    (155, "Room 200", "200", "Classroom", 28),
    (164, "313", "313", "Classroom", 24),
    (165, "313A", None, "Classroom", 12),
    (166, "313 Annex", None, "Classroom", 10),
    (170, "Ulam", "ULAM", "Hall", 300),
    (171, "Ulam 1", None, "Hall", 150),
    (172, "Ulam 2", None, "Hall", 150),
    (180, "Gym", "GYM", "Athletics", 400),
    (181, "Gym Side 1", None, "Athletics", 200),
    (182, "Gym Side 2", None, "Athletics", 200),
    (1012, "1012 Library", "1012", "Library", 60),
)


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Resources (
                        id INTEGER PRIMARY KEY,
                        name TEXT NOT NULL,
                        abbreviation TEXT,
                        resource_type TEXT,
                        capacity INTEGER CHECK (capacity IS NULL OR capacity > 0),
                        synced_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ResourceAliases (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        resource_id INTEGER NOT NULL,
                        alias_kind TEXT NOT NULL
                            CHECK (alias_kind IN ('foreign_id', 'name', 'abbreviation')),
                        alias_value TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (alias_kind, alias_value),
                        FOREIGN KEY (resource_id) REFERENCES Resources(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Events (
                        id TEXT PRIMARY KEY,
                        title TEXT NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT,
                        start_time TEXT,
                        end_time TEXT,
                        all_day INTEGER NOT NULL DEFAULT 0 CHECK (all_day IN (0,1)),
                        location TEXT,
                        resource_id INTEGER,
                        status TEXT NOT NULL DEFAULT 'confirmed',
                        is_hidden INTEGER NOT NULL DEFAULT 0 CHECK (is_hidden IN (0,1)),
                        external_reservation_id TEXT,
                        recurring_pattern TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (resource_id) REFERENCES Resources(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_aliases_resource
                    ON ResourceAliases(resource_id);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_events_resource_date
                    ON Events(resource_id, start_date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_events_external_reservation
                    ON Events(external_reservation_id);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed a small resource catalog only when the table is empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Resources;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Resource catalog already present; skipping seed")
                    return
                cursor.executemany(
                    """
                    INSERT INTO Resources (id, name, abbreviation, resource_type, capacity)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    _DEMO_RESOURCES,
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc
        alias_count = self.auto_populate_aliases()
        logger.info(
            "Demo seed completed | resources=%s | aliases=%s",
            len(_DEMO_RESOURCES),
            alias_count,
        )

    def create_resource(
        self,
        resource_id: int,
        name: str,
        abbreviation: Optional[str] = None,
        resource_type: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Resources (id, name, abbreviation, resource_type, capacity)
                VALUES (?, ?, ?, ?, ?);
                """,
                (resource_id, name, abbreviation, resource_type, capacity),
            )
            conn.commit()
            return int(resource_id)

    @staticmethod
    def _row_to_resource(row: sqlite3.Row) -> Resource:
        return Resource(
            resource_id=int(row["id"]),
            name=str(row["name"]),
            abbreviation=row["abbreviation"],
            resource_type=row["resource_type"],
            capacity=int(row["capacity"]) if row["capacity"] is not None else None,
        )

    def get_resource(self, resource_id: int) -> Optional[Resource]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, abbreviation, resource_type, capacity
                FROM Resources WHERE id = ?;
                """,
                (resource_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_resource(row)

    def list_resources(self) -> List[Resource]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, abbreviation, resource_type, capacity
                FROM Resources
                ORDER BY id ASC;
                """
            )
            return [self._row_to_resource(row) for row in cursor.fetchall()]

    def list_aliases(self, resource_id: Optional[int] = None) -> List[ResourceAlias]:
        query = "SELECT id, resource_id, alias_kind, alias_value FROM ResourceAliases"
        params: tuple[int, ...] = ()
        if resource_id is not None:
            query += " WHERE resource_id = ?"
            params = (resource_id,)
        query += " ORDER BY resource_id ASC, alias_kind ASC, alias_value ASC;"
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [
                ResourceAlias(
                    alias_id=int(row["id"]),
                    resource_id=int(row["resource_id"]),
                    alias_kind=AliasKind(row["alias_kind"]),
                    alias_value=str(row["alias_value"]),
                )
                for row in cursor.fetchall()
            ]

    def load_alias_map(self) -> dict[tuple[AliasKind, str], int]:
        """Return every alias keyed by (kind, value) for in-memory lookup."""
        return {
            (alias.alias_kind, alias.alias_value): alias.resource_id
            for alias in self.list_aliases()
        }

    def upsert_alias(
        self,
        resource_id: int,
        alias_kind: AliasKind,
        alias_value: str,
        *,
        overwrite: bool = False,
    ) -> Optional[ResourceAlias]:
        """Insert an alias; on (kind, value) conflict keep or re-point it.

        Safe under concurrent duplicate calls: the unique constraint decides
        the winner and the loser becomes a no-op.
        """
        value = normalize_reference(alias_value)
        if not value:
            return None
        conflict_clause = (
            "DO UPDATE SET resource_id = excluded.resource_id"
            if overwrite
            else "DO NOTHING"
        )
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO ResourceAliases (resource_id, alias_kind, alias_value)
                VALUES (?, ?, ?)
                ON CONFLICT (alias_kind, alias_value) {conflict_clause};
                """,
                (resource_id, alias_kind.value, value),
            )
            cursor.execute(
                """
                SELECT id, resource_id, alias_kind, alias_value
                FROM ResourceAliases
                WHERE alias_kind = ? AND alias_value = ?;
                """,
                (alias_kind.value, value),
            )
            row = cursor.fetchone()
            conn.commit()
        if row is None:
            return None
        return ResourceAlias(
            alias_id=int(row["id"]),
            resource_id=int(row["resource_id"]),
            alias_kind=AliasKind(row["alias_kind"]),
            alias_value=str(row["alias_value"]),
        )

    def delete_alias(self, alias_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM ResourceAliases WHERE id = ?;", (alias_id,))
            conn.commit()
            return cursor.rowcount > 0

    def auto_populate_aliases(self) -> int:
        """Derive foreign-id, name and abbreviation aliases from the catalog."""
        rows: list[tuple[int, str, str]] = []
        for resource in self.list_resources():
            rows.append((resource.resource_id, AliasKind.FOREIGN_ID.value, str(resource.resource_id)))
            name = normalize_reference(resource.name)
            if name:
                rows.append((resource.resource_id, AliasKind.NAME.value, name))
            abbreviation = normalize_reference(resource.abbreviation)
            if abbreviation:
                rows.append((resource.resource_id, AliasKind.ABBREVIATION.value, abbreviation))
        if not rows:
            return 0
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                """
                INSERT INTO ResourceAliases (resource_id, alias_kind, alias_value)
                VALUES (?, ?, ?)
                ON CONFLICT (alias_kind, alias_value) DO NOTHING;
                """,
                rows,
            )
            conn.commit()
        return len(rows)

    def create_event(
        self,
        *,
        title: str,
        start_date: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        end_date: Optional[str] = None,
        all_day: bool = False,
        location: Optional[str] = None,
        resource_id: Optional[int] = None,
        status: str = "confirmed",
        is_hidden: bool = False,
        external_reservation_id: Optional[str] = None,
        recurring_pattern: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> str:
        """Insert an event row and return its id."""
        new_id = event_id or str(uuid4())
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Events (
                    id, title, start_date, end_date, start_time, end_time, all_day,
                    location, resource_id, status, is_hidden,
                    external_reservation_id, recurring_pattern
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    new_id,
                    title,
                    start_date,
                    end_date,
                    start_time,
                    end_time,
                    int(all_day),
                    location,
                    resource_id,
                    status,
                    int(is_hidden),
                    external_reservation_id,
                    recurring_pattern,
                ),
            )
            conn.commit()
        return new_id

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> EventRecord:
        return EventRecord(
            event_id=str(row["id"]),
            title=str(row["title"]),
            start_date=str(row["start_date"]),
            end_date=row["end_date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            all_day=bool(row["all_day"]),
            location=row["location"],
            resource_id=int(row["resource_id"]) if row["resource_id"] is not None else None,
            status=str(row["status"]),
            external_reservation_id=row["external_reservation_id"],
            recurring_pattern=row["recurring_pattern"],
        )

    _ACTIVE_ON_DATE_SQL = """
        (start_date = ? OR (end_date IS NOT NULL AND start_date <= ? AND end_date >= ?))
        AND is_hidden = 0
        AND LOWER(status) != 'cancelled'
    """

    def list_events_for_resources(
        self,
        resource_ids: Iterable[int],
        target_date: str,
    ) -> List[EventRecord]:
        """Return visible, non-cancelled events on the date linked to any given resource."""
        ids = sorted(set(resource_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM Events
                WHERE resource_id IN ({placeholders})
                  AND {self._ACTIVE_ON_DATE_SQL}
                ORDER BY start_time ASC, id ASC;
                """,
                (*ids, target_date, target_date, target_date),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def list_unlinked_events(self, target_date: str) -> List[EventRecord]:
        """Return legacy events on the date that carry only a free-text location."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM Events
                WHERE resource_id IS NULL
                  AND location IS NOT NULL
                  AND {self._ACTIVE_ON_DATE_SQL}
                ORDER BY start_time ASC, id ASC;
                """,
                (target_date, target_date, target_date),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def count_aliases(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM ResourceAliases;")
            return int(cursor.fetchone()["count"])
