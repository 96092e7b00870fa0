"""
CRM Record Store for Bridge.

SQLite-backed persistence for people and the facts known about them.

Every call opens its own connection unless a transaction is active on the
calling thread, in which case the call joins it. Multi-step mutations (merges,
Origin enforcement) wrap themselves in ``store.transaction()`` so that a crash
mid-sequence rolls back instead of leaving a half-merged record.
"""
import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from api.utils.datetime_utils import format_datetime, parse_datetime, utc_now
from api.utils.db_paths import get_crm_db_path

logger = logging.getLogger(__name__)

RELATIONSHIP_STATES = ("ok", "warm_up", "do_not_contact")
FACT_TYPES = (
    "expertise",
    "interest",
    "shared_context",
    "preference",
    "relationship_status",
    "logistics",
    "goal",
    "constraint",
)
FACT_AUTHORS = ("me", "them", "inferred")
FACT_SOURCE_TYPES = ("manual", "whatsapp", "gmail")

# Origin facts of these types drive ranking
ORIGIN_FACT_TYPES = ("goal", "preference", "constraint")

# Person columns stored as JSON arrays
LIST_FIELDS = ("universities", "interests", "tags")

PERSON_COLUMNS = (
    "id", "name", "primary_email", "phone", "organization", "role",
    "hometown", "birthday", "venmo", "universities", "interests", "tags",
    "relationship_state", "last_contacted", "notes", "is_origin",
    "created_at", "updated_at",
)
UPDATABLE_PERSON_FIELDS = frozenset(PERSON_COLUMNS) - {"id", "created_at", "updated_at"}

FACT_COLUMNS = (
    "id", "person_id", "type", "value", "author", "confidence",
    "source_type", "source_ref", "timestamp", "created_at",
)


class PersonNotFoundError(LookupError):
    """Raised when operating on a person id that does not exist."""

    def __init__(self, person_id: str):
        super().__init__(f"Person not found: {person_id}")
        self.person_id = person_id


class OriginDeletionError(ValueError):
    """Raised when asked to delete the Origin person."""

    def __init__(self, person_id: str):
        super().__init__("Cannot delete Origin. Unlink from Origin first.")
        self.person_id = person_id


def _encode_list(values: Optional[list[str]]) -> Optional[str]:
    if not values:
        return None
    return json.dumps([str(v) for v in values])


def _decode_list(raw: Optional[str]) -> Optional[list[str]]:
    """Decode a stored JSON array; anything else reads as unset."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return [str(v) for v in parsed] if isinstance(parsed, list) else None


def _validate_fact(fact: "Fact") -> None:
    if fact.type not in FACT_TYPES:
        raise ValueError(f"Unknown fact type: {fact.type}")
    if fact.author not in FACT_AUTHORS:
        raise ValueError(f"Unknown fact author: {fact.author}")
    if fact.source_type not in FACT_SOURCE_TYPES:
        raise ValueError(f"Unknown fact source: {fact.source_type}")


@dataclass
class Person:
    """
    A contact, or the Origin (the user's own record) when ``is_origin`` is set.
    """
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    primary_email: Optional[str] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    hometown: Optional[str] = None
    birthday: Optional[str] = None
    venmo: Optional[str] = None
    universities: Optional[list[str]] = None
    interests: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    relationship_state: str = "ok"
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None
    is_origin: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "primary_email": self.primary_email,
            "phone": self.phone,
            "organization": self.organization,
            "role": self.role,
            "hometown": self.hometown,
            "birthday": self.birthday,
            "venmo": self.venmo,
            "universities": self.universities,
            "interests": self.interests,
            "tags": self.tags,
            "relationship_state": self.relationship_state,
            "last_contacted": self.last_contacted.isoformat() if self.last_contacted else None,
            "notes": self.notes,
            "is_origin": self.is_origin,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Person":
        """Create Person from a SQLite row."""
        return cls(
            id=row["id"],
            name=row["name"],
            primary_email=row["primary_email"],
            phone=row["phone"],
            organization=row["organization"],
            role=row["role"],
            hometown=row["hometown"],
            birthday=row["birthday"],
            venmo=row["venmo"],
            universities=_decode_list(row["universities"]),
            interests=_decode_list(row["interests"]),
            tags=_decode_list(row["tags"]),
            relationship_state=row["relationship_state"] or "ok",
            last_contacted=parse_datetime(row["last_contacted"]),
            notes=row["notes"],
            is_origin=bool(row["is_origin"]),
            created_at=parse_datetime(row["created_at"]) or utc_now(),
            updated_at=parse_datetime(row["updated_at"]) or utc_now(),
        )


@dataclass
class Fact:
    """A single typed, attributed assertion about a person."""
    person_id: str
    type: str
    value: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    author: str = "me"
    confidence: float = 1.0
    source_type: str = "manual"
    source_ref: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "person_id": self.person_id,
            "type": self.type,
            "value": self.value,
            "author": self.author,
            "confidence": self.confidence,
            "source_type": self.source_type,
            "source_ref": self.source_ref,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def copy_to(self, person_id: str) -> "Fact":
        """New fact with the same content owned by another person (fresh id)."""
        return Fact(
            person_id=person_id,
            type=self.type,
            value=self.value,
            author=self.author,
            confidence=self.confidence,
            source_type=self.source_type,
            source_ref=self.source_ref,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Fact":
        """Create Fact from a SQLite row."""
        return cls(
            id=row["id"],
            person_id=row["person_id"],
            type=row["type"],
            value=row["value"] or "",
            author=row["author"] or "me",
            confidence=row["confidence"] if row["confidence"] is not None else 1.0,
            source_type=row["source_type"] or "manual",
            source_ref=row["source_ref"],
            timestamp=parse_datetime(row["timestamp"]) or utc_now(),
            created_at=parse_datetime(row["created_at"]) or utc_now(),
        )


class CrmStore:
    """
    SQLite-backed storage for people and facts.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the store, creating tables if needed."""
        self.db_path = str(db_path) if db_path else get_crm_db_path()
        self._local = threading.local()
        self._init_db()

    def _init_db(self):
        """Create the people and facts tables if they don't exist."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS people (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    primary_email TEXT,
                    phone TEXT,
                    organization TEXT,
                    role TEXT,
                    hometown TEXT,
                    birthday TEXT,
                    venmo TEXT,
                    universities TEXT,
                    interests TEXT,
                    tags TEXT,
                    relationship_state TEXT NOT NULL DEFAULT 'ok',
                    last_contacted TEXT,
                    notes TEXT,
                    is_origin INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS facts (
                    id TEXT PRIMARY KEY,
                    person_id TEXT NOT NULL REFERENCES people(id) ON DELETE CASCADE,
                    type TEXT NOT NULL,
                    value TEXT NOT NULL,
                    author TEXT NOT NULL DEFAULT 'me',
                    confidence REAL NOT NULL DEFAULT 1.0,
                    source_type TEXT NOT NULL DEFAULT 'manual',
                    source_ref TEXT,
                    timestamp TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            # Index for efficient person queries
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_facts_person
                ON facts(person_id)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_people_origin
                ON people(is_origin)
            """)

            conn.commit()
            logger.info(f"Initialized CRM tables in {self.db_path}")
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the active transaction connection, or a short-lived one."""
        tx_conn = getattr(self._local, "tx_conn", None)
        if tx_conn is not None:
            yield tx_conn
            return

        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator["CrmStore"]:
        """
        Run a block of store calls atomically.

        Nested calls join the outer transaction. Any exception rolls back
        every write made inside the block and is re-raised.
        """
        if getattr(self._local, "tx_conn", None) is not None:
            yield self
            return

        conn = self._connect()
        self._local.tx_conn = conn
        try:
            yield self
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.tx_conn = None
            conn.close()

    # ------------------------------------------------------------------
    # People
    # ------------------------------------------------------------------

    def create_person(self, person: Person) -> Person:
        """Insert a new person."""
        values = self._person_values(person)
        placeholders = ", ".join("?" for _ in PERSON_COLUMNS)
        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO people ({', '.join(PERSON_COLUMNS)}) VALUES ({placeholders})",
                [values[c] for c in PERSON_COLUMNS],
            )
        logger.debug(f"Created person {person.id} ({person.name})")
        return person

    def get_person(self, person_id: str) -> Optional[Person]:
        """Get person by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM people WHERE id = ?", (person_id,)
            ).fetchone()
        return Person.from_row(row) if row else None

    def require_person(self, person_id: str) -> Person:
        """Get person by ID or raise PersonNotFoundError."""
        person = self.get_person(person_id)
        if person is None:
            raise PersonNotFoundError(person_id)
        return person

    def list_people(
        self,
        include_origin: bool = True,
        relationship_state: Optional[str] = None,
    ) -> list[Person]:
        """
        List people in creation order.

        Args:
            include_origin: If False, the Origin is left out
            relationship_state: Only return people in this state
        """
        query = "SELECT * FROM people"
        clauses = []
        params: list = []
        if not include_origin:
            clauses.append("is_origin = 0")
        if relationship_state:
            clauses.append("relationship_state = ?")
            params.append(relationship_state)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at, id"

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Person.from_row(row) for row in rows]

    def get_origins(self) -> list[Person]:
        """All people currently flagged as Origin (normally zero or one)."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM people WHERE is_origin = 1 ORDER BY created_at, id"
            ).fetchall()
        return [Person.from_row(row) for row in rows]

    def update_person(self, person_id: str, **changes) -> Person:
        """
        Update the given fields of a person.

        Only the named fields are written; ``updated_at`` is always refreshed.

        Raises:
            PersonNotFoundError: If no person has this ID
            ValueError: If an unknown field is named
        """
        unknown = set(changes) - UPDATABLE_PERSON_FIELDS
        if unknown:
            raise ValueError(f"Unknown person fields: {sorted(unknown)}")

        columns = self._person_values(Person(**{"name": "", **changes}))
        assignments = {k: columns[k] for k in changes}
        assignments["updated_at"] = format_datetime(utc_now())

        set_clause = ", ".join(f"{k} = ?" for k in assignments)
        with self._connection() as conn:
            cursor = conn.execute(
                f"UPDATE people SET {set_clause} WHERE id = ?",
                [*assignments.values(), person_id],
            )
            if cursor.rowcount == 0:
                raise PersonNotFoundError(person_id)
        return self.require_person(person_id)

    def delete_person(self, person_id: str, allow_origin: bool = False) -> None:
        """
        Delete a person and, by cascade, all of their facts.

        Raises:
            PersonNotFoundError: If no person has this ID
            OriginDeletionError: If the person is the Origin and allow_origin is False
        """
        person = self.require_person(person_id)
        if person.is_origin and not allow_origin:
            raise OriginDeletionError(person_id)

        with self._connection() as conn:
            conn.execute("DELETE FROM facts WHERE person_id = ?", (person_id,))
            conn.execute("DELETE FROM people WHERE id = ?", (person_id,))
        logger.debug(f"Deleted person {person_id}")

    def clear_origin_flags(self) -> int:
        """Unset is_origin everywhere. Returns the number of people changed."""
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE people SET is_origin = 0, updated_at = ? WHERE is_origin = 1",
                (format_datetime(utc_now()),),
            )
            return cursor.rowcount

    def set_origin(self, person_id: str) -> Person:
        """Flag a person as Origin. Callers clear other flags first."""
        return self.update_person(person_id, is_origin=True)

    @staticmethod
    def _person_values(person: Person) -> dict:
        state = person.relationship_state or "ok"
        if state not in RELATIONSHIP_STATES:
            raise ValueError(f"Unknown relationship state: {state}")
        return {
            "id": person.id,
            "name": person.name,
            "primary_email": person.primary_email,
            "phone": person.phone,
            "organization": person.organization,
            "role": person.role,
            "hometown": person.hometown,
            "birthday": person.birthday,
            "venmo": person.venmo,
            "universities": _encode_list(person.universities),
            "interests": _encode_list(person.interests),
            "tags": _encode_list(person.tags),
            "relationship_state": state,
            "last_contacted": format_datetime(person.last_contacted),
            "notes": person.notes,
            "is_origin": 1 if person.is_origin else 0,
            "created_at": format_datetime(person.created_at),
            "updated_at": format_datetime(person.updated_at),
        }

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    def create_fact(self, fact: Fact) -> Fact:
        """Insert a single fact."""
        return self.create_facts([fact])[0]

    def create_facts(self, facts: list[Fact]) -> list[Fact]:
        """Insert several facts in one statement batch."""
        if not facts:
            return []
        for f in facts:
            _validate_fact(f)
        placeholders = ", ".join("?" for _ in FACT_COLUMNS)
        with self._connection() as conn:
            conn.executemany(
                f"INSERT INTO facts ({', '.join(FACT_COLUMNS)}) VALUES ({placeholders})",
                [
                    (
                        f.id,
                        f.person_id,
                        f.type,
                        f.value,
                        f.author,
                        f.confidence,
                        f.source_type,
                        f.source_ref,
                        format_datetime(f.timestamp),
                        format_datetime(f.created_at),
                    )
                    for f in facts
                ],
            )
        return facts

    def get_facts(self, person_id: str) -> list[Fact]:
        """All facts owned by a person, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM facts WHERE person_id = ? ORDER BY created_at, id",
                (person_id,),
            ).fetchall()
        return [Fact.from_row(row) for row in rows]

    def get_facts_by_person(self) -> dict[str, list[Fact]]:
        """Every fact grouped by owning person id (one query)."""
        grouped: dict[str, list[Fact]] = {}
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM facts ORDER BY created_at, id"
            ).fetchall()
        for row in rows:
            fact = Fact.from_row(row)
            grouped.setdefault(fact.person_id, []).append(fact)
        return grouped

    def count_facts_by_person(self) -> dict[str, int]:
        """Fact counts keyed by person id."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT person_id, COUNT(*) AS n FROM facts GROUP BY person_id"
            ).fetchall()
        return {row["person_id"]: row["n"] for row in rows}

    def find_fact(
        self,
        person_id: str,
        fact_type: str,
        value: str,
        source_type: Optional[str] = None,
    ) -> Optional[Fact]:
        """Find a fact with identical content, optionally from the same source."""
        query = "SELECT * FROM facts WHERE person_id = ? AND type = ? AND value = ?"
        params = [person_id, fact_type, value]
        if source_type is not None:
            query += " AND source_type = ?"
            params.append(source_type)
        with self._connection() as conn:
            row = conn.execute(query + " LIMIT 1", params).fetchone()
        return Fact.from_row(row) if row else None

    def delete_fact(self, fact_id: str) -> bool:
        """Delete a fact by ID."""
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM facts WHERE id = ?", (fact_id,))
            return cursor.rowcount > 0

    def delete_facts_for_person(self, person_id: str) -> int:
        """Delete all facts for a person."""
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM facts WHERE person_id = ?", (person_id,)
            )
            return cursor.rowcount


# Singleton instance
_crm_store: Optional[CrmStore] = None


def get_crm_store(db_path: Optional[str] = None) -> CrmStore:
    """Get or create the singleton CrmStore."""
    global _crm_store
    if _crm_store is None:
        _crm_store = CrmStore(db_path)
    return _crm_store
