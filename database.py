import json
import logging
import sqlite3
from contextlib import contextmanager
from filters import EventFilter, EventQuery
from models import Event, ScheduleEntry, TicketType, Favorite, User
from errors import ConflictError, UnexpectedStorageError
from utils import fits_int64, parse_date, to_storage, utcnow

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ("event_id, title, description, category, image, schedule, ticket_types, "
                 "organizer, tags, created_at, updated_at")

SORT_COLUMNS = {
    "eventId": "event_id",
    "title": "title",
    "category": "category",
    "organizer": "organizer",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "date": "(SELECT MIN(json_extract(s.value, '$.date')) FROM json_each(events.schedule) s)",
    "price": "(SELECT MIN(json_extract(t.value, '$.price')) FROM json_each(events.ticket_types) t)",
}

def compile_filter(flt: EventFilter) -> tuple[str, list]:
    """Compile an EventFilter into a SQL WHERE clause and its parameters."""
    clauses, params = [], []

    if flt.search_terms:
        terms = []
        for term in flt.search_terms:
            terms.append(
                "(instr(casefold(title), casefold(?)) > 0 OR instr(casefold(description), casefold(?)) > 0"
                " OR EXISTS (SELECT 1 FROM json_each(events.tags) g WHERE instr(casefold(g.value), casefold(?)) > 0))"
            )
            params.extend([term] * 3)
        clauses.append("(" + " OR ".join(terms) + ")")

    for column, values in (("category", flt.categories), ("event_id", flt.event_ids)):
        if values is None:
            continue
        if not values:
            clauses.append("0")
            continue
        clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
        params.extend(values)

    if flt.schedule is not None:
        conds = []
        if flt.schedule.location is not None:
            conds.append("instr(casefold(json_extract(s.value, '$.location')), casefold(?)) > 0")
            params.append(flt.schedule.location)
        if flt.schedule.date_from is not None:
            conds.append("json_extract(s.value, '$.date') >= ?")
            params.append(to_storage(flt.schedule.date_from))
        if flt.schedule.date_to is not None:
            conds.append("json_extract(s.value, '$.date') <= ?")
            params.append(to_storage(flt.schedule.date_to))
        if conds:
            clauses.append("EXISTS (SELECT 1 FROM json_each(events.schedule) s WHERE "
                           + " AND ".join(conds) + ")")

    if flt.tickets is not None:
        conds = []
        if flt.tickets.min_price is not None:
            conds.append("json_extract(t.value, '$.price') >= ?")
            params.append(flt.tickets.min_price)
        if flt.tickets.max_price is not None:
            conds.append("json_extract(t.value, '$.price') <= ?")
            params.append(flt.tickets.max_price)
        if flt.tickets.available_only:
            conds.append("json_extract(t.value, '$.availableTickets') > 0")
        if conds:
            clauses.append("EXISTS (SELECT 1 FROM json_each(events.ticket_types) t WHERE "
                           + " AND ".join(conds) + ")")

    return " AND ".join(clauses) or "1", params

def _dump_schedule(schedule):
    entries = []
    for s in schedule:
        entry = {"date": to_storage(s.date), "location": s.location}
        if s.lat is not None:
            entry["lat"] = s.lat
        if s.lng is not None:
            entry["lng"] = s.lng
        entries.append(entry)
    return json.dumps(entries)

def _dump_ticket_types(ticket_types):
    return json.dumps([t.to_dict() for t in ticket_types])

def _event_from_row(row) -> Event:
    return Event(
        event_id=row[0], title=row[1], description=row[2], category=row[3], image=row[4],
        schedule=[ScheduleEntry(date=parse_date(s["date"]), location=s["location"],
                                lat=s.get("lat"), lng=s.get("lng"))
                  for s in json.loads(row[5])],
        ticket_types=[TicketType(type=t["type"], price=t["price"], available_tickets=t["availableTickets"])
                      for t in json.loads(row[6])],
        organizer=row[7], tags=json.loads(row[8]), created_at=row[9], updated_at=row[10]
    )

def _casefold(value):
    return str(value).casefold() if value is not None else None

class Database:
    def __init__(self, db_name="events.db"):
        """
        Initialize SQLite database connection.
        Events are stored as JSON documents; schedule and ticket types are
        queried with json_each, which needs the JSON1 functions (built in
        since SQLite 3.38).
        """
        self.conn = sqlite3.connect(db_name, check_same_thread=False)
        # sqlite lower() only folds ASCII
        self.conn.create_function("casefold", 1, _casefold, deterministic=True)
        self.create_tables()

    @contextmanager
    def cursor(self):
        """Yield a cursor, committing on success and translating sqlite errors."""
        try:
            cursor = self.conn.cursor()
            yield cursor
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise ConflictError("Duplicate key") from e
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.exception("Storage failure")
            raise UnexpectedStorageError("Unexpected storage error") from e

    def create_tables(self):
        """Create database tables with appropriate indexes."""
        with self.cursor() as cursor:
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    event_id INTEGER PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL,
                    image TEXT NOT NULL DEFAULT '',
                    schedule TEXT NOT NULL,
                    ticket_types TEXT NOT NULL,
                    organizer TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS favorites (
                    user_id TEXT NOT NULL,
                    event_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, event_id)
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL,
                    password TEXT NOT NULL
                )
            ''')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_category ON events(category)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_favorites_event_id ON favorites(event_id)')

    # -------------------------------
    # Events
    # -------------------------------
    def find_events(self, query: EventQuery) -> list[Event]:
        """Retrieve one page of events matching the query."""
        where, params = compile_filter(query.filter)
        order = SORT_COLUMNS.get(query.sort_by, "event_id")
        direction = "DESC" if query.sort_by and query.descending else "ASC"
        sql = (f"SELECT {EVENT_COLUMNS} FROM events WHERE {where} "
               f"ORDER BY {order} {direction}, event_id ASC LIMIT ? OFFSET ?")
        with self.cursor() as cursor:
            cursor.execute(sql, params + [query.limit, query.skip])
            return [_event_from_row(r) for r in cursor.fetchall()]

    def find_all_events(self, flt: EventFilter) -> list[Event]:
        """Retrieve every event matching the filter, in storage order."""
        where, params = compile_filter(flt)
        with self.cursor() as cursor:
            cursor.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE {where} ORDER BY event_id", params)
            return [_event_from_row(r) for r in cursor.fetchall()]

    def count_events(self, flt: EventFilter) -> int:
        where, params = compile_filter(flt)
        with self.cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) FROM events WHERE {where}", params)
            return cursor.fetchone()[0]

    def get_event(self, event_id: int) -> Event | None:
        """Retrieve an event by eventId."""
        if not fits_int64(event_id):
            return None
        with self.cursor() as cursor:
            cursor.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE event_id = ?", (event_id,))
            row = cursor.fetchone()
        return _event_from_row(row) if row else None

    def max_event_id(self) -> int:
        with self.cursor() as cursor:
            cursor.execute("SELECT MAX(event_id) FROM events")
            result = cursor.fetchone()[0]
        return result or 0

    def add_event(self, event: Event) -> Event:
        """Insert an event, stamping createdAt/updatedAt."""
        now = to_storage(utcnow())
        event.created_at = event.updated_at = now
        with self.cursor() as cursor:
            cursor.execute(f'''
                INSERT INTO events ({EVENT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (event.event_id, event.title, event.description, event.category, event.image,
                  _dump_schedule(event.schedule), _dump_ticket_types(event.ticket_types),
                  event.organizer, json.dumps(event.tags), event.created_at, event.updated_at))
        return event

    def replace_event(self, event: Event) -> bool:
        """Overwrite every stored field of an existing event."""
        event.updated_at = to_storage(utcnow())
        with self.cursor() as cursor:
            cursor.execute('''
                UPDATE events SET title = ?, description = ?, category = ?, image = ?, schedule = ?,
                    ticket_types = ?, organizer = ?, tags = ?, updated_at = ?
                WHERE event_id = ?
            ''', (event.title, event.description, event.category, event.image,
                  _dump_schedule(event.schedule), _dump_ticket_types(event.ticket_types),
                  event.organizer, json.dumps(event.tags), event.updated_at, event.event_id))
            return cursor.rowcount > 0

    def clear_events(self) -> int:
        """Remove every event and favorite; returns the number of events removed."""
        with self.cursor() as cursor:
            cursor.execute('DELETE FROM favorites')
            cursor.execute('DELETE FROM events')
            return cursor.rowcount

    def delete_event(self, event_id: int) -> bool:
        """Delete an event and its favorites."""
        if not fits_int64(event_id):
            return False
        with self.cursor() as cursor:
            cursor.execute('DELETE FROM favorites WHERE event_id = ?', (event_id,))
            cursor.execute('DELETE FROM events WHERE event_id = ?', (event_id,))
            return cursor.rowcount > 0

    # -------------------------------
    # Favorites
    # -------------------------------
    def list_favorites(self, user_id: str) -> list[Favorite]:
        with self.cursor() as cursor:
            cursor.execute('SELECT user_id, event_id FROM favorites WHERE user_id = ? ORDER BY created_at',
                           (user_id,))
            return [Favorite(user_id=r[0], event_id=r[1]) for r in cursor.fetchall()]

    def get_favorite(self, user_id: str, event_id: int) -> Favorite | None:
        if not fits_int64(event_id):
            return None
        with self.cursor() as cursor:
            cursor.execute('SELECT user_id, event_id FROM favorites WHERE user_id = ? AND event_id = ?',
                           (user_id, event_id))
            row = cursor.fetchone()
        return Favorite(user_id=row[0], event_id=row[1]) if row else None

    def add_favorite(self, favorite: Favorite):
        """Insert a favorite; a repeated (user, event) pair raises ConflictError."""
        with self.cursor() as cursor:
            cursor.execute('INSERT INTO favorites (user_id, event_id, created_at) VALUES (?, ?, ?)',
                           (favorite.user_id, favorite.event_id, to_storage(utcnow())))

    def delete_favorite(self, user_id: str, event_id: int) -> bool:
        if not fits_int64(event_id):
            return False
        with self.cursor() as cursor:
            cursor.execute('DELETE FROM favorites WHERE user_id = ? AND event_id = ?', (user_id, event_id))
            return cursor.rowcount > 0

    # -------------------------------
    # Users
    # -------------------------------
    def add_user(self, user: User):
        """Add a user to the database."""
        with self.cursor() as cursor:
            cursor.execute('INSERT INTO users (id, name, email, password) VALUES (?, ?, ?, ?)',
                           (user.id, user.name, user.email, user.password))

    def list_users(self) -> list[User]:
        with self.cursor() as cursor:
            cursor.execute('SELECT id, name, email, password FROM users ORDER BY rowid')
            return [User(*r) for r in cursor.fetchall()]

    def get_user(self, user_id: str) -> User | None:
        with self.cursor() as cursor:
            cursor.execute('SELECT id, name, email, password FROM users WHERE id = ?', (user_id,))
            row = cursor.fetchone()
        return User(*row) if row else None

    def get_user_by_name(self, name: str) -> User | None:
        """Retrieve a user by name."""
        with self.cursor() as cursor:
            cursor.execute('SELECT id, name, email, password FROM users WHERE name = ?', (name,))
            row = cursor.fetchone()
        return User(*row) if row else None

    def update_user(self, user: User) -> bool:
        with self.cursor() as cursor:
            cursor.execute('UPDATE users SET name = ?, email = ?, password = ? WHERE id = ?',
                           (user.name, user.email, user.password, user.id))
            return cursor.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        with self.cursor() as cursor:
            cursor.execute('DELETE FROM users WHERE id = ?', (user_id,))
            return cursor.rowcount > 0

    def close(self):
        """Close the database connection."""
        self.conn.close()
