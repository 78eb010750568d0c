import logging
import uuid
from dataclasses import dataclass, replace
from typing import Iterable
from models import Event, ScheduleEntry, TicketType, Favorite, User
from database import Database
from filters import EventFilter, EventQuery, build_event_query
from errors import ConflictError, NotFoundError, IndexOutOfRangeError, InvalidCredentialsError, ValidationError
from auth import hash_password, verify_password
from utils import parse_date

logger = logging.getLogger(__name__)

def schedule_from_dicts(entries: list[dict]) -> list[ScheduleEntry]:
    """Build schedule entries from request data, parsing each date."""
    return [
        ScheduleEntry(
            date=parse_date(e.get("date"), f"schedule.{i}.date"),
            location=e.get("location"),
            lat=e.get("lat"),
            lng=e.get("lng"),
        )
        for i, e in enumerate(entries)
    ]

def ticket_types_from_dicts(entries: list[dict]) -> list[TicketType]:
    return [
        TicketType(type=t.get("type"), price=t.get("price"), available_tickets=t.get("available_tickets"))
        for t in entries
    ]

def _check_index(index: int, items: list, what: str):
    if index < 0 or index >= len(items):
        raise IndexOutOfRangeError(f"Invalid {what} index")

@dataclass
class EventPage:
    query: EventQuery
    total: int
    events: list[Event]

    def to_dict(self) -> dict:
        return {
            "page": self.query.page,
            "totalPages": self.query.total_pages(self.total),
            "totalResults": self.total,
            "events": [e.to_dict() for e in self.events],
        }

class EventManager:
    def __init__(self, db: Database):
        """Initialize EventManager with database."""
        self.db = db

    def list_events(self, params) -> EventPage:
        """Filter, sort and paginate events from raw query parameters."""
        query = build_event_query(params)
        total = self.db.count_events(query.filter)
        events = self.db.find_events(query)
        return EventPage(query=query, total=total, events=events)

    def get_event(self, event_id: int) -> Event:
        """Retrieve an event by eventId."""
        event = self.db.get_event(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def create_event(self, data: dict) -> Event:
        """Validate and store a new event under the next free eventId."""
        event = Event(
            event_id=self.db.max_event_id() + 1,
            title=data.get("title"),
            category=data.get("category"),
            schedule=schedule_from_dicts(data.get("schedule") or []),
            ticket_types=ticket_types_from_dicts(data.get("ticket_types") or []),
            organizer=data.get("organizer"),
            description=data.get("description") or "",
            image=data.get("image") or "",
            tags=data.get("tags") or [],
        )
        event.validate()
        try:
            self.db.add_event(event)
        except ConflictError:
            raise ConflictError(f"eventId {event.event_id} was taken concurrently, retry the request")
        logger.info(f"Event {event.event_id} created")
        return event

    def update_event(self, event_id: int, changes: dict) -> Event:
        """Apply the provided top-level fields and re-validate the whole event."""
        event = self.get_event(event_id)
        if "schedule" in changes:
            changes["schedule"] = schedule_from_dicts(changes["schedule"] or [])
        if "ticket_types" in changes:
            changes["ticket_types"] = ticket_types_from_dicts(changes["ticket_types"] or [])
        for key in ("title", "category", "organizer"):
            if key in changes and changes[key] is None:
                raise ValidationError(key)
        updated = replace(event, **changes)
        updated.validate()
        if not self.db.replace_event(updated):
            raise NotFoundError("Event not found")
        logger.info(f"Event {event_id} updated")
        return updated

    def delete_event(self, event_id: int):
        """Delete an event and the favorites pointing at it."""
        if not self.db.delete_event(event_id):
            raise NotFoundError("Event not found")
        logger.info(f"Event {event_id} deleted")

    def patch_ticket_type(self, event_id: int, index: int, changes: dict) -> Event:
        """Merge the given fields into one ticket type; other fields stay untouched."""
        event = self.get_event(event_id)
        _check_index(index, event.ticket_types, "ticket type")
        event.ticket_types[index] = replace(event.ticket_types[index], **changes)
        event.validate()
        # Read-modify-write: a concurrent patch of the same event can be lost.
        self.db.replace_event(event)
        logger.info(f"Event {event_id} ticket type {index} patched")
        return event

    def patch_schedule_entry(self, event_id: int, index: int, changes: dict) -> Event:
        """Merge the given fields into one schedule entry, parsing a new date first."""
        event = self.get_event(event_id)
        _check_index(index, event.schedule, "schedule")
        if "date" in changes:
            changes["date"] = parse_date(changes["date"], "date")
        event.schedule[index] = replace(event.schedule[index], **changes)
        event.validate()
        self.db.replace_event(event)
        logger.info(f"Event {event_id} schedule entry {index} patched")
        return event

class FavoriteManager:
    def __init__(self, db: Database):
        self.db = db

    def list_favorites(self, user_id: str) -> list[dict]:
        """Events the user has favorited, each tagged favorited=True."""
        ids = tuple(f.event_id for f in self.db.list_favorites(user_id))
        events = self.db.find_all_events(EventFilter(event_ids=ids))
        return [{**e.to_dict(), "favorited": True} for e in events]

    def add_favorite(self, user_id: str, event_id: int):
        if self.db.get_favorite(user_id, event_id):
            raise ConflictError("Already favorited")
        try:
            self.db.add_favorite(Favorite(user_id=user_id, event_id=event_id))
        except ConflictError:
            raise ConflictError("Already favorited")
        logger.info(f"Favorite added: user {user_id} event {event_id}")

    def remove_favorite(self, user_id: str, event_id: int):
        if not self.db.delete_favorite(user_id, event_id):
            raise NotFoundError("Favorite not found")
        logger.info(f"Favorite removed: user {user_id} event {event_id}")

    def recommend(self, user_id: str, categories: Iterable[str]) -> list[dict]:
        """Events in any of the given categories, flagged when the user favorited them."""
        events = self.db.find_all_events(EventFilter(categories=tuple(dict.fromkeys(categories))))
        favorite_ids = {f.event_id for f in self.db.list_favorites(user_id)}
        return [{**e.to_dict(), "favorited": e.event_id in favorite_ids} for e in events]

class UserManager:
    def __init__(self, db: Database):
        self.db = db

    def register(self, name: str, email: str, password: str) -> User:
        """Create a user, rejecting a name that is already taken."""
        if self.db.get_user_by_name(name):
            raise ConflictError("User already exist!")
        user = User(id=uuid.uuid4().hex, name=name, email=email, password=hash_password(password))
        try:
            self.db.add_user(user)
        except ConflictError:
            raise ConflictError("User already exist!")
        logger.info(f"User {name} registered")
        return user

    def login(self, name: str, password: str) -> User:
        user = self.db.get_user_by_name(name)
        if user is None:
            raise NotFoundError("This user does not exist!")
        if not verify_password(password, user.password):
            raise InvalidCredentialsError("This password is invalid!")
        logger.info(f"User {name} logged in")
        return user

    def list_users(self) -> list[User]:
        return self.db.list_users()

    def get_user(self, user_id: str) -> User | None:
        return self.db.get_user(user_id)

    def update_user(self, user_id: str, changes: dict) -> User | None:
        """Patch name, email or password; returns None when the user is absent."""
        user = self.db.get_user(user_id)
        if user is None:
            return None
        for key, value in changes.items():
            if value is None:
                raise ValidationError(key)
        if "password" in changes:
            changes["password"] = hash_password(changes["password"])
        updated = replace(user, **changes)
        try:
            self.db.update_user(updated)
        except ConflictError:
            raise ConflictError("User already exist!")
        return updated

    def delete_user(self, user_id: str) -> User | None:
        user = self.db.get_user(user_id)
        if user is None:
            return None
        self.db.delete_user(user_id)
        logger.info(f"User {user.email} deleted")
        return user
