from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List
from errors import ValidationError
from utils import format_day

CATEGORIES = (
    "concert", "theatre", "sports", "festival", "conference",
    "comedy", "workshop", "exhibition", "movie", "other",
)

@dataclass
class ScheduleEntry:
    date: datetime
    location: str
    lat: Optional[float] = None
    lng: Optional[float] = None

    def validate(self, prefix: str = "schedule"):
        if not isinstance(self.date, datetime):
            raise ValidationError(f"{prefix}.date")
        if not isinstance(self.location, str) or not self.location.strip():
            raise ValidationError(f"{prefix}.location")
        self.location = self.location.strip()

    def to_dict(self) -> dict:
        entry = {"date": format_day(self.date), "location": self.location}
        if self.lat is not None:
            entry["lat"] = self.lat
        if self.lng is not None:
            entry["lng"] = self.lng
        return entry

@dataclass
class TicketType:
    type: str
    price: float
    available_tickets: int

    def validate(self, prefix: str = "ticketTypes"):
        if not isinstance(self.type, str) or not self.type.strip():
            raise ValidationError(f"{prefix}.type")
        if isinstance(self.price, bool) or not isinstance(self.price, (int, float)) or self.price < 0:
            raise ValidationError(f"{prefix}.price")
        if isinstance(self.available_tickets, bool) or not isinstance(self.available_tickets, int) \
                or self.available_tickets < 0:
            raise ValidationError(f"{prefix}.availableTickets")
        self.type = self.type.strip()

    def to_dict(self) -> dict:
        return {"type": self.type, "price": self.price, "availableTickets": self.available_tickets}

@dataclass
class Event:
    event_id: int
    title: str
    category: str
    schedule: List[ScheduleEntry]
    ticket_types: List[TicketType]
    organizer: str
    description: str = ""
    image: str = ""
    tags: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def validate(self):
        """Check the write-time invariants, raising ValidationError on the first bad field."""
        if not isinstance(self.event_id, int) or self.event_id < 1:
            raise ValidationError("eventId")
        if not isinstance(self.title, str) or not self.title.strip():
            raise ValidationError("title")
        if self.category not in CATEGORIES:
            raise ValidationError("category")
        if not isinstance(self.organizer, str) or not self.organizer.strip():
            raise ValidationError("organizer")
        if not self.schedule:
            raise ValidationError("schedule", "schedule must contain at least one entry")
        if not self.ticket_types:
            raise ValidationError("ticketTypes", "ticketTypes must contain at least one entry")
        for i, entry in enumerate(self.schedule):
            entry.validate(f"schedule.{i}")
        for i, ticket in enumerate(self.ticket_types):
            ticket.validate(f"ticketTypes.{i}")
        self.title = self.title.strip()
        self.organizer = self.organizer.strip()
        self.description = self.description or ""
        self.image = self.image or ""
        self.tags = list(dict.fromkeys(self.tags or []))

    def to_dict(self) -> dict:
        """Wire representation with schedule dates as YYYY-MM-DD."""
        return {
            "eventId": self.event_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "image": self.image,
            "schedule": [s.to_dict() for s in self.schedule],
            "ticketTypes": [t.to_dict() for t in self.ticket_types],
            "organizer": self.organizer,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

@dataclass
class Favorite:
    user_id: str
    event_id: int

@dataclass
class User:
    id: str
    name: str
    email: str
    password: str  # bcrypt hash

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}
