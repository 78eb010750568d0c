"""
Translate listing query parameters into an immutable filter value.

Every predicate is AND'ed. Schedule bounds (city, upcoming, dateFrom, dateTo)
must all hold on one shared schedule entry, and ticket bounds (minPrice,
maxPrice, availableOnly) must all hold on one shared ticket type.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional, Tuple
from errors import ValidationError
from models import CATEGORIES
from utils import INT64_MAX, parse_date, parse_number, parse_int, utcnow

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
# keeps the OFFSET within a SQLite INTEGER
MAX_PAGE = INT64_MAX // MAX_LIMIT

SORT_KEYS = ("eventId", "title", "category", "organizer", "createdAt", "updatedAt", "date", "price")

@dataclass(frozen=True)
class ScheduleMatch:
    location: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

@dataclass(frozen=True)
class TicketMatch:
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    available_only: bool = False

@dataclass(frozen=True)
class EventFilter:
    search_terms: Tuple[str, ...] = ()
    categories: Optional[Tuple[str, ...]] = None
    event_ids: Optional[Tuple[int, ...]] = None
    schedule: Optional[ScheduleMatch] = None
    tickets: Optional[TicketMatch] = None

@dataclass(frozen=True)
class EventQuery:
    filter: EventFilter
    sort_by: Optional[str] = None
    descending: bool = False
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit)

def _optional_date(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_date(value, field)
    except ValidationError:
        return None

def _end_of_day(value: str, parsed: datetime) -> datetime:
    # A bare calendar date as upper bound covers the whole day.
    if len(value.strip()) == 10:
        return parsed + timedelta(days=1) - timedelta(seconds=1)
    return parsed

def build_schedule_match(params: Mapping[str, str], now: datetime) -> Optional[ScheduleMatch]:
    city = (params.get("city") or "").strip() or None
    date_from = _optional_date(params.get("dateFrom"), "dateFrom")
    date_to = _optional_date(params.get("dateTo"), "dateTo")
    if date_to is not None:
        date_to = _end_of_day(params["dateTo"], date_to)

    if params.get("upcoming") != "false":
        date_from = now if date_from is None else max(date_from, now)

    if city is None and date_from is None and date_to is None:
        return None
    return ScheduleMatch(location=city, date_from=date_from, date_to=date_to)

def build_ticket_match(params: Mapping[str, str]) -> Optional[TicketMatch]:
    min_price = parse_number(params.get("minPrice"))
    max_price = parse_number(params.get("maxPrice"))
    available_only = params.get("availableOnly") == "true"
    if min_price is None and max_price is None and not available_only:
        return None
    return TicketMatch(min_price=min_price, max_price=max_price, available_only=available_only)

def build_event_filter(params: Mapping[str, str], now: Optional[datetime] = None) -> EventFilter:
    """Build the filter part of a listing query."""
    now = now or utcnow()
    search = (params.get("search") or "").strip()
    category = params.get("category")
    return EventFilter(
        search_terms=tuple(search.split()),
        categories=(category,) if category in CATEGORIES else None,
        schedule=build_schedule_match(params, now),
        tickets=build_ticket_match(params),
    )

def build_event_query(params: Mapping[str, str], now: Optional[datetime] = None) -> EventQuery:
    """
    Build the full listing query: filter, sort and pagination.

    page is clamped to [1, MAX_PAGE] and limit to [1, MAX_LIMIT]; unparseable values
    fall back to the defaults. Unknown sort keys leave the storage order.
    """
    page = parse_int(params.get("page"))
    limit = parse_int(params.get("limit"))
    page = DEFAULT_PAGE if page is None else min(max(page, 1), MAX_PAGE)
    limit = DEFAULT_LIMIT if limit is None else min(max(limit, 1), MAX_LIMIT)

    sort_by = params.get("sortBy")
    return EventQuery(
        filter=build_event_filter(params, now),
        sort_by=sort_by if sort_by in SORT_KEYS else None,
        descending=params.get("sortOrder") == "desc",
        page=page,
        limit=limit,
    )
