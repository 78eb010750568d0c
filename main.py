from fastapi import FastAPI, Depends, Request, Body
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import status
from pydantic import BaseModel, Field
from typing import Optional, List
from database import Database
from manager import EventManager, FavoriteManager, UserManager
from auth import get_user_id
from errors import CatalogError
from utils import INT64_MAX, parse_identifier
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
import os

load_dotenv()  # Load variables from .env file
DATABASE_PATH = os.getenv("DATABASE_PATH", "events.db")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# Logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

# Database
db = Database(DATABASE_PATH)

# FastAPI App
@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Closing database connection")
    db.close()

app = FastAPI(lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Init
events = EventManager(db)
favorites = FavoriteManager(db)
users = UserManager(db)

# -------------------------------
# Error handling
# -------------------------------
@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    loc = errors[0].get("loc", ()) if errors else ()
    field = ".".join(str(part) for part in loc[1:]) or "body"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": f"Invalid field: {field}"})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})

# -------------------------------
# Schemas
# -------------------------------
class ScheduleEntryIn(BaseModel):
    date: str
    location: str
    lat: Optional[float] = None
    lng: Optional[float] = None

    class Config:
        extra = "forbid"

class TicketTypeIn(BaseModel):
    type: str
    price: float
    available_tickets: int = Field(alias="availableTickets")

    class Config:
        extra = "forbid"
        populate_by_name = True

class EventCreate(BaseModel):
    title: str
    description: str = ""
    category: str
    image: str = ""
    schedule: List[ScheduleEntryIn]
    ticket_types: List[TicketTypeIn] = Field(alias="ticketTypes")
    organizer: str
    tags: List[str] = []

    class Config:
        extra = "forbid"
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "title": "Summer Nights",
                "description": "Open-air concert by the sea",
                "category": "concert",
                "schedule": [{"date": "2030-07-01", "location": "Athens"}],
                "ticketTypes": [{"type": "General", "price": 20, "availableTickets": 100}],
                "organizer": "Socialive",
                "tags": ["music", "outdoor"]
            }
        }

class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    schedule: Optional[List[ScheduleEntryIn]] = None
    ticket_types: Optional[List[TicketTypeIn]] = Field(default=None, alias="ticketTypes")
    organizer: Optional[str] = None
    tags: Optional[List[str]] = None

    class Config:
        extra = "forbid"
        populate_by_name = True

class TicketTypePatch(BaseModel):
    type: Optional[str] = None
    price: Optional[float] = None
    available_tickets: Optional[int] = Field(default=None, alias="availableTickets")

    class Config:
        extra = "forbid"
        populate_by_name = True

class SchedulePatch(BaseModel):
    date: Optional[str] = None
    location: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    class Config:
        extra = "forbid"

class FavoriteRequest(BaseModel):
    event_id: int = Field(alias="eventId", gt=0, le=INT64_MAX)

    class Config:
        extra = "forbid"
        populate_by_name = True

class UserRegister(BaseModel):
    name: str
    email: str
    password: str

class UserLogin(BaseModel):
    name: str
    password: str

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    class Config:
        extra = "forbid"

def _dump(model: BaseModel) -> dict:
    return model.model_dump(exclude_unset=True)

# -------------------------------
# Root
# -------------------------------
@app.get("/", response_model=dict, summary="API root endpoint")
def root():
    """Welcome message for the event catalog API."""
    return {"message": "Welcome to the Event Catalog API"}

@app.get("/health", response_model=dict, summary="Liveness check")
def health():
    return {"status": "ok"}

# -------------------------------
# Event Routes
# -------------------------------
@app.get("/api/events", response_model=dict, summary="List, filter, sort and paginate events")
def list_events(request: Request):
    """
    Supported query parameters: search, city, category, dateFrom, dateTo,
    minPrice, maxPrice, availableOnly, upcoming, sortBy, sortOrder, page, limit.
    Only upcoming events are listed unless upcoming=false.
    """
    page = events.list_events(request.query_params)
    return page.to_dict()

@app.post("/api/events", response_model=dict, status_code=status.HTTP_201_CREATED, summary="Create a new event")
def create_event(event: EventCreate):
    """Create an event; eventId is assigned as the current maximum plus one."""
    created = events.create_event(event.model_dump())
    return created.to_dict()

@app.get("/api/events/{event_id}", response_model=dict, summary="Get one event")
def get_event(event_id: str):
    return events.get_event(parse_identifier(event_id)).to_dict()

@app.put("/api/events/{event_id}", response_model=dict, summary="Update an event")
def update_event(event_id: str, event: EventUpdate):
    """Replace the provided fields of an event and return the updated record."""
    updated = events.update_event(parse_identifier(event_id), _dump(event))
    return updated.to_dict()

@app.delete("/api/events/{event_id}", response_model=dict, summary="Delete an event")
def delete_event(event_id: str):
    events.delete_event(parse_identifier(event_id))
    return {"message": "Event deleted successfully"}

@app.patch("/api/events/{event_id}/ticketTypes/{index}", response_model=dict, summary="Patch one ticket type")
def patch_ticket_type(event_id: str, index: str, patch: TicketTypePatch):
    """Merge the given fields into ticketTypes[index]."""
    event_id_value = parse_identifier(event_id)
    index_value = parse_identifier(index, "index")
    return events.patch_ticket_type(event_id_value, index_value, _dump(patch)).to_dict()

@app.patch("/api/events/{event_id}/schedule/{index}", response_model=dict, summary="Patch one schedule entry")
def patch_schedule_entry(event_id: str, index: str, patch: SchedulePatch):
    """Merge the given fields into schedule[index]; a new date is parsed first."""
    event_id_value = parse_identifier(event_id)
    index_value = parse_identifier(index, "index")
    return events.patch_schedule_entry(event_id_value, index_value, _dump(patch)).to_dict()

# -------------------------------
# Favorites & Recommendations
# -------------------------------
@app.get("/api/favorites", response_model=list, summary="List the caller's favorite events")
def list_favorites(user_id: str = Depends(get_user_id)):
    return favorites.list_favorites(user_id)

@app.post("/api/favorites", response_model=dict, status_code=status.HTTP_201_CREATED, summary="Add a favorite")
def add_favorite(favorite: FavoriteRequest, user_id: str = Depends(get_user_id)):
    favorites.add_favorite(user_id, favorite.event_id)
    return {"message": "Event favorited"}

@app.delete("/api/favorites", response_model=dict, summary="Remove a favorite")
def remove_favorite(favorite: FavoriteRequest, user_id: str = Depends(get_user_id)):
    favorites.remove_favorite(user_id, favorite.event_id)
    return {"message": "Favorite removed"}

@app.post("/api/recoms", response_model=list, summary="Recommend events by category")
def recommend(categories: List[str] = Body(...), user_id: str = Depends(get_user_id)):
    """Events whose category is in the posted list, flagged with favorited."""
    return favorites.recommend(user_id, categories)

# -------------------------------
# User Routes
# -------------------------------
@app.post("/api/users/login", response_model=dict, summary="Check a user's credentials")
def login(credentials: UserLogin):
    return users.login(credentials.name, credentials.password).to_dict()

@app.post("/api/users", response_model=dict, status_code=status.HTTP_201_CREATED, summary="Register a new user")
def register(user: UserRegister):
    return users.register(user.name, user.email, user.password).to_dict()

@app.get("/api/users", response_model=list, summary="List users")
def list_users():
    return [u.to_dict() for u in users.list_users()]

@app.get("/api/users/{user_id}", response_model=dict, summary="Get one user")
def get_user(user_id: str):
    user = users.get_user(user_id)
    if user is None:
        return {"message": "This user doesn't exist"}
    return user.to_dict()

@app.put("/api/users/{user_id}", response_model=dict, summary="Update a user")
def update_user(user_id: str, changes: UserUpdate):
    user = users.update_user(user_id, _dump(changes))
    if user is None:
        return {"message": "This user doesn't exist"}
    return user.to_dict()

@app.delete("/api/users/{user_id}", response_model=dict, summary="Delete a user")
def delete_user(user_id: str):
    user = users.delete_user(user_id)
    if user is None:
        return {"message": "This user doesn't exist"}
    return {"message": f"User with {user.email} email was deleted!"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 3000)))
