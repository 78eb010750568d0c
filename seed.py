"""Replace the events collection with the contents of a JSON file."""

import argparse
import json
import logging
import os
from dotenv import load_dotenv
from database import Database
from manager import EventManager

load_dotenv()
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("seed")

def _snake_case(event: dict) -> dict:
    data = {k: v for k, v in event.items() if k not in ("eventId", "ticketTypes")}
    data["ticket_types"] = [
        {"type": t.get("type"), "price": t.get("price"), "available_tickets": t.get("availableTickets")}
        for t in event.get("ticketTypes", [])
    ]
    return data

def seed(db: Database, events: list[dict]) -> int:
    """Wipe stored events and insert the given ones with eventIds 1..n."""
    removed = db.clear_events()
    logger.info(f"Removed {removed} events")
    manager = EventManager(db)
    for event in events:
        manager.create_event(_snake_case(event))
    return len(events)

def main():
    parser = argparse.ArgumentParser(description="Seed the event catalog")
    parser.add_argument("file", nargs="?", default=os.path.join(os.path.dirname(__file__), "data", "events.json"),
                        help="JSON file holding a list of events")
    parser.add_argument("--db", default=os.getenv("DATABASE_PATH", "events.db"), help="SQLite database path")
    args = parser.parse_args()

    with open(args.file, encoding="utf-8") as f:
        events = json.load(f)
    db = Database(args.db)
    try:
        count = seed(db, events)
    finally:
        db.close()
    logger.info(f"Inserted {count} events")

if __name__ == "__main__":
    main()
