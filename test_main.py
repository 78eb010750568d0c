import os

os.environ["DATABASE_PATH"] = ":memory:"

import pytest
from fastapi.testclient import TestClient
from main import app, db

@pytest.fixture(autouse=True)
def clean_db():
    yield
    for table in ("favorites", "events", "users"):
        db.conn.execute(f"DELETE FROM {table}")
    db.conn.commit()

@pytest.fixture
def client():
    return TestClient(app)

def event_payload(**overrides):
    payload = {
        "title": "Test Event",
        "description": "A test concert",
        "category": "concert",
        "schedule": [{"date": "2030-01-01", "location": "Athens"}],
        "ticketTypes": [{"type": "General", "price": 20, "availableTickets": 100}],
        "organizer": "Socialive",
        "tags": ["rock"]
    }
    payload.update(overrides)
    return payload

@pytest.fixture
def created_event(client):
    response = client.post("/api/events", json=event_payload())
    return response.json()

def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()

def test_create_event_assigns_sequential_ids(client):
    first = client.post("/api/events", json=event_payload(title="One"))
    second = client.post("/api/events", json=event_payload(title="Two"))
    assert first.status_code == 201
    assert first.json()["eventId"] == 1
    assert second.json()["eventId"] == 2
    assert first.json()["schedule"] == [{"date": "2030-01-01", "location": "Athens"}]

def test_create_event_after_delete_uses_max_plus_one(client):
    for title in ("One", "Two", "Three"):
        client.post("/api/events", json=event_payload(title=title))
    client.delete("/api/events/2")
    response = client.post("/api/events", json=event_payload(title="Four"))
    assert response.json()["eventId"] == 4

def test_create_event_rejects_empty_schedule(client):
    response = client.post("/api/events", json=event_payload(schedule=[]))
    assert response.status_code == 400
    assert "schedule" in response.json()["message"]

def test_create_event_rejects_empty_ticket_types(client):
    response = client.post("/api/events", json=event_payload(ticketTypes=[]))
    assert response.status_code == 400
    assert "ticketTypes" in response.json()["message"]

def test_create_event_rejects_unknown_category(client):
    response = client.post("/api/events", json=event_payload(category="opera"))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid field: category"

def test_create_event_rejects_negative_price(client):
    tickets = [{"type": "General", "price": -1, "availableTickets": 10}]
    response = client.post("/api/events", json=event_payload(ticketTypes=tickets))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid field: ticketTypes.0.price"

def test_create_event_rejects_missing_title(client):
    payload = event_payload()
    del payload["title"]
    response = client.post("/api/events", json=payload)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid field: title"

def test_create_event_rejects_unknown_field(client):
    response = client.post("/api/events", json=event_payload(eventId=99))
    assert response.status_code == 400

def test_create_event_rejects_bad_date(client):
    response = client.post("/api/events", json=event_payload(schedule=[{"date": "soon", "location": "Athens"}]))
    assert response.status_code == 400
    assert "schedule.0.date" in response.json()["message"]

def test_list_events_pagination_metadata(client):
    for i in range(5):
        client.post("/api/events", json=event_payload(title=f"Event {i}"))
    response = client.get("/api/events", params={"limit": 2})
    body = response.json()
    assert response.status_code == 200
    assert body["page"] == 1
    assert body["totalResults"] == 5
    assert body["totalPages"] == 3
    assert len(body["events"]) == 2

    last = client.get("/api/events", params={"limit": 2, "page": 3}).json()
    assert [e["title"] for e in last["events"]] == ["Event 4"]

def test_list_events_empty(client):
    body = client.get("/api/events").json()
    assert body == {"page": 1, "totalPages": 0, "totalResults": 0, "events": []}

def test_list_events_city_and_availability(client):
    client.post("/api/events", json=event_payload(title="Athens open"))
    client.post("/api/events", json=event_payload(
        title="Athens sold out",
        ticketTypes=[{"type": "General", "price": 20, "availableTickets": 0}]))
    client.post("/api/events", json=event_payload(
        title="Berlin", schedule=[{"date": "2030-01-01", "location": "Berlin"}]))

    body = client.get("/api/events", params={"city": "athens", "availableOnly": "true"}).json()
    assert [e["title"] for e in body["events"]] == ["Athens open"]
    assert body["totalResults"] == 1

def test_list_events_date_from_is_inclusive(client):
    client.post("/api/events", json=event_payload(
        title="On the day", schedule=[{"date": "2030-03-10", "location": "Athens"}]))
    client.post("/api/events", json=event_payload(
        title="Day before", schedule=[{"date": "2030-03-09", "location": "Athens"}]))

    body = client.get("/api/events", params={"dateFrom": "2030-03-10"}).json()
    assert [e["title"] for e in body["events"]] == ["On the day"]

def test_list_events_date_to_covers_whole_day(client):
    client.post("/api/events", json=event_payload(
        title="Evening", schedule=[{"date": "2030-03-10T20:00:00", "location": "Athens"}]))
    body = client.get("/api/events", params={"dateTo": "2030-03-10"}).json()
    assert [e["title"] for e in body["events"]] == ["Evening"]

def test_list_events_hides_past_unless_upcoming_false(client):
    client.post("/api/events", json=event_payload(
        title="Past", schedule=[{"date": "2020-01-01", "location": "Athens"}]))
    client.post("/api/events", json=event_payload(title="Future"))

    default = client.get("/api/events").json()
    assert [e["title"] for e in default["events"]] == ["Future"]
    everything = client.get("/api/events", params={"upcoming": "false"}).json()
    assert everything["totalResults"] == 2

def test_list_events_ignores_bad_numbers(client, created_event):
    response = client.get("/api/events", params={"minPrice": "abc", "page": "x", "limit": "y"})
    assert response.status_code == 200
    body = response.json()
    assert body["page"] == 1
    assert body["totalResults"] == 1

def test_list_events_price_range(client):
    client.post("/api/events", json=event_payload(title="Cheap"))
    client.post("/api/events", json=event_payload(
        title="Pricey", ticketTypes=[{"type": "VIP", "price": 150, "availableTickets": 5}]))
    body = client.get("/api/events", params={"minPrice": "50", "maxPrice": "200"}).json()
    assert [e["title"] for e in body["events"]] == ["Pricey"]

def test_list_events_search_and_category(client):
    client.post("/api/events", json=event_payload(title="Jazz night", tags=["jazz"]))
    client.post("/api/events", json=event_payload(title="Stand-up", category="comedy", tags=["jokes"]))

    assert client.get("/api/events", params={"search": "JOKES"}).json()["totalResults"] == 1
    assert client.get("/api/events", params={"category": "comedy"}).json()["events"][0]["title"] == "Stand-up"
    # unknown category is ignored
    assert client.get("/api/events", params={"category": "opera"}).json()["totalResults"] == 2

def test_list_events_sort_desc(client):
    client.post("/api/events", json=event_payload(title="B"))
    client.post("/api/events", json=event_payload(title="A"))
    client.post("/api/events", json=event_payload(title="C"))
    body = client.get("/api/events", params={"sortBy": "title", "sortOrder": "desc"}).json()
    assert [e["title"] for e in body["events"]] == ["C", "B", "A"]
    body = client.get("/api/events", params={"sortBy": "title", "sortOrder": "down"}).json()
    assert [e["title"] for e in body["events"]] == ["A", "B", "C"]

def test_get_event_formats_dates(client):
    client.post("/api/events", json=event_payload(
        schedule=[{"date": "2030-01-01T18:30:00", "location": "Athens", "lat": 37.97, "lng": 23.72}]))
    response = client.get("/api/events/1")
    assert response.status_code == 200
    assert response.json()["schedule"] == [{"date": "2030-01-01", "location": "Athens", "lat": 37.97, "lng": 23.72}]

def test_get_event_invalid_and_missing(client):
    assert client.get("/api/events/abc").status_code == 400
    response = client.get("/api/events/42")
    assert response.status_code == 404
    assert response.json()["message"] == "Event not found"

def test_update_event(client, created_event):
    response = client.put("/api/events/1", json={"title": "Renamed", "tags": ["new"]})
    assert response.status_code == 200
    body = response.json()
    assert body["eventId"] == 1
    assert body["title"] == "Renamed"
    assert body["tags"] == ["new"]
    assert body["ticketTypes"] == created_event["ticketTypes"]

def test_update_event_rejects_empty_ticket_types(client, created_event):
    response = client.put("/api/events/1", json={"ticketTypes": []})
    assert response.status_code == 400
    assert client.get("/api/events/1").json()["ticketTypes"] == created_event["ticketTypes"]

def test_update_missing_event(client):
    assert client.put("/api/events/9", json={"title": "Nope"}).status_code == 404

def test_delete_event(client, created_event):
    response = client.delete("/api/events/1")
    assert response.status_code == 200
    assert response.json() == {"message": "Event deleted successfully"}
    assert client.get("/api/events/1").status_code == 404
    assert client.delete("/api/events/1").status_code == 404

def test_patch_ticket_type(client, created_event):
    response = client.patch("/api/events/1/ticketTypes/0", json={"price": 25})
    assert response.status_code == 200
    assert response.json()["ticketTypes"][0] == {"type": "General", "price": 25, "availableTickets": 100}

def test_patch_second_ticket_type_leaves_others(client):
    tickets = [
        {"type": "General", "price": 20, "availableTickets": 100},
        {"type": "VIP", "price": 80, "availableTickets": 10}
    ]
    client.post("/api/events", json=event_payload(ticketTypes=tickets))
    body = client.patch("/api/events/1/ticketTypes/1", json={"price": 95}).json()
    assert body["ticketTypes"][0] == tickets[0]
    assert body["ticketTypes"][1] == {"type": "VIP", "price": 95, "availableTickets": 10}
    assert body["title"] == "Test Event"

def test_patch_ticket_type_errors(client, created_event):
    response = client.patch("/api/events/1/ticketTypes/1", json={"price": 25})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid ticket type index"
    assert client.patch("/api/events/1/ticketTypes/-1", json={"price": 25}).status_code == 400
    assert client.patch("/api/events/x/ticketTypes/0", json={"price": 25}).status_code == 400
    assert client.patch("/api/events/1/ticketTypes/y", json={"price": 25}).status_code == 400
    assert client.patch("/api/events/7/ticketTypes/0", json={"price": 25}).status_code == 404
    assert client.patch("/api/events/1/ticketTypes/0", json={"price": -5}).status_code == 400
    assert client.patch("/api/events/1/ticketTypes/0", json={"colour": "red"}).status_code == 400

def test_patch_schedule_entry(client, created_event):
    response = client.patch("/api/events/1/schedule/0", json={"date": "2031-02-03"})
    assert response.status_code == 200
    assert response.json()["schedule"] == [{"date": "2031-02-03", "location": "Athens"}]

def test_patch_schedule_entry_errors(client, created_event):
    assert client.patch("/api/events/1/schedule/0", json={"date": "not a date"}).status_code == 400
    response = client.patch("/api/events/1/schedule/1", json={"location": "Patras"})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid schedule index"
    assert client.patch("/api/events/1/schedule/0", json={"location": "  "}).status_code == 400

def test_favorites_lifecycle(client, created_event):
    response = client.post("/api/favorites", json={"eventId": 1})
    assert response.status_code == 201
    assert client.post("/api/favorites", json={"eventId": 1}).status_code == 409

    favorites = client.get("/api/favorites").json()
    assert [f["eventId"] for f in favorites] == [1]
    assert favorites[0]["favorited"] is True

    response = client.request("DELETE", "/api/favorites", json={"eventId": 1})
    assert response.status_code == 200
    assert client.request("DELETE", "/api/favorites", json={"eventId": 1}).status_code == 404
    assert client.get("/api/favorites").json() == []

def test_favorites_are_per_user(client, created_event):
    client.post("/api/favorites", json={"eventId": 1}, headers={"X-User-Id": "alice"})
    assert client.get("/api/favorites", headers={"X-User-Id": "bob"}).json() == []
    assert len(client.get("/api/favorites", headers={"X-User-Id": "alice"}).json()) == 1

def test_favorite_missing_event_id(client):
    assert client.post("/api/favorites", json={}).status_code == 400

def test_deleting_event_removes_favorites(client, created_event):
    client.post("/api/favorites", json={"eventId": 1})
    client.delete("/api/events/1")
    client.post("/api/events", json=event_payload())
    assert client.get("/api/favorites").json() == []

def test_recommendations(client):
    client.post("/api/events", json=event_payload(title="Gig"))
    client.post("/api/events", json=event_payload(title="Match", category="sports"))
    client.post("/api/events", json=event_payload(title="Play", category="theatre"))
    client.post("/api/favorites", json={"eventId": 2})

    response = client.post("/api/recoms", json=["concert", "sports"])
    assert response.status_code == 200
    flags = {e["title"]: e["favorited"] for e in response.json()}
    assert flags == {"Gig": False, "Match": True}

def test_register_and_login(client):
    response = client.post("/api/users", json={"name": "efi", "email": "efi@example.com", "password": "secret"})
    assert response.status_code == 201
    assert "password" not in response.json()
    assert client.post("/api/users", json={"name": "efi", "email": "x@example.com", "password": "x"}).status_code == 409

    response = client.post("/api/users/login", json={"name": "efi", "password": "secret"})
    assert response.status_code == 200
    assert response.json()["email"] == "efi@example.com"
    assert client.post("/api/users/login", json={"name": "efi", "password": "wrong"}).status_code == 401
    assert client.post("/api/users/login", json={"name": "nobody", "password": "secret"}).status_code == 404

def test_user_crud(client):
    user = client.post("/api/users", json={"name": "efi", "email": "efi@example.com", "password": "secret"}).json()
    assert [u["name"] for u in client.get("/api/users").json()] == ["efi"]
    assert client.get(f"/api/users/{user['id']}").json()["name"] == "efi"

    updated = client.put(f"/api/users/{user['id']}", json={"email": "new@example.com", "password": "changed"})
    assert updated.json()["email"] == "new@example.com"
    assert client.post("/api/users/login", json={"name": "efi", "password": "changed"}).status_code == 200

    response = client.delete(f"/api/users/{user['id']}")
    assert response.json() == {"message": "User with new@example.com email was deleted!"}
    assert client.get(f"/api/users/{user['id']}").json() == {"message": "This user doesn't exist"}
    assert client.delete(f"/api/users/{user['id']}").json() == {"message": "This user doesn't exist"}

def test_list_events_city_matches_non_ascii_case_insensitively(client):
    client.post("/api/events", json=event_payload(
        title="Συναυλία", schedule=[{"date": "2030-01-01", "location": "Αθήνα"}]))
    client.post("/api/events", json=event_payload(title="Elsewhere"))

    body = client.get("/api/events", params={"city": "αθήνα"}).json()
    assert [e["title"] for e in body["events"]] == ["Συναυλία"]
    assert client.get("/api/events", params={"search": "ΣΥΝΑΥΛΊΑ"}).json()["totalResults"] == 1

def test_list_events_search_matches_description(client):
    client.post("/api/events", json=event_payload(title="Friday", description="Acoustic set by the harbour"))
    client.post("/api/events", json=event_payload(title="Saturday"))
    body = client.get("/api/events", params={"search": "harbour"}).json()
    assert [e["title"] for e in body["events"]] == ["Friday"]

def test_list_events_huge_page_is_empty(client, created_event):
    response = client.get("/api/events", params={"page": "99999999999999999999"})
    assert response.status_code == 200
    body = response.json()
    assert body["events"] == []
    assert body["totalResults"] == 1

def test_list_events_fractional_page_is_truncated(client):
    for i in range(3):
        client.post("/api/events", json=event_payload(title=f"Event {i}"))
    body = client.get("/api/events", params={"page": "2.5", "limit": "2"}).json()
    assert body["page"] == 2
    assert [e["title"] for e in body["events"]] == ["Event 2"]

def test_out_of_range_event_id_is_not_found(client, created_event):
    huge = "99999999999999999999"
    assert client.get(f"/api/events/{huge}").status_code == 404
    assert client.put(f"/api/events/{huge}", json={"title": "Nope"}).status_code == 404
    assert client.delete(f"/api/events/{huge}").status_code == 404
    assert client.patch(f"/api/events/{huge}/ticketTypes/0", json={"price": 1}).status_code == 404
    assert client.patch(f"/api/events/{huge}/schedule/0", json={"location": "Patras"}).status_code == 404

def test_update_event_rejects_event_id_and_unknown_fields(client, created_event):
    response = client.put("/api/events/1", json={"eventId": 5, "title": "Moved"})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid field: eventId"
    assert client.put("/api/events/1", json={"venue": "Odeon"}).status_code == 400
    body = client.get("/api/events/1").json()
    assert body["eventId"] == 1
    assert body["title"] == "Test Event"

def test_favorite_request_validation(client, created_event):
    assert client.post("/api/favorites", json={"eventId": 0}).status_code == 400
    assert client.post("/api/favorites", json={"eventId": 1, "note": "x"}).status_code == 400
    assert client.post("/api/favorites", json={"eventId": 99999999999999999999}).status_code == 400
    assert client.request("DELETE", "/api/favorites", json={"eventId": 0}).status_code == 400
    assert client.get("/api/favorites").json() == []

def test_update_user_rejects_nulls(client):
    user = client.post("/api/users", json={"name": "efi", "email": "efi@example.com", "password": "secret"}).json()
    for field in ("name", "email", "password"):
        response = client.put(f"/api/users/{user['id']}", json={field: None})
        assert response.status_code == 400
        assert response.json()["message"] == f"Invalid field: {field}"
    assert client.post("/api/users/login", json={"name": "efi", "password": "secret"}).status_code == 200
