import json
from datetime import date, timedelta

TODAY = date(2026, 10, 19)
TOMORROW = (TODAY + timedelta(days=1)).isoformat()


def receive_until(websocket, predicate, limit=50):
    """Read messages until one matches ``predicate``; return it."""
    for _ in range(limit):
        message = json.loads(websocket.receive_text())
        if predicate(message):
            return message
    raise AssertionError("expected message never arrived")


def settled(message):
    return (
        message["type"] == "validation"
        and message["phase"] == "validated"
        and not message["state"]["isValidating"]
    )


def select(websocket, field, value):
    websocket.send_text(json.dumps({"action": "select", "field": field, "value": value}))


def fill(websocket, location="10", modality="2", date_iso=TOMORROW, time="09:00"):
    select(websocket, "location", location)
    select(websocket, "modality", modality)
    select(websocket, "date", date_iso)
    if time:
        select(websocket, "time", time)
