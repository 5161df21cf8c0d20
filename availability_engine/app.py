"""FastAPI WebSocket bridge between the booking panel UI and the engine.

Each WebSocket connection is one booking panel: it owns one
SelectionCoordinator, receives the panel's input events and gets validation,
slot and calendar updates pushed back. Closing the connection closes the panel.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from availability_engine.api_client import SchedulingApi, SchedulingApiClient
from availability_engine.cache import SlotCache, slot_cache
from availability_engine.config import Settings, get_settings
from availability_engine.coordinator import SelectionCoordinator
from availability_engine.debounce import Scheduler
from availability_engine.fetcher import SlotFetcher
from availability_engine.mock_client import MockSchedulingApi
from availability_engine.validation import ValidationPipeline

logger = logging.getLogger(__name__)


def validation_payload(panel: SelectionCoordinator) -> dict[str, Any]:
    return {
        "type": "validation",
        "phase": panel.state.name.lower(),
        "can_book": panel.can_book,
        "selection": panel.selection.model_dump(mode="json"),
        "state": panel.validation_state.to_payload(),
    }


def slots_payload(panel: SelectionCoordinator) -> dict[str, Any]:
    snapshot = panel.snapshot
    return {
        "type": "slots",
        "key": list(snapshot.key) if snapshot.key else None,
        "templates": [
            {
                "template": entry.template.model_dump(),
                "slots": [
                    {**slot.model_dump(), "capacity_level": slot.capacity_level}
                    for slot in entry.slots
                ],
            }
            for entry in snapshot.templates
        ],
    }


def calendar_payload(panel: SelectionCoordinator) -> dict[str, Any]:
    return {
        "type": "calendar",
        "view": panel.view,
        "anchor": panel.anchor.isoformat(),
        "default_date": panel.default_date.isoformat(),
        "cells": [
            {
                "date": cell.iso,
                "is_current_period": cell.is_current_period,
                "is_today": cell.is_today,
                "is_selectable": cell.is_selectable,
            }
            for cell in panel.calendar()
        ],
    }


async def dispatch(panel: SelectionCoordinator, message: dict[str, Any]) -> dict[str, Any] | None:
    """Apply one client message; return the direct reply, if any."""
    action = message.get("action")

    if action == "select":
        panel.on_selection_change(message["field"], message.get("value"))
        return None

    if action == "pick_slot":
        start_time = message["start_time"]
        match = panel.snapshot.find_slot(start_time, message.get("template_id"))
        if match is None:
            # not in the loaded snapshot; validation reports it as unavailable
            panel.on_selection_change("time", start_time)
        else:
            template, slot = match
            panel.on_slot_pick(slot, template.id)
        return None

    if action == "calendar":
        if view := message.get("view"):
            panel.set_view(view)
        if direction := message.get("direction"):
            panel.navigate(int(direction))
        return calendar_payload(panel)

    if action == "submit":
        state = await panel.validate_for_submit()
        return {"type": "submit", "can_book": panel.can_book, "state": state.to_payload()}

    if action == "reset":
        panel.reset()
        return None

    raise ValueError(f"Unknown action: {action!r}")


def stop_pump(sender: asyncio.Task[None]) -> None:
    """Stop an outbox pump, retrieving the error it died with, if any."""
    if not sender.done():
        sender.cancel()
    elif not sender.cancelled() and (exc := sender.exception()) is not None:
        logger.debug("Booking panel outbox stopped: %r", exc)


def create_app(
    settings: Settings | None = None,
    api: SchedulingApi | None = None,
    cache: SlotCache | None = None,
    scheduler: Scheduler | None = None,
    today: Callable[[], date] = date.today,
) -> FastAPI:
    settings = settings or get_settings()
    if cache is None:
        # a TTL gets its own cache so the process-wide one keeps session lifetime
        ttl = settings.slot_cache_ttl_seconds
        cache = SlotCache(ttl_seconds=ttl) if ttl else slot_cache

    owned_client: SchedulingApiClient | None = None
    if api is None and settings.use_mock_api:
        logger.info("Serving availability from the in-memory mock API")
        api = MockSchedulingApi()
    elif api is None:
        owned_client = SchedulingApiClient(
            settings.scheduling_api_url,
            token=settings.api_token,
            timeout=settings.request_timeout_seconds,
        )
        api = owned_client

    fetcher = SlotFetcher(api, cache, city_id=settings.city_id)
    pipeline = ValidationPipeline(fetcher, today=today, far_future_days=settings.far_future_days)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        if owned_client is not None:
            await owned_client.close()

    app = FastAPI(title="Inspection Availability Engine", lifespan=lifespan)
    app.state.fetcher = fetcher
    app.state.open_panels = 0

    @app.websocket("/ws/booking")
    async def booking_panel(websocket: WebSocket):
        """Run one booking panel for the lifetime of the connection."""
        await websocket.accept()

        outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        panel = SelectionCoordinator(
            fetcher,
            pipeline,
            debounce_ms=settings.debounce_ms,
            scheduler=scheduler,
            today=today,
        )

        def on_event(event: str, source: SelectionCoordinator) -> None:
            outbox.put_nowait(slots_payload(source) if event == "slots" else validation_payload(source))

        async def pump() -> None:
            while True:
                await websocket.send_text(json.dumps(await outbox.get()))

        panel.subscribe(on_event)
        sender = asyncio.create_task(pump())
        app.state.open_panels += 1
        outbox.put_nowait(calendar_payload(panel))

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                    if not isinstance(message, dict):
                        raise ValueError("Message must be a JSON object")
                    reply = await dispatch(panel, message)
                except (ValueError, KeyError, TypeError) as e:
                    outbox.put_nowait({"type": "error", "error": f"Invalid message: {e}"})
                    continue
                if reply is not None:
                    outbox.put_nowait(reply)

        except WebSocketDisconnect:
            logger.debug("Booking panel disconnected")
        except Exception as e:
            logger.exception("Booking panel failed")
            try:
                await websocket.send_text(json.dumps({"type": "error", "error": f"Internal error: {e}"}))
            except Exception:
                logger.debug("Could not report failure to a closed socket")
        finally:
            panel.close()
            stop_pump(sender)
            app.state.open_panels -= 1

    @app.get("/")
    async def root():
        """Root endpoint providing basic API information."""
        return {
            "message": "Inspection availability engine. Connect a booking panel to /ws/booking via WebSocket.",
            "open_panels": app.state.open_panels,
        }

    @app.delete("/cache")
    async def clear_cache():
        """Drop every cached availability snapshot (logout / restart hook)."""
        entries = len(cache)
        cache.clear()
        return {"cleared": entries}

    return app


app = create_app()
