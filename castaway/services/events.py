"""Outbound realtime events and the plumbing shared by every handler.

``Channel`` is the per-connection outbox: handlers and background tasks push
``game:log``, ``state:update``, ``animation:play`` and ``combat:*`` through it
instead of calling ``socketio.emit`` directly, so tests can swap in a
recording subclass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from flask import has_app_context

from castaway import app, socketio

LOG_TYPES = ("info", "error", "chat", "room-title", "room-desc", "room-items", "prompt")


@dataclass
class HandlerResult:
    """Outcome of one command handler.

    ``handled`` False means the input was not recognised and routing should
    continue. ``state`` is the full snapshot to push, when the handler changed
    something the client renders.
    """

    handled: bool = True
    state: Optional[Dict[str, Any]] = None


NOT_HANDLED = HandlerResult(handled=False)


class Channel:
    """Emit events to a single Socket.IO connection."""

    def __init__(self, sid: Optional[str]):
        self.sid = sid

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        socketio.emit(event, payload, to=self.sid)

    def log(self, text: str, type: str = "info", label: Optional[str] = None) -> None:
        if type not in LOG_TYPES:
            raise ValueError(f"unknown log type {type!r}")
        payload = {"text": text, "type": type}
        if label:
            payload["label"] = label
        self.emit("game:log", payload)

    def error(self, text: str) -> None:
        self.log(text, "error")

    def prompt(self, text: str) -> None:
        self.log(text, "prompt", label="QUESTION")

    def state(self, snapshot: Optional[Dict[str, Any]]) -> None:
        if snapshot:
            self.emit("state:update", snapshot)

    def animation(self, anim) -> None:
        if anim is not None:
            self.emit("animation:play", anim.to_dict())

    def combat_update(self, payload: Dict[str, Any]) -> None:
        self.emit("combat:update", payload)

    def combat_end(self, result: str, loot: Optional[Dict[str, Any]] = None) -> None:
        payload: Dict[str, Any] = {"result": result}
        if loot is not None:
            payload["loot"] = loot
        self.emit("combat:end", payload)


def run_in_app_context(fn: Callable, *args, **kwargs):
    """Call ``fn`` inside an application context, pushing one only if needed.

    Background tasks start without a context; tests and Socket.IO handlers
    already have one and must keep using its database session.
    """
    if has_app_context():
        return fn(*args, **kwargs)
    with app.app_context():
        return fn(*args, **kwargs)


def spawn_background(fn: Callable, *args, **kwargs):
    """Start ``fn`` on the Socket.IO server's background task runner."""
    return socketio.start_background_task(run_in_app_context, fn, *args, **kwargs)
