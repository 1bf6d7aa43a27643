"""``help``, ``look`` and ``regenerate``."""

from __future__ import annotations

import logging
import random
from typing import Callable, Optional

from flask import current_app

from castaway import db
from castaway.logging_utils import get_logger
from castaway.models.models import User
from castaway.services import repository as repo
from castaway.services.animation_service import weave_room
from castaway.services.art_service import ArtClient
from castaway.services.events import Channel, HandlerResult, spawn_background
from castaway.services.scratch_store import SessionStore
from castaway.services.snapshot import build_snapshot

log = get_logger("general")

DEFAULT_REGENERATE_MOOD = "Mysterious"
COMMANDS_HELP = (
    "Commands: n, s, ne, se, nw, sw (or go <dir>), look [object], fight <enemy|#>, retreat, "
    "open <object|#>, <verb> <object|#>"
)


def obfuscate(text: str, shroud_level: int, rng: Optional[random.Random] = None) -> str:
    """Blank out ``min(shroud_level, len // 2)`` non-space characters with ``_``."""
    if shroud_level <= 0 or not text:
        return text
    rng = rng or random
    chars = list(text)
    candidates = [i for i, ch in enumerate(chars) if ch != " "]
    hide = min(shroud_level, len(chars) // 2, len(candidates))
    for idx in rng.sample(candidates, hide):
        chars[idx] = "_"
    return "".join(chars)


class GeneralCommands:
    def __init__(self, store: SessionStore, art: ArtClient, spawn: Callable = spawn_background):
        self.store = store
        self.art = art
        self.spawn = spawn

    def handle_help(self, out: Channel, user: User) -> HandlerResult:
        out.log(COMMANDS_HELP, "info")
        room = repo.get_room(user.current_q, user.current_r, user.server_code)
        if room is None:
            out.log("You are in undefined space. No objects here.", "info")
            return HandlerResult()
        verbs = [i.interact_verb for i in repo.room_items(room.id, user.server_code, include_hidden=False)]
        if not verbs:
            out.log("No objects in this room.", "info")
            return HandlerResult()
        shrouded = [obfuscate(v, room.shroud_level or 0) for v in verbs]
        out.log(f"Verbs: {', '.join(shrouded)}", "info")
        return HandlerResult()

    def handle_look(self, out: Channel, user: User, target: str = "") -> HandlerResult:
        room = repo.get_room(user.current_q, user.current_r, user.server_code)
        if room is None:
            out.log("You are in undefined space.", "info")
            return HandlerResult()
        target = (target or "").strip()
        if not target:
            out.log(room.title, "room-title")
            out.log(room.description, "room-desc")
            items = repo.room_items(room.id, user.server_code, include_hidden=False)
            if items:
                listing = ", ".join(f"{n}. {i.name}" for n, i in enumerate(items, start=1))
                out.log(f"You see: {listing}", "room-items")
            return HandlerResult()
        item = repo.find_room_item(room.id, user.server_code, target)
        if item is None:
            item = repo.find_inventory_item(user.id, user.server_code, target)
        if item is None:
            out.error(f'You don\'t see "{target}" here.')
            return HandlerResult()
        out.log(item.description or "You don't notice anything.", "info")
        return HandlerResult()

    def handle_regenerate(self, out: Channel, user: User, mood: Optional[str] = None) -> HandlerResult:
        room = repo.get_room(user.current_q, user.current_r, user.server_code)
        if room is None:
            out.error("You are in undefined space. Cannot regenerate animations.")
            return HandlerResult()
        mood = (mood or "").strip() or DEFAULT_REGENERATE_MOOD
        out.log(f'Regenerating animations for "{room.title}" with mood: {mood}...', "info")
        removed = repo.delete_room_animations(room.id)
        log.info(event="regenerate", user_id=user.id, room_id=room.id, mood=mood, removed=removed)
        fps = int(current_app.config.get("ANIMATION_FPS", 2))
        self.spawn(self.regenerate, user.id, out, room.id, mood, fps)
        return HandlerResult()

    def regenerate(self, user_id: int, out: Channel, room_id: int, mood: str, fps: int = 2) -> None:
        """Background task: re-weave a room and show the result to the requester."""
        try:
            room = repo.get_room_by_id(room_id)
            if room is None:
                return
            report = weave_room(self.art, room, mood, fps=fps)
        except Exception:
            db.session.rollback()
            logging.exception("Regeneration failed for room %s", room_id)
            out.error("Animations could not be regenerated.")
            return
        if report.generated:
            out.log("Animations and room symbol regenerated successfully!", "info")
        else:
            out.error("Animations could not be regenerated.")
        with self.store.user_lock(user_id):
            user = repo.get_user(user_id)
            if user is None:
                return
            out.state(build_snapshot(user, self.store.online_user_ids()))
            if report.tapestry is not None and (user.current_q, user.current_r) == (room.q, room.r):
                out.animation(report.tapestry)
