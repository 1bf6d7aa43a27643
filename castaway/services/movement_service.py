"""Movement resolver: hex steps, lazy world expansion.

Directions use axial coordinates (q, r). Stepping onto an unauthored hex drops
the player into the creation wizard with a room draft seeded at that hex.
"""

from __future__ import annotations

from typing import Optional, Tuple

from castaway.logging_utils import get_logger
from castaway.models.enums import AnimationType, Mode
from castaway.models.models import User
from castaway.services import repository as repo
from castaway.services.events import NOT_HANDLED, Channel, HandlerResult
from castaway.services.scratch_store import SessionStore
from castaway.services.snapshot import build_snapshot

log = get_logger("movement")

AXIAL_OFFSETS = {
    "n": (0, -1),
    "s": (0, 1),
    "ne": (1, -1),
    "sw": (-1, 1),
    "nw": (-1, 0),
    "se": (1, 0),
}

TITLE_PROMPT = "What is this place called?"


def parse_direction(raw: str) -> Optional[str]:
    """Return ``n|s|ne|se|nw|sw`` for ``"<dir>"`` or ``"go <dir>"``, else None."""
    parts = (raw or "").strip().lower().split()
    if not parts:
        return None
    if parts[0] == "go" and len(parts) > 1:
        parts = parts[1:]
    if len(parts) != 1:
        return None
    return parts[0] if parts[0] in AXIAL_OFFSETS else None


def move_axial(q: int, r: int, direction: str) -> Tuple[int, int]:
    dq, dr = AXIAL_OFFSETS[direction]
    return q + dq, r + dr


class MovementResolver:
    def __init__(self, store: SessionStore):
        self.store = store

    def handle_move(self, out: Channel, user: User, raw: str) -> HandlerResult:
        direction = parse_direction(raw)
        if direction is None:
            return NOT_HANDLED
        if user.mode != Mode.IDLE:
            out.error(f"Cannot move while in {user.mode.value} state.")
            return HandlerResult()

        q, r = move_axial(user.current_q, user.current_r, direction)
        repo.update_user(user, current_q=q, current_r=r)
        room = repo.get_room(q, r, user.server_code)
        if room is None:
            # Unauthored hex: this player gets to shape it
            self.store.start_room_draft(user.id, q, r)
            repo.set_mode(user, Mode.CREATING_ROOM_TITLE)
            log.info(event="enter_void", user_id=user.id, q=q, r=r, realm=user.server_code)
            out.log("The mists part before you. This land is unshaped.", "info")
            out.prompt(TITLE_PROMPT)
            return HandlerResult(state=build_snapshot(user, self.store.online_user_ids()))

        log.debug(event="move", user_id=user.id, direction=direction, room_id=room.id)
        out.log(room.title, "room-title")
        out.log(room.description, "room-desc")
        out.animation(repo.get_room_animation(room.id, AnimationType.TAPESTRY))
        return HandlerResult(state=build_snapshot(user, self.store.online_user_ids()))
