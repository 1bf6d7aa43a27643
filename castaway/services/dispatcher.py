"""Command dispatcher and connection lifecycle.

Every ``cmd:input`` for a user runs under that user's command lock. Routing
looks at the persisted ``Mode`` first: wizard and weaving modes belong to the
creation wizard outright. Otherwise commands are tried in order:

    help / look [target] / regenerate [mood]
    movement (n, s, ne, se, nw, sw, go <dir>)
    fight <target|#> / retreat
    open <target|#>
    <verb> <object|#>

Anything left over is an unknown command.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

from castaway import db
from castaway.logging_utils import get_logger
from castaway.models.enums import WIZARD_MODES, AnimationType, Mode
from castaway.models.models import Item, User
from castaway.services import repository as repo
from castaway.services.art_service import ArtClient
from castaway.services.combat_service import CombatEngine
from castaway.services.combat_state import BattleRegistry
from castaway.services.creation_service import CreationWizard
from castaway.services.events import NOT_HANDLED, Channel, HandlerResult, spawn_background
from castaway.services.general_service import GeneralCommands
from castaway.services.interaction_service import RESERVED_VERBS, InteractionService
from castaway.services.movement_service import TITLE_PROMPT, MovementResolver
from castaway.services.scratch_store import SessionStore
from castaway.services.snapshot import build_snapshot

log = get_logger("dispatch")

ROUTE_WIZARD = "wizard"
ROUTE_WORLD = "world"

MODE_ROUTES = {
    Mode.IDLE: ROUTE_WORLD,
    Mode.COMBAT: ROUTE_WORLD,
    Mode.CREATING_ROOM_TITLE: ROUTE_WIZARD,
    Mode.CREATING_ROOM_DESC: ROUTE_WIZARD,
    Mode.CREATING_ROOM_MOOD: ROUTE_WIZARD,
    Mode.CREATING_ROOM_SHROUD: ROUTE_WIZARD,
    Mode.CREATING_OBJ_CONFIRM: ROUTE_WIZARD,
    Mode.CREATING_OBJ_NAME: ROUTE_WIZARD,
    Mode.CREATING_OBJ_DESC: ROUTE_WIZARD,
    Mode.CREATING_OBJ_TYPE: ROUTE_WIZARD,
    Mode.CREATING_OBJ_VALUE: ROUTE_WIZARD,
    Mode.CREATING_OBJ_ENEMY_STATS: ROUTE_WIZARD,
    Mode.CREATING_OBJ_SUPPLY_TYPE: ROUTE_WIZARD,
    Mode.CREATING_OBJ_REQUIREMENT: ROUTE_WIZARD,
    Mode.CREATING_OBJ_VERB_CONFIRM: ROUTE_WIZARD,
    Mode.CREATING_OBJ_SUCCESS_MSG: ROUTE_WIZARD,
    Mode.GENERATING_ANIMATIONS: ROUTE_WIZARD,
}

_unrouted = set(Mode) - set(MODE_ROUTES)
if _unrouted:
    raise RuntimeError(f"modes without a route: {sorted(m.value for m in _unrouted)}")
if {m for m, route in MODE_ROUTES.items() if route == ROUTE_WIZARD} != set(WIZARD_MODES):
    raise RuntimeError("wizard routes out of sync with Mode")


class Dispatcher:
    def __init__(
        self,
        store: SessionStore,
        battles: BattleRegistry,
        art: ArtClient,
        spawn: Callable = spawn_background,
        sleep: Optional[Callable[[float], None]] = None,
        tick_ms: Optional[int] = None,
    ):
        self.store = store
        self.battles = battles
        self.movement = MovementResolver(store)
        self.combat = CombatEngine(store, battles, spawn=spawn, sleep=sleep, tick_ms=tick_ms)
        self.wizard = CreationWizard(store, art, spawn=spawn)
        self.interaction = InteractionService(store, self.combat)
        self.general = GeneralCommands(store, art, spawn=spawn)
        if self.wizard.modes != WIZARD_MODES:
            raise RuntimeError("creation wizard does not cover every wizard mode")

    # ------------------------------------------------------------------ commands

    def dispatch(self, out: Channel, user_id: int, raw: str) -> HandlerResult:
        with self.store.user_lock(user_id):
            user = repo.get_user(user_id)
            if user is None:
                out.error("User record missing.")
                return HandlerResult()
            try:
                result = self.route(out, user, raw)
            except Exception:
                db.session.rollback()
                logging.exception("Command failed for user %s: %r", user_id, raw)
                out.error("Something went wrong. Please try again.")
                return HandlerResult()
            if not result.handled:
                out.error(f"Unknown command: {(raw or '').strip()}")
            elif result.state:
                out.state(result.state)
            return result

    def route(self, out: Channel, user: User, raw: str) -> HandlerResult:
        text = (raw or "").strip()
        if MODE_ROUTES[user.mode] == ROUTE_WIZARD:
            return self.wizard.handle_input(out, user, text)
        if not text:
            return HandlerResult()

        words = text.split()
        head = words[0].lower()
        rest = text[len(words[0]):].strip()

        if head == "help" and not rest:
            return self.general.handle_help(out, user)
        if head in ("look", "l"):
            return self.general.handle_look(out, user, rest)
        if head in ("regenerate", "/regenerate"):
            return self.general.handle_regenerate(out, user, rest or None)

        moved = self.movement.handle_move(out, user, text)
        if moved.handled:
            return moved

        if head == "fight":
            if not rest:
                out.error("Fight what?")
                return HandlerResult()
            target = self._resolve_target(out, user, rest)
            if target is None:
                return HandlerResult()
            return self.combat.handle_fight(out, user, *target)
        if head in ("retreat", "/retreat") and not rest:
            return self.combat.handle_retreat(out, user)

        if head == "open":
            if not rest:
                out.error("Open what?")
                return HandlerResult()
            target = self._resolve_target(out, user, rest)
            if target is None:
                return HandlerResult()
            return self.interaction.handle_interaction(out, user, "open", *target)

        if len(words) >= 2 and head not in RESERVED_VERBS:
            target = self._resolve_target(out, user, rest)
            if target is None:
                return HandlerResult()
            return self.interaction.handle_interaction(out, user, head, *target)

        return NOT_HANDLED

    def _resolve_target(self, out: Channel, user: User, target: str) -> Optional[Tuple[str, Optional[Item]]]:
        """Return ``(name, item)``; ``item`` is set when the target was a 1-based position.

        A position picks the exact row it indexes in the visible room listing,
        so namesakes (hidden or not) can never be hit instead.
        """
        if not target.isdigit():
            return target, None
        position = int(target)
        room = repo.get_room(user.current_q, user.current_r, user.server_code)
        items = repo.room_items(room.id, user.server_code, include_hidden=False) if room else []
        if 1 <= position <= len(items):
            item = items[position - 1]
            return item.name, item
        out.error(f"No object at position {position}.")
        return None

    # ------------------------------------------------------------------ lifecycle

    def retreat(self, out: Channel, user_id: int) -> HandlerResult:
        """``combat:retreat`` event: same as typing ``retreat``."""
        with self.store.user_lock(user_id):
            user = repo.get_user(user_id)
            if user is None:
                return HandlerResult()
            result = self.combat.handle_retreat(out, user)
            out.state(result.state)
            return result

    def connect(self, out: Channel, user_id: int, sid: str) -> Optional[User]:
        """Bind a fresh connection, repair stale state and greet the player."""
        self.store.bind(sid, user_id)
        with self.store.user_lock(user_id):
            user = repo.get_user(user_id)
            if user is None:
                self.store.unbind(sid)
                return None
            repo.ensure_genesis(user.server_code)
            prompt = self._reconcile(out, user)
            out.log(f"Welcome back, {user.handle}.", "info")
            room = repo.get_room(user.current_q, user.current_r, user.server_code)
            if room is not None:
                out.log(room.title, "room-title")
                out.log(room.description, "room-desc")
            out.state(build_snapshot(user, self.store.online_user_ids()))
            if room is not None:
                out.animation(repo.get_room_animation(room.id, AnimationType.TAPESTRY))
            if prompt:
                out.prompt(prompt)
            log.bind(user_id=user.id, realm=user.server_code).info(event="connect", sid=sid, mode=user.mode.value)
            return user

    def _reconcile(self, out: Channel, user: User) -> Optional[str]:
        if user.mode == Mode.GENERATING_ANIMATIONS:
            if not self.store.is_generating(user.id):
                self.wizard.expire(out, user)
        elif user.mode in WIZARD_MODES:
            in_void = repo.get_room(user.current_q, user.current_r, user.server_code) is None
            if user.mode == Mode.CREATING_ROOM_TITLE and in_void:
                return TITLE_PROMPT
            if not self.store.has_drafts(user.id):
                self.wizard.expire(out, user)
        elif user.mode == Mode.COMBAT and not self.battles.in_combat(user.id):
            repo.set_mode(user, Mode.IDLE)
            out.log("The fight ended while you were away.", "info")

        if user.mode == Mode.IDLE and repo.get_room(user.current_q, user.current_r, user.server_code) is None:
            repo.update_user(user, current_q=repo.GENESIS_Q, current_r=repo.GENESIS_R)
            out.log("You drift back to familiar ground.", "info")
        return None

    def disconnect(self, sid: str) -> Optional[int]:
        user_id = self.store.user_for(sid)
        if user_id is None:
            return None
        self.combat.abandon(user_id, sid)
        self.store.release(sid)
        log.info(event="disconnect", user_id=user_id, sid=sid)
        return user_id
