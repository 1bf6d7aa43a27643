"""Room and object creation wizard.

A linear, resumable conversation driven by the player's persisted ``Mode``.
Each step validates the answer, stores it in the scratch draft, advances the
mode and asks the next question.

Step order:
    title -> description -> mood (1-6) -> shroud (0-5) -> room committed
    loop: add object? (y/n)
        y: name -> description -> type (1-6) -> [type-specific value]
           -> verb confirmation -> success message -> object committed
        n: animations are woven in the background, then back to IDLE

Every step but the first requires the draft to hold the previous answers;
otherwise the session is treated as expired and the player returns to IDLE.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from flask import current_app

from castaway import db
from castaway.logging_utils import get_logger
from castaway.models.enums import EffectType, Mode
from castaway.models.models import User
from castaway.services import repository as repo
from castaway.services.animation_service import WeaveReport, weave_room
from castaway.services.art_service import ArtClient
from castaway.services.events import NOT_HANDLED, Channel, HandlerResult, spawn_background
from castaway.services.interaction_service import COMMAND_WORDS
from castaway.services.movement_service import TITLE_PROMPT
from castaway.services.scratch_store import ItemDraft, RoomDraft, SessionStore
from castaway.services.snapshot import build_snapshot

log = get_logger("wizard")

MOODS = ("Neutral", "Mysterious", "Dangerous", "Peaceful", "Ancient", "Whimsical")
MOOD_MENU = "Choose a mood: 1. Neutral 2. Mysterious 3. Dangerous 4. Peaceful 5. Ancient 6. Whimsical"

# Menu order of the object type question
CATEGORIES = ("flavor", "treasure", "buff", "pickup", "enemy", "gate")
TYPE_MENU = "What kind of object is it? 1. Flavor 2. Treasure 3. Buff/Trap 4. Pickup 5. Enemy 6. Gate"
DEFAULT_VERBS = {
    "flavor": "examine",
    "treasure": "search",
    "buff": "touch",
    "pickup": "take",
    "enemy": "fight",
    "gate": "open",
}

DESC_PROMPT = "Describe the surroundings."
SHROUD_PROMPT = "How mysterious is this place? (0-5)"
CONFIRM_PROMPT = "Add an object? (y/n)"
NAME_PROMPT = "What is this object called?"
OBJ_DESC_PROMPT = "Describe this object."
GOLD_PROMPT = "How much Gold?"
HP_PROMPT = "HP Change? (Positive/Negative)"
SUPPLY_PROMPT = "Unique (1) or Infinite (2)"
ENEMY_PROMPT = 'Enter HP Attack XP (e.g., "20 4 50")'
REQUIREMENT_PROMPT = "Name of required Key?"

EXPIRED = "Creation session expired. Please try again."
STILL_WEAVING = "The world is still taking shape. Please wait."
WEAVING = "Weaving the threads of reality... (Generating Animations)"
WORLD_COMPLETE = "The world is complete. You may explore."
WORLD_COMPLETE_NO_ART = "The world is complete. (Animations could not be generated)"

YES = ("y", "yes")
NO = ("n", "no")


def _parse_int(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except (TypeError, ValueError):
        return None


def _parse_choice(text: str, upper: int) -> Optional[int]:
    value = _parse_int(text)
    if value is None or not 1 <= value <= upper:
        return None
    return value


class CreationWizard:
    def __init__(
        self,
        store: SessionStore,
        art: ArtClient,
        spawn: Callable = spawn_background,
    ):
        self.store = store
        self.art = art
        self.spawn = spawn
        self._steps: Dict[Mode, Callable[[Channel, User, str], HandlerResult]] = {
            Mode.CREATING_ROOM_TITLE: self._room_title,
            Mode.CREATING_ROOM_DESC: self._room_desc,
            Mode.CREATING_ROOM_MOOD: self._room_mood,
            Mode.CREATING_ROOM_SHROUD: self._room_shroud,
            Mode.CREATING_OBJ_CONFIRM: self._obj_confirm,
            Mode.CREATING_OBJ_NAME: self._obj_name,
            Mode.CREATING_OBJ_DESC: self._obj_desc,
            Mode.CREATING_OBJ_TYPE: self._obj_type,
            Mode.CREATING_OBJ_VALUE: self._obj_value,
            Mode.CREATING_OBJ_ENEMY_STATS: self._obj_enemy_stats,
            Mode.CREATING_OBJ_SUPPLY_TYPE: self._obj_supply_type,
            Mode.CREATING_OBJ_REQUIREMENT: self._obj_requirement,
            Mode.CREATING_OBJ_VERB_CONFIRM: self._obj_verb_confirm,
            Mode.CREATING_OBJ_SUCCESS_MSG: self._obj_success_msg,
            Mode.GENERATING_ANIMATIONS: self._generating,
        }

    @property
    def modes(self):
        return frozenset(self._steps)

    def handle_input(self, out: Channel, user: User, raw: str) -> HandlerResult:
        step = self._steps.get(user.mode)
        if step is None:
            return NOT_HANDLED
        return step(out, user, (raw or "").strip())

    # ------------------------------------------------------------------ helpers

    def _snapshot(self, user: User):
        return build_snapshot(user, self.store.online_user_ids())

    def _advance(self, out: Channel, user: User, mode: Mode, prompt: str) -> HandlerResult:
        repo.set_mode(user, mode)
        out.prompt(prompt)
        return HandlerResult(state=self._snapshot(user))

    def _retry(self, out: Channel, message: str, prompt: Optional[str] = None) -> HandlerResult:
        out.error(message)
        if prompt:
            out.prompt(prompt)
        return HandlerResult()

    def expire(self, out: Channel, user: User) -> HandlerResult:
        """Abandon the creation session and return the player to IDLE."""
        self.store.discard_drafts(user.id)
        repo.set_mode(user, Mode.IDLE)
        log.info(event="wizard_expired", user_id=user.id)
        out.error(EXPIRED)
        return HandlerResult(state=self._snapshot(user))

    def _committed_room(self, user: User) -> Optional[RoomDraft]:
        draft = self.store.room_draft(user.id)
        if draft is None or draft.room_id is None:
            return None
        return draft

    def _object_drafts(self, user: User):
        room = self._committed_room(user)
        item = self.store.item_draft(user.id)
        if room is None or item is None:
            return None, None
        return room, item

    # ------------------------------------------------------------------ room steps

    def _room_title(self, out, user, text):
        draft = self.store.room_draft(user.id)
        if draft is None:
            draft = self.store.start_room_draft(user.id, user.current_q, user.current_r)
        if not text:
            return self._retry(out, "Every place needs a name.", TITLE_PROMPT)
        draft.title = text[:120]
        return self._advance(out, user, Mode.CREATING_ROOM_DESC, DESC_PROMPT)

    def _room_desc(self, out, user, text):
        draft = self.store.room_draft(user.id)
        if draft is None or not draft.title:
            return self.expire(out, user)
        if not text:
            return self._retry(out, "Say something about this place.", DESC_PROMPT)
        draft.description = text
        return self._advance(out, user, Mode.CREATING_ROOM_MOOD, MOOD_MENU)

    def _room_mood(self, out, user, text):
        draft = self.store.room_draft(user.id)
        if draft is None or not draft.description:
            return self.expire(out, user)
        choice = _parse_choice(text, len(MOODS))
        if choice is None:
            return self._retry(out, "Invalid selection. Please enter a number between 1 and 6.")
        draft.mood = MOODS[choice - 1]
        return self._advance(out, user, Mode.CREATING_ROOM_SHROUD, SHROUD_PROMPT)

    def _room_shroud(self, out, user, text):
        draft = self.store.room_draft(user.id)
        if draft is None or not draft.mood:
            return self.expire(out, user)
        level = _parse_int(text)
        if level is None or not 0 <= level <= 5:
            return self._retry(out, "Please enter a number between 0 and 5.")
        try:
            room = repo.create_room(
                draft.q, draft.r, user.server_code, draft.title, draft.description, level, user.id
            )
        except repo.RoomTakenError:
            # Another author committed this hex first; show theirs instead
            self.store.discard_drafts(user.id)
            repo.set_mode(user, Mode.IDLE)
            log.info(event="room_race_lost", user_id=user.id, q=draft.q, r=draft.r)
            out.log("Someone else shaped this place while you were dreaming it.", "info")
            existing = repo.get_room(draft.q, draft.r, user.server_code)
            if existing:
                out.log(existing.title, "room-title")
                out.log(existing.description, "room-desc")
            return HandlerResult(state=self._snapshot(user))
        draft.room_id = room.id
        out.log("The world takes shape around you.", "info")
        return self._advance(out, user, Mode.CREATING_OBJ_CONFIRM, CONFIRM_PROMPT)

    # ------------------------------------------------------------------ object steps

    def _obj_confirm(self, out, user, text):
        draft = self._committed_room(user)
        if draft is None:
            return self.expire(out, user)
        answer = text.lower()
        if answer in YES:
            self.store.start_item_draft(user.id)
            return self._advance(out, user, Mode.CREATING_OBJ_NAME, NAME_PROMPT)
        if answer in NO:
            return self._begin_weaving(out, user, draft)
        return self._retry(out, 'Please answer with "y" or "n".', CONFIRM_PROMPT)

    def _obj_name(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None:
            return self.expire(out, user)
        if not text:
            return self._retry(out, "The object needs a name.", NAME_PROMPT)
        item.name = text[:80]
        return self._advance(out, user, Mode.CREATING_OBJ_DESC, OBJ_DESC_PROMPT)

    def _obj_desc(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or not item.name:
            return self.expire(out, user)
        item.description = text
        return self._advance(out, user, Mode.CREATING_OBJ_TYPE, TYPE_MENU)

    def _obj_type(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or not item.name or item.description is None:
            return self.expire(out, user)
        choice = _parse_choice(text, len(CATEGORIES))
        if choice is None:
            return self._retry(out, "Invalid selection. Please enter a number between 1 and 6.")
        item.category = CATEGORIES[choice - 1]
        if item.category == "treasure":
            return self._advance(out, user, Mode.CREATING_OBJ_VALUE, GOLD_PROMPT)
        if item.category == "buff":
            return self._advance(out, user, Mode.CREATING_OBJ_VALUE, HP_PROMPT)
        if item.category == "pickup":
            return self._advance(out, user, Mode.CREATING_OBJ_SUPPLY_TYPE, SUPPLY_PROMPT)
        if item.category == "enemy":
            return self._advance(out, user, Mode.CREATING_OBJ_ENEMY_STATS, ENEMY_PROMPT)
        if item.category == "gate":
            return self._advance(out, user, Mode.CREATING_OBJ_REQUIREMENT, REQUIREMENT_PROMPT)
        return self._ask_verb(out, user, item)

    def _obj_value(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or item.category not in ("treasure", "buff"):
            return self.expire(out, user)
        value = _parse_int(text)
        if item.category == "treasure":
            if value is None or value < 0:
                return self._retry(out, "Please enter a whole number of gold (0 or more).", GOLD_PROMPT)
        elif value is None or value == 0:
            return self._retry(out, "Please enter a non-zero number (positive heals, negative harms).", HP_PROMPT)
        item.effect_value = value
        return self._ask_verb(out, user, item)

    def _obj_enemy_stats(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or item.category != "enemy":
            return self.expire(out, user)
        values = [_parse_int(part) for part in text.split()]
        if len(values) != 3 or any(v is None or v <= 0 for v in values):
            return self._retry(out, "Please enter three positive numbers: HP ATTACK XP.", ENEMY_PROMPT)
        item.enemy_hp, item.enemy_attack, item.xp_value = values
        return self._ask_verb(out, user, item)

    def _obj_supply_type(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or item.category != "pickup":
            return self.expire(out, user)
        if text not in ("1", "2"):
            return self._retry(out, "Please enter 1 (Unique) or 2 (Infinite).", SUPPLY_PROMPT)
        item.is_infinite = text == "2"
        return self._ask_verb(out, user, item)

    def _obj_requirement(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or item.category != "gate":
            return self.expire(out, user)
        if not text:
            return self._retry(out, "Name the item that unlocks this.", REQUIREMENT_PROMPT)
        match = repo.find_room_item(room.room_id, user.server_code, text)
        if match:
            item.required_item_id = match.id
            item.required_item_name = match.name
            out.log(f'Found item: "{match.name}". Gate will require this item.', "info")
        else:
            item.required_item_id = None
            item.required_item_name = text[:80]
            out.log(
                f'Warning: Item "{text}" not found in this room. '
                "Gate will be created but may not work until the item exists.",
                "info",
            )
        return self._ask_verb(out, user, item)

    def _ask_verb(self, out, user, item: ItemDraft):
        default = DEFAULT_VERBS[item.category]
        return self._advance(
            out,
            user,
            Mode.CREATING_OBJ_VERB_CONFIRM,
            f"Default verb is '{default}'. Press 'Y' to confirm or type a custom verb.",
        )

    @staticmethod
    def _branch_complete(item: ItemDraft) -> bool:
        if item.category == "flavor":
            return True
        if item.category in ("treasure", "buff"):
            return item.effect_value is not None
        if item.category == "pickup":
            return item.is_infinite is not None
        if item.category == "enemy":
            return item.enemy_hp is not None
        if item.category == "gate":
            return bool(item.required_item_name)
        return False

    def _obj_verb_confirm(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or not self._branch_complete(item):
            return self.expire(out, user)
        answer = text.lower()
        if answer in ("",) + YES:
            verb = DEFAULT_VERBS[item.category]
        else:
            words = answer.split()
            if len(words) != 1:
                return self._retry(out, "A verb must be a single word.")
            verb = words[0]
            if verb in COMMAND_WORDS:
                return self._retry(out, f"'{verb}' is already a command. Choose another verb.")
        item.verb = verb
        return self._advance(
            out,
            user,
            Mode.CREATING_OBJ_SUCCESS_MSG,
            f"Describe what happens when someone {verb} {item.name}.",
        )

    def _obj_success_msg(self, out, user, text):
        room, item = self._object_drafts(user)
        if item is None or not item.verb:
            return self.expire(out, user)
        created = repo.create_item(**self._item_fields(user, room, item, text or None))
        self.store.discard_item_draft(user.id)
        log.info(event="object_authored", user_id=user.id, item_id=created.id, category=item.category)
        out.log(f'Object "{created.name}" created!', "info")
        return self._advance(out, user, Mode.CREATING_OBJ_CONFIRM, CONFIRM_PROMPT)

    @staticmethod
    def _item_fields(user: User, room: RoomDraft, item: ItemDraft, success_message: Optional[str]):
        fields = dict(
            room_id=room.room_id,
            server_code=user.server_code,
            name=item.name,
            description=item.description or "",
            success_message=success_message,
            interact_verb=item.verb,
            effect_type=EffectType.NONE,
            effect_value=0,
        )
        if item.category == "treasure":
            fields.update(effect_type=EffectType.GOLD, effect_value=item.effect_value)
        elif item.category == "buff":
            effect = EffectType.HEAL if item.effect_value > 0 else EffectType.DAMAGE
            fields.update(effect_type=effect, effect_value=abs(item.effect_value))
        elif item.category == "pickup":
            fields.update(effect_type=EffectType.ITEM, is_infinite=bool(item.is_infinite))
        elif item.category == "enemy":
            fields.update(
                enemy_hp=item.enemy_hp,
                enemy_max_hp=item.enemy_hp,
                enemy_attack=item.enemy_attack,
                xp_value=item.xp_value,
            )
        elif item.category == "gate":
            fields.update(required_item_id=item.required_item_id, required_item_name=item.required_item_name)
        return fields

    # ------------------------------------------------------------------ weaving

    def _generating(self, out, user, text):
        out.error(STILL_WEAVING)
        return HandlerResult()

    def _begin_weaving(self, out: Channel, user: User, draft: RoomDraft) -> HandlerResult:
        self.store.discard_item_draft(user.id)
        self.store.mark_generating(user.id)
        repo.set_mode(user, Mode.GENERATING_ANIMATIONS)
        out.log(WEAVING, "info")
        out.state(self._snapshot(user))
        fps = int(current_app.config.get("ANIMATION_FPS", 2))
        self.spawn(self.weave, user.id, out, draft.room_id, draft.mood or MOODS[0], fps)
        return HandlerResult()

    def weave(self, user_id: int, out: Channel, room_id: int, mood: str, fps: int = 2) -> None:
        """Background task: generate the room's art, then release the author."""
        report: Optional[WeaveReport] = None
        try:
            room = repo.get_room_by_id(room_id)
            if room is not None:
                report = weave_room(self.art, room, mood, fps=fps)
        except Exception:
            db.session.rollback()
            logging.exception("Animation weaving failed for room %s", room_id)
        finally:
            self._finish_weaving(user_id, out, room_id, report)

    def _finish_weaving(self, user_id: int, out: Channel, room_id: int, report: Optional[WeaveReport]) -> None:
        with self.store.user_lock(user_id):
            self.store.clear_generating(user_id)
            self.store.discard_drafts(user_id)
            user = repo.get_user(user_id)
            if user is None:
                return
            if user.mode == Mode.GENERATING_ANIMATIONS:
                repo.set_mode(user, Mode.IDLE)
            out.log(WORLD_COMPLETE if report and report.generated else WORLD_COMPLETE_NO_ART, "info")
            out.state(self._snapshot(user))
            if report and report.tapestry is not None:
                out.animation(report.tapestry)
            log.info(event="wizard_complete", user_id=user_id, room_id=room_id)
