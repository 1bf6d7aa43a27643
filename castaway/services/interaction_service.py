"""Generic ``<verb> <object>`` interaction path.

An item picked by position is used as is. Otherwise the target is matched
by name in the room first (visible items before hidden ones), then in the player's
inventory. The verb must be the item's configured verb. Gates need their key
in the inventory. Exactly one effect is applied per interaction.
"""

from __future__ import annotations

from typing import Optional

from castaway.logging_utils import get_logger
from castaway.models.enums import AnimationType, EffectType
from castaway.models.models import Item, User
from castaway.services import repository as repo
from castaway.services.combat_service import CombatEngine
from castaway.services.events import Channel, HandlerResult
from castaway.services.movement_service import AXIAL_OFFSETS
from castaway.services.scratch_store import SessionStore
from castaway.services.snapshot import build_snapshot

log = get_logger("interaction")

# Verbs the generic path never sees: the dispatcher routes them elsewhere
RESERVED_VERBS = frozenset({"go", "help", "fight", "open"})
COMMAND_WORDS = RESERVED_VERBS | {"look", "l", "retreat", "regenerate"} | frozenset(AXIAL_OFFSETS)


def _has_key(gate: Item, carried) -> bool:
    for owned in carried:
        if gate.required_item_id is not None and owned.id == gate.required_item_id:
            return True
        if gate.required_item_name and owned.name.lower() == gate.required_item_name.lower():
            return True
    return False


class InteractionService:
    def __init__(self, store: SessionStore, combat: CombatEngine):
        self.store = store
        self.combat = combat

    def handle_interaction(self, out: Channel, user: User, verb: str, target: str, item: Optional[Item] = None) -> HandlerResult:
        verb = verb.lower()
        room = repo.get_room(user.current_q, user.current_r, user.server_code)
        if item is None and room is not None:
            item = repo.find_room_item(room.id, user.server_code, target)
        if item is None:
            item = repo.find_inventory_item(user.id, user.server_code, target)
        if item is None:
            out.error(f'You don\'t see "{target}" here.')
            return HandlerResult()

        if (item.interact_verb or "").lower() != verb:
            out.error(f"You can't {verb} the {item.name}.")
            return HandlerResult()

        if item.is_gate and not _has_key(item, repo.inventory(user.id, user.server_code)):
            out.error("You need a specific item to do that.")
            if item.required_item_name:
                out.log(f"Perhaps the {item.required_item_name} would help.", "info")
            return HandlerResult()

        defeated = False
        effect = item.effect_type or EffectType.NONE
        value = item.effect_value or 0
        if effect == EffectType.GOLD:
            repo.update_user(user, gold=user.gold + value)
            text = f"You gained {value} gold!"
        elif effect == EffectType.HEAL:
            new_hp = min(user.max_hp, user.hp + value)
            healed = new_hp - user.hp
            repo.update_user(user, hp=new_hp)
            text = f"You recovered {healed} HP!"
        elif effect == EffectType.DAMAGE:
            new_hp = max(0, user.hp - value)
            taken = user.hp - new_hp
            repo.update_user(user, hp=new_hp)
            text = f"You took {taken} damage!"
            defeated = new_hp <= 0
        elif effect == EffectType.ITEM:
            if item.owner_id == user.id:
                out.error(f"You already have the {item.name}.")
                return HandlerResult()
            if item.is_infinite:
                repo.clone_item_to_inventory(item, user.id)
            else:
                repo.move_item_to_inventory(item, user.id)
            text = f"You take the {item.name}."
        else:
            text = f"You {verb} the {item.name}."

        log.info(event="interact", user_id=user.id, item_id=item.id, verb=verb, effect=effect.value)
        out.animation(repo.get_item_animation(item.id, AnimationType.INTERACTION))
        out.log(item.success_message or text, "info")
        if defeated:
            out.log("You have been defeated!", "error")
            self.combat.handle_death(out, user)
            return HandlerResult()
        return HandlerResult(state=build_snapshot(user, self.store.online_user_ids()))
