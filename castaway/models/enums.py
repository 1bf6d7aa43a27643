"""Closed enumerations persisted on the world tables.

``Mode`` is the per-player state machine. It is stored on the user row and is
the only thing the dispatcher looks at when deciding who handles a command.
"""

from enum import Enum


class Mode(str, Enum):
    IDLE = "IDLE"

    CREATING_ROOM_TITLE = "CREATING_ROOM_TITLE"
    CREATING_ROOM_DESC = "CREATING_ROOM_DESC"
    CREATING_ROOM_MOOD = "CREATING_ROOM_MOOD"
    CREATING_ROOM_SHROUD = "CREATING_ROOM_SHROUD"

    CREATING_OBJ_CONFIRM = "CREATING_OBJ_CONFIRM"
    CREATING_OBJ_NAME = "CREATING_OBJ_NAME"
    CREATING_OBJ_DESC = "CREATING_OBJ_DESC"
    CREATING_OBJ_TYPE = "CREATING_OBJ_TYPE"
    CREATING_OBJ_VALUE = "CREATING_OBJ_VALUE"
    CREATING_OBJ_ENEMY_STATS = "CREATING_OBJ_ENEMY_STATS"
    CREATING_OBJ_SUPPLY_TYPE = "CREATING_OBJ_SUPPLY_TYPE"
    CREATING_OBJ_REQUIREMENT = "CREATING_OBJ_REQUIREMENT"
    CREATING_OBJ_VERB_CONFIRM = "CREATING_OBJ_VERB_CONFIRM"
    CREATING_OBJ_SUCCESS_MSG = "CREATING_OBJ_SUCCESS_MSG"

    GENERATING_ANIMATIONS = "GENERATING_ANIMATIONS"
    COMBAT = "COMBAT"

    @property
    def is_wizard(self) -> bool:
        """True for every mode owned by the creation wizard (including weaving)."""
        return self.value.startswith("CREATING_") or self is Mode.GENERATING_ANIMATIONS


WIZARD_MODES = frozenset(m for m in Mode if m.is_wizard)


class EffectType(str, Enum):
    GOLD = "GOLD"
    HEAL = "HEAL"
    DAMAGE = "DAMAGE"
    NONE = "NONE"
    ITEM = "ITEM"


class AnimationType(str, Enum):
    TAPESTRY = "TAPESTRY"
    INTERACTION = "INTERACTION"
    COMBAT_DURING = "COMBAT_DURING"
    COMBAT_VICTORY = "COMBAT_VICTORY"
    COMBAT_RETREAT = "COMBAT_RETREAT"
