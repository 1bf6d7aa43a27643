# Model package init
from .enums import WIZARD_MODES, AnimationType, EffectType, Mode  # noqa: F401 re-export
from .models import Animation, Item, Room, User  # noqa: F401 re-export

__all__ = [
    "Animation",
    "AnimationType",
    "EffectType",
    "Item",
    "Mode",
    "Room",
    "User",
    "WIZARD_MODES",
]
