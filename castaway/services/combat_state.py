"""Registry of active auto-battles, at most one per user.

The registry is authoritative for "is this user fighting". Each battle owns a
cancellation token; cancelling it stops the background tick loop at its next
wake-up.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(eq=False)
class Battle:
    user_id: int
    enemy_id: int
    sid: Optional[str]
    channel: object
    cancel: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


class BattleRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._battles: Dict[int, Battle] = {}

    def start(self, user_id: int, enemy_id: int, sid: Optional[str], channel) -> Battle:
        """Register a new battle, cancelling any stale one for the same user."""
        battle = Battle(user_id=user_id, enemy_id=enemy_id, sid=sid, channel=channel)
        with self._lock:
            previous = self._battles.get(user_id)
            self._battles[user_id] = battle
        if previous is not None:
            previous.cancel.set()
        return battle

    def get(self, user_id: int) -> Optional[Battle]:
        with self._lock:
            return self._battles.get(user_id)

    def in_combat(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._battles

    def end(self, user_id: int, battle: Optional[Battle] = None) -> Optional[Battle]:
        """Stop and forget the user's battle (only ``battle`` itself when given)."""
        with self._lock:
            current = self._battles.get(user_id)
            if current is None or (battle is not None and current is not battle):
                return None
            del self._battles[user_id]
        current.cancel.set()
        return current

    def clear(self) -> None:
        with self._lock:
            battles = list(self._battles.values())
            self._battles.clear()
        for battle in battles:
            battle.cancel.set()
