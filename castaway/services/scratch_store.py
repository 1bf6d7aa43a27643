"""Session and wizard scratch store.

Transient, per-process state that deliberately does not survive a disconnect:

* socket sid -> user id bindings (a user may hold more than one connection);
* room and item drafts owned by the creation wizard;
* per-user re-entrant locks that serialise commands against combat ticks
  (held weakly: a lock lives only while some caller still holds it);
* the set of users whose animation weaving is still in flight.

Each map has its own lock; callers never see the underlying dicts.
"""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass
from typing import Dict, Optional, Set


@dataclass
class RoomDraft:
    q: int
    r: int
    title: Optional[str] = None
    description: Optional[str] = None
    mood: Optional[str] = None
    room_id: Optional[int] = None


@dataclass
class ItemDraft:
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    effect_value: Optional[int] = None
    enemy_hp: Optional[int] = None
    enemy_attack: Optional[int] = None
    xp_value: Optional[int] = None
    is_infinite: Optional[bool] = None
    required_item_id: Optional[int] = None
    required_item_name: Optional[str] = None
    verb: Optional[str] = None


class SessionStore:
    def __init__(self):
        self._sessions_lock = threading.Lock()
        self._sessions: Dict[str, int] = {}
        self._drafts_lock = threading.Lock()
        self._room_drafts: Dict[int, RoomDraft] = {}
        self._item_drafts: Dict[int, ItemDraft] = {}
        self._locks_lock = threading.Lock()
        self._user_locks: "weakref.WeakValueDictionary[int, threading.RLock]" = weakref.WeakValueDictionary()
        self._generating_lock = threading.Lock()
        self._generating: Set[int] = set()

    # ------------------------------------------------------------------ sessions

    def bind(self, sid: str, user_id: int) -> None:
        with self._sessions_lock:
            self._sessions[sid] = user_id

    def unbind(self, sid: str) -> Optional[int]:
        with self._sessions_lock:
            return self._sessions.pop(sid, None)

    def user_for(self, sid: str) -> Optional[int]:
        with self._sessions_lock:
            return self._sessions.get(sid)

    def is_online(self, user_id: int) -> bool:
        with self._sessions_lock:
            return user_id in self._sessions.values()

    def online_user_ids(self) -> Set[int]:
        with self._sessions_lock:
            return set(self._sessions.values())

    # ------------------------------------------------------------------ drafts

    def room_draft(self, user_id: int) -> Optional[RoomDraft]:
        with self._drafts_lock:
            return self._room_drafts.get(user_id)

    def start_room_draft(self, user_id: int, q: int, r: int) -> RoomDraft:
        draft = RoomDraft(q=q, r=r)
        with self._drafts_lock:
            self._room_drafts[user_id] = draft
            self._item_drafts.pop(user_id, None)
        return draft

    def item_draft(self, user_id: int) -> Optional[ItemDraft]:
        with self._drafts_lock:
            return self._item_drafts.get(user_id)

    def start_item_draft(self, user_id: int) -> ItemDraft:
        draft = ItemDraft()
        with self._drafts_lock:
            self._item_drafts[user_id] = draft
        return draft

    def discard_item_draft(self, user_id: int) -> None:
        with self._drafts_lock:
            self._item_drafts.pop(user_id, None)

    def discard_drafts(self, user_id: int) -> None:
        with self._drafts_lock:
            self._room_drafts.pop(user_id, None)
            self._item_drafts.pop(user_id, None)

    def has_drafts(self, user_id: int) -> bool:
        with self._drafts_lock:
            return user_id in self._room_drafts or user_id in self._item_drafts

    # ------------------------------------------------------------------ locks

    def user_lock(self, user_id: int) -> threading.RLock:
        with self._locks_lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = self._user_locks[user_id] = threading.RLock()
            return lock

    # ------------------------------------------------------------------ weaving

    def mark_generating(self, user_id: int) -> None:
        with self._generating_lock:
            self._generating.add(user_id)

    def clear_generating(self, user_id: int) -> None:
        with self._generating_lock:
            self._generating.discard(user_id)

    def is_generating(self, user_id: int) -> bool:
        with self._generating_lock:
            return user_id in self._generating

    # ------------------------------------------------------------------ lifecycle

    def release(self, sid: str) -> Optional[int]:
        """Unbind a connection; drop the user's drafts once no connection remains."""
        user_id = self.unbind(sid)
        if user_id is not None and not self.is_online(user_id):
            self.discard_drafts(user_id)
        return user_id

    def clear(self) -> None:
        with self._sessions_lock:
            self._sessions.clear()
        with self._drafts_lock:
            self._room_drafts.clear()
            self._item_drafts.clear()
        with self._generating_lock:
            self._generating.clear()
