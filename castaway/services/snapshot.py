"""Full ``state:update`` snapshot builder."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from flask import current_app

from castaway.models.models import User
from castaway.services import repository as repo


def build_snapshot(user: User, online_user_ids: Optional[Iterable[int]] = None) -> Dict[str, Any]:
    """Return the canonical snapshot for ``user``'s current position.

    The room is the void placeholder when the coordinate is unauthored;
    ``roomItems`` then is empty. Hidden items are not listed.
    """
    radius = int(current_app.config.get("VISIBLE_RADIUS", 5))
    q, r, realm = user.current_q, user.current_r, user.server_code
    room = repo.get_room(q, r, realm)
    if room:
        room_payload = room.to_dict()
        items = [i.to_dict() for i in repo.room_items(room.id, realm, include_hidden=False)]
    else:
        room_payload = repo.void_room(q, r)
        items = []
    others = repo.users_at(q, r, realm, online_user_ids or (), exclude_id=user.id)
    return {
        "player": user.to_dict(),
        "room": room_payload,
        "visibleRooms": [v.to_dict() for v in repo.visible_rooms(q, r, realm, radius)],
        "roomItems": items,
        "playersInRoom": [u.handle for u in others],
        "inventory": [i.to_dict() for i in repo.inventory(user.id, realm)],
    }
