"""World repository: typed accessors over users, rooms, items and animations.

Every room/item/user query is scoped by realm (``server_code``). Writers commit
immediately; handlers never hold an open transaction across an emit.

The void is not a table: ``void_room`` synthesises the placeholder shown for an
unauthored coordinate.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from castaway import db
from castaway.logging_utils import get_logger
from castaway.models.enums import AnimationType, Mode
from castaway.models.models import Animation, Item, Room, User

log = get_logger("repository")

SYSTEM_HANDLE = "system"
GENESIS_Q = 0
GENESIS_R = 0
GENESIS_TITLE = "The Crash Site"
GENESIS_DESCRIPTION = "You stand amidst the wreckage of your arrival. The island stretches out in all directions."
VOID_TITLE = "Unknown Wilds"
VOID_DESCRIPTION = "You are the first to wander here."


class RoomTakenError(Exception):
    """Raised when a room commit loses the race for its coordinate."""

    def __init__(self, q: int, r: int, server_code: str):
        super().__init__(f"room already exists at ({q},{r}) in {server_code}")
        self.q = q
        self.r = r
        self.server_code = server_code


def normalize_realm(code: Optional[str]) -> str:
    return (code or "").strip().upper()


# --------------------------------------------------------------------------- users


def get_user(user_id: int) -> Optional[User]:
    """Load a user, refreshing any copy already held in the session identity map."""
    if user_id is None:
        return None
    return db.session.get(User, user_id, populate_existing=True)


def get_user_by_handle(handle: str, server_code: str) -> Optional[User]:
    return User.query.filter(
        func.lower(User.handle) == (handle or "").strip().lower(),
        User.server_code == normalize_realm(server_code),
    ).first()


def create_user(handle: str, password: str, server_code: str) -> User:
    user = User(handle=handle.strip(), server_code=normalize_realm(server_code), mode=Mode.IDLE)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user: User, **fields) -> User:
    for key, value in fields.items():
        setattr(user, key, value)
    db.session.commit()
    return user


def set_mode(user: User, mode: Mode) -> User:
    if user.mode != mode:
        log.debug(event="mode_change", user_id=user.id, old=user.mode.value if user.mode else None, new=mode.value)
    return update_user(user, mode=mode)


def users_at(q: int, r: int, server_code: str, user_ids: Iterable[int], exclude_id: Optional[int] = None) -> List[User]:
    ids = [uid for uid in user_ids if uid != exclude_id]
    if not ids:
        return []
    return (
        User.query.filter(
            User.id.in_(ids),
            User.server_code == server_code,
            User.current_q == q,
            User.current_r == r,
        )
        .order_by(User.handle.asc())
        .all()
    )


def ensure_system_user(server_code: str) -> User:
    """Return the realm's system account (author of the genesis room)."""
    realm = normalize_realm(server_code)
    user = User.query.filter_by(handle=SYSTEM_HANDLE, server_code=realm).first()
    if user:
        return user
    # "!" is never produced by generate_password_hash, so nobody can log in as system
    user = User(handle=SYSTEM_HANDLE, password_hash="!", server_code=realm, mode=Mode.IDLE)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        user = User.query.filter_by(handle=SYSTEM_HANDLE, server_code=realm).first()
    return user


# --------------------------------------------------------------------------- rooms


def get_room(q: int, r: int, server_code: str) -> Optional[Room]:
    return Room.query.filter_by(q=q, r=r, server_code=server_code).first()


def get_room_by_id(room_id: int) -> Optional[Room]:
    if room_id is None:
        return None
    return db.session.get(Room, room_id)


def void_room(q: int, r: int) -> dict:
    return {
        "id": f"void-{q},{r}",
        "q": q,
        "r": r,
        "title": VOID_TITLE,
        "description": VOID_DESCRIPTION,
        "shroud_level": 0,
        "created_by": None,
        "symbol": None,
    }


def visible_rooms(q: int, r: int, server_code: str, radius: int) -> List[Room]:
    """Rooms inside the axial bounding box ``q +/- radius, r +/- radius``."""
    return (
        Room.query.filter(
            Room.server_code == server_code,
            Room.q.between(q - radius, q + radius),
            Room.r.between(r - radius, r + radius),
        )
        .order_by(Room.id.asc())
        .all()
    )


def create_room(q: int, r: int, server_code: str, title: str, description: str, shroud_level: int, created_by: Optional[int]) -> Room:
    room = Room(
        q=q,
        r=r,
        server_code=server_code,
        title=title,
        description=description,
        shroud_level=shroud_level,
        created_by=created_by,
    )
    db.session.add(room)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise RoomTakenError(q, r, server_code) from exc
    log.info(event="room_created", room_id=room.id, q=q, r=r, realm=server_code, author=created_by)
    return room


def set_room_symbol(room: Room, symbol: Optional[str]) -> Room:
    room.symbol = symbol
    db.session.commit()
    return room


def ensure_genesis(server_code: str) -> Room:
    """Make sure the realm has its crash-site room at the origin."""
    realm = normalize_realm(server_code)
    room = get_room(GENESIS_Q, GENESIS_R, realm)
    if room:
        return room
    system = ensure_system_user(realm)
    try:
        return create_room(GENESIS_Q, GENESIS_R, realm, GENESIS_TITLE, GENESIS_DESCRIPTION, 0, system.id)
    except RoomTakenError:
        return get_room(GENESIS_Q, GENESIS_R, realm)


# --------------------------------------------------------------------------- items


def get_item(item_id: int) -> Optional[Item]:
    if item_id is None:
        return None
    return db.session.get(Item, item_id, populate_existing=True)


def room_items(room_id: int, server_code: str, include_hidden: bool = True) -> List[Item]:
    """Items lying in a room, in the stable order ordinals refer to."""
    query = Item.query.filter_by(room_id=room_id, server_code=server_code)
    if not include_hidden:
        query = query.filter(Item.is_hidden.is_(False))
    return query.order_by(Item.id.asc()).all()


def inventory(user_id: int, server_code: str) -> List[Item]:
    return Item.query.filter_by(owner_id=user_id, server_code=server_code).order_by(Item.id.asc()).all()


def _match_name(items: Iterable[Item], name: str) -> Optional[Item]:
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    for item in items:
        if item.name.lower() == wanted:
            return item
    return None


def find_room_item(room_id: int, server_code: str, name: str) -> Optional[Item]:
    """Match a room item by name; visible items win over a hidden namesake."""
    items = room_items(room_id, server_code)
    return _match_name([i for i in items if not i.is_hidden], name) or _match_name(items, name)


def find_inventory_item(user_id: int, server_code: str, name: str) -> Optional[Item]:
    return _match_name(inventory(user_id, server_code), name)


def create_item(**fields) -> Item:
    """Insert an item; exactly one of ``room_id`` / ``owner_id`` must be given."""
    room_id = fields.get("room_id")
    owner_id = fields.get("owner_id")
    if (room_id is None) == (owner_id is None):
        raise ValueError("item must be placed in exactly one of a room or an inventory")
    item = Item(**fields)
    db.session.add(item)
    db.session.commit()
    log.info(event="item_created", item_id=item.id, name=item.name, room_id=room_id, owner_id=owner_id)
    return item


def move_item_to_inventory(item: Item, user_id: int) -> Item:
    item.room_id = None
    item.owner_id = user_id
    db.session.commit()
    return item


def clone_item_to_inventory(item: Item, user_id: int) -> Item:
    """Copy an infinite supply into a player's inventory as an independent row."""
    clone = Item(
        room_id=None,
        owner_id=user_id,
        server_code=item.server_code,
        name=item.name,
        description=item.description,
        success_message=item.success_message,
        interact_verb=item.interact_verb,
        effect_type=item.effect_type,
        effect_value=item.effect_value,
        is_hidden=False,
        required_item_id=item.required_item_id,
        required_item_name=item.required_item_name,
        enemy_hp=item.enemy_hp,
        enemy_max_hp=item.enemy_max_hp,
        enemy_attack=item.enemy_attack,
        xp_value=item.xp_value,
        is_infinite=False,
    )
    db.session.add(clone)
    db.session.commit()
    return clone


def set_enemy_hp(item: Item, hp: int) -> Item:
    item.enemy_hp = max(0, hp)
    db.session.commit()
    return item


def delete_item(item: Item) -> None:
    """Delete an item with its animations; gates pointing at it fall back to the name."""
    Animation.query.filter_by(object_id=item.id).delete(synchronize_session="fetch")
    Item.query.filter_by(required_item_id=item.id).update({"required_item_id": None}, synchronize_session="fetch")
    db.session.delete(item)
    db.session.commit()


# --------------------------------------------------------------------------- animations


def create_animation(frames: List[str], type: AnimationType, room_id: Optional[int] = None, object_id: Optional[int] = None, fps: int = 2) -> Animation:
    anim = Animation(room_id=room_id, object_id=object_id, type=type, frames=list(frames), fps=fps)
    db.session.add(anim)
    db.session.commit()
    return anim


def get_room_animation(room_id: int, type: AnimationType = AnimationType.TAPESTRY) -> Optional[Animation]:
    return (
        Animation.query.filter_by(room_id=room_id, type=type, object_id=None)
        .order_by(Animation.id.desc())
        .first()
    )


def get_item_animation(item_id: int, type: AnimationType = AnimationType.INTERACTION) -> Optional[Animation]:
    return Animation.query.filter_by(object_id=item_id, type=type).order_by(Animation.id.desc()).first()


def delete_room_animations(room_id: int) -> int:
    """Remove every animation of a room, including those of its objects."""
    item_ids = [row.id for row in Item.query.with_entities(Item.id).filter_by(room_id=room_id).all()]
    count = Animation.query.filter_by(room_id=room_id).delete(synchronize_session="fetch")
    if item_ids:
        count += Animation.query.filter(Animation.object_id.in_(item_ids)).delete(synchronize_session="fetch")
    db.session.commit()
    return count
