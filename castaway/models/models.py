"""
project: Castaway MUD
module: models.py
License: MIT

Database models for the shared island world.

Notes:
- Every row carries the realm (``server_code``) it belongs to; two realms never
  see each other's users, rooms or items.
- Passwords are stored as hashed values (Werkzeug generate_password_hash).
- Animation frames live in a JSON column; SQLAlchemy owns the encoding.
"""

from datetime import datetime

from werkzeug.security import check_password_hash, generate_password_hash

from castaway import db
from castaway.models.enums import AnimationType, EffectType, Mode


def _utcnow():
    return datetime.utcnow()


class User(db.Model):
    """Player account and the persisted half of the per-player state machine.

    Attributes:
        handle: Display and login name, unique within a realm.
        server_code: Realm ("island code") the account lives in.
        current_q / current_r: Axial hex coordinate of the player.
        mode: Current ``Mode``; survives reconnects.
    """

    __tablename__ = "users"
    __table_args__ = (db.UniqueConstraint("handle", "server_code", name="uq_users_handle_realm"),)

    id = db.Column(db.Integer, primary_key=True)
    handle = db.Column(db.String(40), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    server_code = db.Column(db.String(32), nullable=False, index=True)
    strength = db.Column(db.Integer, nullable=False, default=1)
    hp = db.Column(db.Integer, nullable=False, default=100)
    max_hp = db.Column(db.Integer, nullable=False, default=100)
    gold = db.Column(db.Integer, nullable=False, default=0)
    current_q = db.Column(db.Integer, nullable=False, default=0)
    current_r = db.Column(db.Integer, nullable=False, default=0)
    mode = db.Column(db.Enum(Mode, native_enum=False, length=32), nullable=False, default=Mode.IDLE)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def set_password(self, raw_password: str):
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, candidate: str) -> bool:
        try:
            return check_password_hash(self.password_hash or "", candidate)
        except ValueError:
            # Unusable hashes (system users) never match
            return False

    def to_dict(self):
        return {
            "id": self.id,
            "handle": self.handle,
            "server_code": self.server_code,
            "strength": self.strength,
            "hp": self.hp,
            "max_hp": self.max_hp,
            "gold": self.gold,
            "current_q": self.current_q,
            "current_r": self.current_r,
            "mode": self.mode.value if self.mode else Mode.IDLE.value,
        }


class Room(db.Model):
    """An authored hex on the island.

    A coordinate without a row is the *void*; it is never persisted and is
    rendered from ``repository.void_room``.
    """

    __tablename__ = "rooms"
    __table_args__ = (db.UniqueConstraint("q", "r", "server_code", name="uq_rooms_coord_realm"),)

    id = db.Column(db.Integer, primary_key=True)
    q = db.Column(db.Integer, nullable=False)
    r = db.Column(db.Integer, nullable=False)
    server_code = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False)
    # 0 = clear, 5 = very mysterious; drives verb obfuscation in `help`
    shroud_level = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    symbol = db.Column(db.String(16), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "q": self.q,
            "r": self.r,
            "server_code": self.server_code,
            "title": self.title,
            "description": self.description,
            "shroud_level": self.shroud_level,
            "created_by": self.created_by,
            "symbol": self.symbol,
        }


class Item(db.Model):
    """An interactive object: either lying in a room or carried by a player.

    Exactly one of ``room_id`` / ``owner_id`` is set. Enemies are items with
    positive ``enemy_hp``. Gates carry ``required_item_id`` when the key was
    known at authoring time and always carry ``required_item_name``.
    """

    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint(
            "(room_id IS NULL AND owner_id IS NOT NULL) OR (room_id IS NOT NULL AND owner_id IS NULL)",
            name="ck_items_single_location",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=True, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    server_code = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    success_message = db.Column(db.Text, nullable=True)
    interact_verb = db.Column(db.String(32), nullable=False, default="examine")
    effect_type = db.Column(db.Enum(EffectType, native_enum=False, length=16), nullable=False, default=EffectType.NONE)
    effect_value = db.Column(db.Integer, nullable=False, default=0)
    is_hidden = db.Column(db.Boolean, nullable=False, default=False)
    required_item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True)
    required_item_name = db.Column(db.String(80), nullable=True)
    enemy_hp = db.Column(db.Integer, nullable=False, default=0)
    enemy_max_hp = db.Column(db.Integer, nullable=False, default=0)
    enemy_attack = db.Column(db.Integer, nullable=False, default=0)
    xp_value = db.Column(db.Integer, nullable=False, default=10)
    is_infinite = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    @property
    def is_enemy(self) -> bool:
        return (self.enemy_hp or 0) > 0

    @property
    def is_gate(self) -> bool:
        return bool(self.required_item_id or self.required_item_name)

    def to_dict(self):
        return {
            "id": self.id,
            "room_id": self.room_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "success_message": self.success_message,
            "interact_verb": self.interact_verb,
            "effect_type": self.effect_type.value if self.effect_type else EffectType.NONE.value,
            "effect_value": self.effect_value,
            "is_hidden": bool(self.is_hidden),
            "required_item_id": self.required_item_id,
            "required_item_name": self.required_item_name,
            "enemy_hp": self.enemy_hp,
            "enemy_max_hp": self.enemy_max_hp,
            "enemy_attack": self.enemy_attack,
            "xp_value": self.xp_value,
            "is_infinite": bool(self.is_infinite),
        }


class Animation(db.Model):
    """Cosmetic frame sequence attached to a room and/or an object."""

    __tablename__ = "animations"

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=True, index=True)
    object_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)
    type = db.Column(db.Enum(AnimationType, native_enum=False, length=32), nullable=False)
    frames = db.Column(db.JSON, nullable=False, default=list)
    fps = db.Column(db.Integer, nullable=False, default=2)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "room_id": self.room_id,
            "object_id": self.object_id,
            "type": self.type.value if self.type else None,
            "frames": list(self.frames or []),
            "fps": self.fps,
        }
