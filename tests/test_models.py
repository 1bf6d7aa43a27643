import pytest

from castaway import db
from castaway.models.enums import AnimationType, EffectType, Mode
from castaway.models.models import Animation, Item, User
from castaway.services import repository as repo


def test_mode_round_trips_as_text(make_user):
    user = make_user(mode=Mode.CREATING_OBJ_VALUE)
    db.session.expire_all()

    reloaded = db.session.get(User, user.id)
    assert reloaded.mode is Mode.CREATING_OBJ_VALUE
    assert reloaded.to_dict()["mode"] == "CREATING_OBJ_VALUE"


def test_new_user_defaults(make_user):
    user = make_user()
    assert (user.hp, user.max_hp, user.gold, user.strength) == (100, 100, 0, 1)
    assert (user.current_q, user.current_r) == (0, 0)
    assert "password_hash" not in user.to_dict()
    assert user.check_password("password1")
    assert not user.check_password("password2")


def test_handles_unique_per_island(make_user):
    make_user(handle="castaway")
    other_island = make_user(handle="castaway", realm="OTHER")
    assert other_island.server_code == "OTHER"
    with pytest.raises(Exception):
        make_user(handle="castaway")
    db.session.rollback()


def test_room_coordinates_unique_per_island(make_room):
    make_room(3, 3)
    make_room(3, 3, realm="OTHER")
    with pytest.raises(repo.RoomTakenError):
        make_room(3, 3)


def test_genesis_is_idempotent(genesis):
    again = repo.ensure_genesis("test")
    assert again.id == genesis.id
    assert (genesis.q, genesis.r) == (0, 0)
    assert genesis.created_by == repo.ensure_system_user("TEST").id


def test_item_needs_exactly_one_location(make_user, genesis):
    user = make_user()
    with pytest.raises(ValueError):
        repo.create_item(name="Ghost", server_code="TEST")
    with pytest.raises(ValueError):
        repo.create_item(name="Ghost", server_code="TEST", room_id=genesis.id, owner_id=user.id)


def test_item_kind_properties(make_item, genesis):
    crab = make_item("Crab", room=genesis, enemy_hp=5, enemy_max_hp=5)
    door = make_item("Door", room=genesis, required_item_name="Key")
    rock = make_item("Rock", room=genesis)

    assert crab.is_enemy and not crab.is_gate
    assert door.is_gate and not door.is_enemy
    assert not rock.is_enemy and not rock.is_gate
    assert rock.to_dict()["effect_type"] == EffectType.NONE.value


def test_animation_frames_stored_as_json(genesis):
    frames = ["  /\\  ", " /  \\ ", "/____\\"]
    anim = repo.create_animation(frames, AnimationType.TAPESTRY, room_id=genesis.id, fps=3)
    db.session.expire_all()

    reloaded = db.session.get(Animation, anim.id)
    assert reloaded.frames == frames
    assert reloaded.to_dict()["type"] == "TAPESTRY"
    assert reloaded.fps == 3


def test_deleting_a_key_keeps_gate_by_name(make_item, genesis):
    key = make_item("Key", room=genesis)
    door = make_item("Door", room=genesis, required_item_id=key.id, required_item_name="Key")
    repo.create_animation(["k"], AnimationType.INTERACTION, object_id=key.id)

    repo.delete_item(key)

    assert door.required_item_id is None
    assert door.required_item_name == "Key"
    assert door.is_gate
    assert Item.query.count() == 1
    assert Animation.query.count() == 0


def test_visible_rooms_excludes_other_islands(make_room):
    mine = make_room(1, 1)
    make_room(1, 1, realm="OTHER")
    assert [r.id for r in repo.visible_rooms(0, 0, "TEST", 5) if (r.q, r.r) == (1, 1)] == [mine.id]
