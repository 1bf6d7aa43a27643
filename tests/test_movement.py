import pytest

from castaway.models.enums import AnimationType, Mode
from castaway.services import repository as repo
from castaway.services.movement_service import AXIAL_OFFSETS, move_axial, parse_direction


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("n", "n"),
        ("  SE ", "se"),
        ("go nw", "nw"),
        ("Go  sw", "sw"),
        ("north", None),
        ("go", None),
        ("go n now", None),
        ("", None),
    ],
)
def test_parse_direction(raw, expected):
    assert parse_direction(raw) == expected


@pytest.mark.parametrize("a,b", [("n", "s"), ("ne", "sw"), ("nw", "se")])
def test_opposite_steps_return_to_origin(a, b):
    for q, r in [(0, 0), (3, -2), (-7, 5)]:
        assert move_axial(*move_axial(q, r, a), b) == (q, r)
        assert move_axial(*move_axial(q, r, b), a) == (q, r)


def test_six_directions_are_distinct_neighbours():
    neighbours = {move_axial(0, 0, d) for d in AXIAL_OFFSETS}
    assert len(neighbours) == 6
    assert (0, 0) not in neighbours


def test_move_into_existing_room_plays_tapestry(dispatcher, channel, make_user, make_room):
    user = make_user()
    room = make_room(0, -1, title="Driftwood Beach")
    anim = repo.create_animation(["~~~"], AnimationType.TAPESTRY, room_id=room.id)

    dispatcher.dispatch(channel, user.id, "n")

    assert (user.current_q, user.current_r) == (0, -1)
    assert user.mode == Mode.IDLE
    assert "Driftwood Beach" in channel.texts("room-title")
    played = channel.payloads("animation:play")
    assert [p["id"] for p in played] == [anim.id]
    state = channel.last_state()
    assert state["room"]["id"] == room.id
    assert any(v["id"] == room.id for v in state["visibleRooms"])


def test_move_into_void_starts_wizard(dispatcher, channel, store, make_user):
    user = make_user()

    dispatcher.dispatch(channel, user.id, "go se")

    assert (user.current_q, user.current_r) == (1, 0)
    assert user.mode == Mode.CREATING_ROOM_TITLE
    draft = store.room_draft(user.id)
    assert (draft.q, draft.r) == (1, 0)
    prompts = channel.payloads("game:log")
    assert prompts[-1] == {"text": "What is this place called?", "type": "prompt", "label": "QUESTION"}
    state = channel.last_state()
    assert state["room"]["id"] == "void-1,0"
    assert state["room"]["title"] == "Unknown Wilds"
    assert state["roomItems"] == []


def test_movement_rejected_outside_idle(dispatcher, channel, make_user):
    user = make_user(mode=Mode.COMBAT)

    dispatcher.dispatch(channel, user.id, "n")

    assert (user.current_q, user.current_r) == (0, 0)
    assert channel.texts("error") == ["Cannot move while in COMBAT state."]
    assert channel.payloads("state:update") == []


def test_visible_rooms_limited_to_radius(make_user, make_room):
    user = make_user()
    near = make_room(5, -5)
    far = make_room(6, 0)

    state_ids = {r.id for r in repo.visible_rooms(0, 0, user.server_code, 5)}

    assert near.id in state_ids
    assert far.id not in state_ids
