import random

import pytest

from castaway.models.enums import Mode
from castaway.services import repository as repo


@pytest.fixture()
def rolls(monkeypatch):
    """Queue d6 results; each ``randint`` call pops the next one."""
    queue = []

    def _fake_randint(a, b):
        return queue.pop(0)

    monkeypatch.setattr(random, "randint", _fake_randint)
    return queue


@pytest.fixture()
def crab(genesis, make_item):
    return make_item("Crab", room=genesis, interact_verb="fight", enemy_hp=10, enemy_max_hp=10, enemy_attack=0, xp_value=25)


def _start(dispatcher, channel, user, target="crab"):
    dispatcher.dispatch(channel, user.id, f"fight {target}")
    assert user.mode == Mode.COMBAT


def test_fight_starts_battle_loop(dispatcher, channel, battles, combat_spawner, make_user, crab):
    user = make_user(strength=0)

    _start(dispatcher, channel, user)

    assert battles.in_combat(user.id)
    assert battles.get(user.id).enemy_id == crab.id
    assert len(combat_spawner.calls) == 1
    assert "Combat begins with Crab!" in channel.texts("info")
    assert channel.last_state()["player"]["mode"] == "COMBAT"


def test_fight_by_ordinal(dispatcher, channel, battles, make_user, crab):
    user = make_user()

    dispatcher.dispatch(channel, user.id, "fight 1")

    assert battles.get(user.id).enemy_id == crab.id


def test_fight_by_ordinal_picks_the_listed_namesake(dispatcher, channel, battles, make_user, crab, make_item, genesis):
    second = make_item("Crab", room=genesis, interact_verb="fight", enemy_hp=4, enemy_max_hp=4)
    user = make_user()

    dispatcher.dispatch(channel, user.id, "fight 2")

    assert battles.get(user.id).enemy_id == second.id


def test_player_hits_enemy(dispatcher, channel, make_user, crab, rolls):
    user = make_user(strength=0)
    _start(dispatcher, channel, user)
    rolls.extend([6, 2])

    assert dispatcher.combat.tick(user.id) == "player"

    update = channel.payloads("combat:update")[-1]
    assert update["damage"] == 3
    assert update["source"] == "player"
    assert update["enemyHp"] == 7
    assert repo.get_item(crab.id).enemy_hp == 7


def test_enemy_hits_player(dispatcher, channel, make_user, crab, rolls):
    user = make_user(strength=0)
    _start(dispatcher, channel, user)
    rolls.extend([2, 5])

    assert dispatcher.combat.tick(user.id) == "enemy"

    update = channel.payloads("combat:update")[-1]
    assert update["damage"] == 2
    assert update["playerHp"] == 98
    assert user.hp == 98


def test_tie_deals_no_damage(dispatcher, channel, make_user, crab, rolls):
    user = make_user(strength=0)
    _start(dispatcher, channel, user)
    rolls.extend([3, 3])

    assert dispatcher.combat.tick(user.id) == "tie"

    update = channel.payloads("combat:update")[-1]
    assert (update["damage"], update["source"]) == (0, "tie")
    assert user.hp == 100
    assert repo.get_item(crab.id).enemy_hp == 10


def test_strength_adds_to_player_roll(dispatcher, channel, make_user, crab, rolls):
    user = make_user(strength=2)
    _start(dispatcher, channel, user)
    rolls.extend([3, 4])

    dispatcher.combat.tick(user.id)

    update = channel.payloads("combat:update")[-1]
    assert (update["playerRoll"], update["enemyRoll"]) == (5, 4)
    assert update["damage"] == 2


def test_victory_awards_gold_and_removes_enemy(dispatcher, channel, battles, make_user, crab, rolls):
    repo.set_enemy_hp(crab, 3)
    user = make_user(strength=0, gold=5)
    _start(dispatcher, channel, user)
    rolls.extend([6, 1])

    assert dispatcher.combat.tick(user.id) == "win"

    assert repo.get_item(crab.id) is None
    assert user.gold == 30
    assert user.mode == Mode.IDLE
    assert not battles.in_combat(user.id)
    assert channel.payloads("combat:end")[-1] == {"result": "win", "loot": {"gold": 25}}
    assert "You defeated the Crab! Gained 25 gold." in channel.texts("info")
    assert channel.last_state()["roomItems"] == []


def test_defeat_respawns_at_crash_site(dispatcher, channel, battles, make_user, make_room, make_item, rolls):
    room = make_room(1, 0, title="Reef")
    make_item("Shark", room=room, interact_verb="fight", enemy_hp=30, enemy_max_hp=30, enemy_attack=0)
    user = make_user(strength=0, hp=2, gold=40, current_q=1, current_r=0)
    _start(dispatcher, channel, user, "shark")
    rolls.extend([1, 6])

    assert dispatcher.combat.tick(user.id) == "loss"

    assert (user.current_q, user.current_r) == (0, 0)
    assert user.hp == user.max_hp
    assert user.gold == 40
    assert user.mode == Mode.IDLE
    assert not battles.in_combat(user.id)
    assert channel.payloads("combat:end")[-1] == {"result": "loss"}
    assert "You have fallen. The world fades..." in channel.texts("error")
    assert channel.texts("info")[-1] == "You awaken at The Crash Site. You have 40 gold remaining."


def test_retreat_ends_battle(dispatcher, channel, battles, make_user, crab):
    user = make_user()
    _start(dispatcher, channel, user)
    battle = battles.get(user.id)

    dispatcher.dispatch(channel, user.id, "retreat")

    assert battle.cancelled
    assert not battles.in_combat(user.id)
    assert user.mode == Mode.IDLE
    assert channel.payloads("combat:end")[-1] == {"result": "retreat"}
    assert dispatcher.combat.tick(user.id, battle) is None


def test_retreat_event_matches_command(dispatcher, channel, battles, make_user, crab):
    user = make_user()
    _start(dispatcher, channel, user)

    dispatcher.retreat(channel, user.id)

    assert user.mode == Mode.IDLE
    assert channel.last_state()["player"]["mode"] == "IDLE"


def test_retreat_outside_combat(dispatcher, channel, make_user):
    user = make_user()

    dispatcher.dispatch(channel, user.id, "retreat")

    assert channel.texts("error") == ["You are not in combat."]


def test_retreat_repairs_stale_combat_mode(dispatcher, channel, make_user):
    user = make_user(mode=Mode.COMBAT)

    dispatcher.dispatch(channel, user.id, "retreat")

    assert user.mode == Mode.IDLE


def test_second_fight_rejected(dispatcher, channel, battles, make_user, crab):
    user = make_user()
    _start(dispatcher, channel, user)
    battle = battles.get(user.id)

    dispatcher.dispatch(channel, user.id, "fight crab")

    assert channel.texts("error")[-1] == 'You are already in combat! Use "retreat" to escape.'
    assert battles.get(user.id) is battle


def test_peaceful_target(dispatcher, channel, battles, make_user, make_item, genesis):
    make_item("Palm", room=genesis)
    user = make_user()

    dispatcher.dispatch(channel, user.id, "fight palm")

    assert "That is peaceful." in channel.texts("info")
    assert user.mode == Mode.IDLE
    assert not battles.in_combat(user.id)


def test_nothing_to_fight_in_void(dispatcher, channel, make_user):
    user = make_user(current_q=4, current_r=4)

    dispatcher.dispatch(channel, user.id, "fight crab")

    assert channel.texts("error") == ["There is nothing to fight here."]


def test_vanished_enemy_ends_battle_quietly(dispatcher, channel, battles, make_user, crab):
    user = make_user()
    _start(dispatcher, channel, user)
    repo.delete_item(crab)

    assert dispatcher.combat.tick(user.id) is None

    assert not battles.in_combat(user.id)
    assert user.mode == Mode.IDLE
    assert channel.payloads("combat:update") == []


def test_battle_loop_runs_until_resolved(dispatcher, channel, battles, make_user, crab, rolls):
    repo.set_enemy_hp(crab, 3)
    user = make_user(strength=0)
    _start(dispatcher, channel, user)
    battle = battles.get(user.id)
    rolls.extend([3, 3, 6, 1])

    dispatcher.combat._run(battle, 0)

    assert battle.cancelled
    assert [u["source"] for u in channel.payloads("combat:update")] == ["tie", "player"]
    assert channel.payloads("combat:end")[-1]["result"] == "win"


def test_abandon_only_cancels_owning_connection(dispatcher, channel, battles, make_user, crab):
    user = make_user()
    _start(dispatcher, channel, user)

    assert dispatcher.combat.abandon(user.id, "another-sid") is False
    assert battles.in_combat(user.id)

    assert dispatcher.combat.abandon(user.id, channel.sid) is True
    assert not battles.in_combat(user.id)
    assert user.mode == Mode.IDLE
