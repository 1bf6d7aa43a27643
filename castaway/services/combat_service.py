"""Real-time auto-battle combat.

Responsibilities:
    * Start a battle against an enemy item in the player's room.
    * Drive the battle with a background loop that calls ``tick`` every
      ``COMBAT_TICK_MS`` until the battle's cancellation token is set.
    * Resolve victory (gold reward, enemy removed), defeat (respawn at the
      crash site) and retreat.
    * Emit ``combat:update`` / ``combat:end`` to the fighting connection.

Design notes:
    - Each tick re-reads the player, room and enemy; anything that vanished
      ends the battle quietly.
    - Ticks take the player's command lock, so commands and ticks for one
      player never interleave.
    - ``BattleRegistry`` and the persisted mode are updated together on every
      transition.
"""

import logging
import math
import random
from typing import Callable, Optional

from flask import current_app

from castaway import db, socketio
from castaway.logging_utils import get_logger
from castaway.models.enums import AnimationType, Mode
from castaway.models.models import Item, User
from castaway.services import repository as repo
from castaway.services.combat_state import Battle, BattleRegistry
from castaway.services.events import Channel, HandlerResult, spawn_background
from castaway.services.scratch_store import SessionStore
from castaway.services.snapshot import build_snapshot

log = get_logger("combat")

DEFAULT_XP = 10


def roll_d6() -> int:
    return random.randint(1, 6)


class CombatEngine:
    def __init__(
        self,
        store: SessionStore,
        battles: BattleRegistry,
        spawn: Callable = spawn_background,
        sleep: Optional[Callable[[float], None]] = None,
        tick_ms: Optional[int] = None,
    ):
        self.store = store
        self.battles = battles
        self.spawn = spawn
        self.sleep = sleep or socketio.sleep
        self.tick_ms = tick_ms

    def _interval(self) -> float:
        ms = self.tick_ms if self.tick_ms is not None else current_app.config.get("COMBAT_TICK_MS", 1500)
        return int(ms) / 1000.0

    def _snapshot(self, user: User):
        return build_snapshot(user, self.store.online_user_ids())

    # ------------------------------------------------------------------ commands

    def handle_fight(self, out: Channel, user: User, target: str, enemy: Optional[Item] = None) -> HandlerResult:
        if self.battles.in_combat(user.id):
            out.error('You are already in combat! Use "retreat" to escape.')
            return HandlerResult()
        if user.mode not in (Mode.IDLE, Mode.COMBAT):
            out.error(f"Cannot fight while in {user.mode.value} state.")
            return HandlerResult()
        room = repo.get_room(user.current_q, user.current_r, user.server_code)
        if room is None:
            out.error("There is nothing to fight here.")
            return HandlerResult()
        if enemy is None:
            enemy = repo.find_room_item(room.id, user.server_code, target)
        if enemy is None or enemy.room_id != room.id:
            out.error(f'You don\'t see "{target}" here.')
            return HandlerResult()
        if not enemy.is_enemy:
            out.log("That is peaceful.", "info")
            return HandlerResult()

        repo.set_mode(user, Mode.COMBAT)
        battle = self.battles.start(user.id, enemy.id, out.sid, out)
        log.bind(user_id=user.id, realm=user.server_code).info(event="battle_start", enemy_id=enemy.id, enemy=enemy.name)
        out.log(f"Combat begins with {enemy.name}!", "info")
        out.animation(repo.get_item_animation(enemy.id, AnimationType.COMBAT_DURING))
        self.spawn(self._run, battle, self._interval())
        return HandlerResult(state=self._snapshot(user))

    def handle_retreat(self, out: Channel, user: User) -> HandlerResult:
        battle = self.battles.end(user.id)
        if battle is None:
            out.error("You are not in combat.")
            if user.mode == Mode.COMBAT:
                # Stale mode from a lost battle loop
                repo.set_mode(user, Mode.IDLE)
                return HandlerResult(state=self._snapshot(user))
            return HandlerResult()
        repo.set_mode(user, Mode.IDLE)
        log.info(event="battle_retreat", user_id=user.id, enemy_id=battle.enemy_id)
        out.animation(repo.get_item_animation(battle.enemy_id, AnimationType.COMBAT_RETREAT))
        out.combat_end("retreat")
        out.log("You escaped with your life.", "info")
        return HandlerResult(state=self._snapshot(user))

    def abandon(self, user_id: int, sid: Optional[str]) -> bool:
        """Cancel the battle owned by a closing connection."""
        with self.store.user_lock(user_id):
            battle = self.battles.get(user_id)
            if battle is None or battle.sid != sid:
                return False
            self.battles.end(user_id, battle)
            user = repo.get_user(user_id)
            if user is not None and user.mode == Mode.COMBAT:
                repo.set_mode(user, Mode.IDLE)
            log.info(event="battle_abandoned", user_id=user_id, enemy_id=battle.enemy_id)
            return True

    # ------------------------------------------------------------------ loop

    def _run(self, battle: Battle, interval: float) -> None:
        while not battle.cancelled:
            self.sleep(interval)
            if battle.cancelled:
                break
            try:
                self.tick(battle.user_id, battle)
            except Exception:
                db.session.rollback()
                logging.exception("Combat tick failed for user %s", battle.user_id)
                self.battles.end(battle.user_id, battle)
                break

    def tick(self, user_id: int, battle: Optional[Battle] = None) -> Optional[str]:
        """Resolve one exchange of blows.

        Returns ``player`` / ``enemy`` / ``tie`` for an ongoing exchange, ``win``
        or ``loss`` when the battle resolved, and None when there was nothing
        to resolve.
        """
        with self.store.user_lock(user_id):
            current = self.battles.get(user_id)
            if current is None or (battle is not None and current is not battle):
                return None
            out = current.channel
            user = repo.get_user(user_id)
            if user is None:
                self.battles.end(user_id, current)
                return None
            room = repo.get_room(user.current_q, user.current_r, user.server_code)
            enemy = repo.get_item(current.enemy_id)
            blog = log.bind(user_id=user_id, realm=user.server_code, enemy_id=current.enemy_id)
            if room is None or enemy is None or enemy.room_id != room.id or not enemy.is_enemy:
                self.battles.end(user_id, current)
                if user.mode == Mode.COMBAT:
                    repo.set_mode(user, Mode.IDLE)
                blog.info(event="battle_vanished")
                return None

            player_roll = roll_d6() + (user.strength or 0)
            enemy_roll = roll_d6() + (enemy.enemy_attack or 0)
            delta = abs(player_roll - enemy_roll)
            damage = 0
            source = "tie"
            if player_roll > enemy_roll:
                damage = math.ceil(delta / 2) + 1
                repo.set_enemy_hp(enemy, enemy.enemy_hp - damage)
                source = "player"
            elif enemy_roll > player_roll:
                damage = math.ceil(delta / 2)
                repo.update_user(user, hp=max(0, user.hp - damage))
                source = "enemy"

            blog.debug(event="combat_tick", player_roll=player_roll, enemy_roll=enemy_roll, source=source, damage=damage)
            out.combat_update(
                {
                    "playerHp": user.hp,
                    "playerMaxHp": user.max_hp,
                    "enemyHp": enemy.enemy_hp,
                    "enemyMaxHp": enemy.enemy_max_hp,
                    "playerRoll": player_roll,
                    "enemyRoll": enemy_roll,
                    "damage": damage,
                    "source": source,
                }
            )

            if enemy.enemy_hp <= 0:
                self._victory(out, user, enemy, current)
                return "win"
            if user.hp <= 0:
                self.battles.end(user_id, current)
                blog.info(event="battle_lost")
                out.combat_end("loss")
                self.handle_death(out, user)
                return "loss"
            return source

    def _victory(self, out: Channel, user: User, enemy: Item, battle: Battle) -> None:
        self.battles.end(user.id, battle)
        reward = enemy.xp_value if enemy.xp_value is not None else DEFAULT_XP
        name = enemy.name
        victory_anim = repo.get_item_animation(enemy.id, AnimationType.COMBAT_VICTORY)
        repo.delete_item(enemy)
        repo.update_user(user, gold=user.gold + reward, mode=Mode.IDLE)
        log.info(event="battle_won", user_id=user.id, enemy=name, gold=reward)
        out.animation(victory_anim)
        out.log(f"You defeated the {name}! Gained {reward} gold.", "info")
        out.combat_end("win", {"gold": reward})
        out.state(self._snapshot(user))

    def handle_death(self, out: Channel, user: User) -> None:
        """Respawn a fallen player at the crash site with full health; gold is kept."""
        self.battles.end(user.id)
        genesis = repo.ensure_genesis(user.server_code)
        repo.update_user(
            user,
            hp=user.max_hp,
            current_q=repo.GENESIS_Q,
            current_r=repo.GENESIS_R,
            mode=Mode.IDLE,
        )
        log.info(event="player_died", user_id=user.id, gold=user.gold)
        out.log("You have fallen. The world fades...", "error")
        out.state(self._snapshot(user))
        out.log(f"You awaken at {genesis.title}. You have {user.gold} gold remaining.", "info")
