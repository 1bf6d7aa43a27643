"""Minimal structured logging helper.

Emits key=value pairs (or one JSON object per line) with a timestamp, a level
and the subsystem name. Game code logs domain events through this helper;
tracebacks still go through the stdlib ``logging`` tree configured in
``castaway.server``.

Usage:
    from castaway.logging_utils import get_logger
    log = get_logger("combat")
    log.info(event="battle_start", user_id=3, enemy="Crab")
    log.bind(user_id=3, realm="ALPHA").info(event="combat_tick", damage=2)

Environment:
    CASTAWAY_LOG_LEVEL   debug | info | warn | error (default info)
    CASTAWAY_LOG_JSON    1/true/yes/on to emit JSON lines

All non-numeric values are str()'d with spaces replaced. Reserved keys: level, ts.
"""

from __future__ import annotations

import json
import os
import sys
import time

LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40}
CURRENT_LEVEL = LEVELS.get(os.getenv("CASTAWAY_LOG_LEVEL", "info").lower(), 20)
JSON_MODE = os.getenv("CASTAWAY_LOG_JSON", "0").lower() in ("1", "true", "yes", "on")


def _format(level: str, **fields) -> str:
    if JSON_MODE:
        rec = {k: v for k, v in fields.items() if v is not None}
        rec["level"] = level
        rec["ts"] = int(time.time())
        return json.dumps(rec, separators=(",", ":"), default=str, ensure_ascii=False)
    parts = [f"level={level}", f"ts={int(time.time())}"]
    for k, v in fields.items():
        if v is None:
            continue
        if isinstance(v, (int, float)):
            parts.append(f"{k}={v}")
        else:
            s = str(v).replace(" ", "_")
            parts.append(f"{k}={s}")
    return " ".join(parts)


class _Logger:
    def __init__(self, name: str | None = None, context: dict | None = None):
        self.name = name or "castaway"
        self.context = dict(context or {})

    def bind(self, **context) -> "_Logger":
        """Return a child logger that stamps ``context`` on every line.

        Game code binds the player it is acting for, e.g.
        ``log.bind(user_id=user.id, realm=user.server_code)``. Fields passed to a
        single call win over bound ones.
        """
        merged = dict(self.context)
        merged.update(context)
        return _Logger(self.name, merged)

    def _log(self, lvl: str, **fields):
        if LEVELS[lvl] < CURRENT_LEVEL:
            return
        record = {**self.context, **fields}
        record.setdefault("logger", self.name)
        print(_format(lvl, **record), file=sys.stdout if lvl != "error" else sys.stderr)

    def debug(self, **fields):
        self._log("debug", **fields)

    def info(self, **fields):
        self._log("info", **fields)

    def warn(self, **fields):
        self._log("warn", **fields)

    def error(self, **fields):
        self._log("error", **fields)


_LOGGER_CACHE: dict[str, _Logger] = {}


def get_logger(name: str) -> _Logger:
    if name not in _LOGGER_CACHE:
        _LOGGER_CACHE[name] = _Logger(name)
    return _LOGGER_CACHE[name]


log = get_logger("castaway")
