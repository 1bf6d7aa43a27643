import os
import sys
import tempfile

import pytest

# Ensure repository root importable early
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# The app reads its configuration at import time: point it at a throwaway
# database and blank out anything a developer .env could inject.
_DB_DIR = tempfile.mkdtemp(prefix="castaway-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret"
for _key in ("OPENAI_API_KEY", "SERVER_ACCESS_CODE", "VALID_SERVER_CODES"):
    os.environ[_key] = ""

from castaway import create_app, db  # noqa: E402
from castaway.models.enums import Mode  # noqa: E402
from castaway.services import repository as repo  # noqa: E402
from castaway.services.art_service import ArtServiceError  # noqa: E402
from castaway.services.combat_state import BattleRegistry  # noqa: E402
from castaway.services.dispatcher import Dispatcher  # noqa: E402
from castaway.services.events import Channel  # noqa: E402
from castaway.services.scratch_store import SessionStore  # noqa: E402

REALM = "TEST"


class RecordingChannel(Channel):
    """Channel that keeps every emitted event instead of sending it."""

    def __init__(self, sid="sid-test"):
        super().__init__(sid)
        self.events = []

    def emit(self, event, payload):
        self.events.append((event, payload))

    def payloads(self, event):
        return [p for e, p in self.events if e == event]

    def texts(self, type=None):
        return [p["text"] for p in self.payloads("game:log") if type is None or p["type"] == type]

    def last_state(self):
        states = self.payloads("state:update")
        return states[-1] if states else None

    def clear(self):
        self.events.clear()


class FakeArt:
    """Stand-in for the art client; records calls, optionally fails."""

    enabled = True

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def _maybe_fail(self, kind):
        self.calls.append(kind)
        if self.fail:
            raise ArtServiceError(f"{kind} unavailable")

    def room_symbol(self, room, mood):
        self._maybe_fail("symbol")
        return "🌴"

    def room_tapestry(self, room, mood):
        self._maybe_fail("tapestry")
        return ["░░▒▒▓▓", "▓▓▒▒░░"]

    def object_interaction(self, item):
        self._maybe_fail("interaction")
        return ["(o)", "(*)", "(!)"]


class Spawner:
    """Records background tasks; runs them inline when ``run`` is True."""

    def __init__(self, run=True):
        self.run = run
        self.calls = []

    def __call__(self, fn, *args, **kwargs):
        self.calls.append((fn, args))
        if self.run:
            fn(*args, **kwargs)


@pytest.fixture(scope="session")
def test_app():
    app = create_app()
    app.config.update(
        {
            "TESTING": True,
            "OPENAI_API_KEY": None,
            "SERVER_ACCESS_CODE": None,
            "VALID_SERVER_CODES": None,
            "COMBAT_TICK_MS": 10,
        }
    )
    return app


@pytest.fixture(autouse=True)
def _push_app_context(test_app):
    ctx = test_app.app_context()
    ctx.push()
    try:
        yield
    finally:
        ctx.pop()


@pytest.fixture(autouse=True)
def _fresh_db(_push_app_context):
    """Every test starts from an empty schema and empty transient state."""
    from castaway.websockets import game

    db.session.remove()
    db.drop_all()
    db.create_all()
    game.store.clear()
    game.battles.clear()
    yield
    game.battles.clear()
    db.session.rollback()


@pytest.fixture()
def client(test_app):
    return test_app.test_client()


@pytest.fixture()
def store():
    return SessionStore()


@pytest.fixture()
def battles():
    registry = BattleRegistry()
    yield registry
    registry.clear()


@pytest.fixture()
def art():
    return FakeArt()


@pytest.fixture()
def spawner():
    return Spawner(run=True)


@pytest.fixture()
def combat_spawner():
    # Never run the real tick loop in tests; they call tick() directly
    return Spawner(run=False)


@pytest.fixture()
def dispatcher(store, battles, art, spawner, combat_spawner):
    d = Dispatcher(store, battles, art, spawn=spawner, sleep=lambda s: None, tick_ms=10)
    d.combat.spawn = combat_spawner
    return d


@pytest.fixture()
def channel():
    return RecordingChannel()


@pytest.fixture()
def genesis():
    return repo.ensure_genesis(REALM)


@pytest.fixture()
def make_user(genesis):
    counter = {"n": 0}

    def _make(handle=None, realm=REALM, **fields):
        counter["n"] += 1
        user = repo.create_user(handle or f"player{counter['n']}", "password1", realm)
        fields.setdefault("mode", Mode.IDLE)
        return repo.update_user(user, **fields)

    return _make


@pytest.fixture()
def make_room(make_user):
    def _make(q, r, title=None, description="A quiet stretch of shore.", shroud_level=0, realm=REALM):
        return repo.create_room(q, r, realm, title or f"Room {q},{r}", description, shroud_level, None)

    return _make


@pytest.fixture()
def make_item():
    def _make(name, room=None, owner=None, **fields):
        fields.setdefault("server_code", REALM)
        fields.setdefault("description", f"A {name.lower()}.")
        return repo.create_item(
            name=name,
            room_id=room.id if room is not None else None,
            owner_id=owner.id if owner is not None else None,
            **fields,
        )

    return _make
