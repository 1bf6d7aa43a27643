import gc
import threading
import weakref

from castaway.services.combat_state import BattleRegistry
from castaway.services.scratch_store import SessionStore


def test_bindings_track_multiple_connections():
    store = SessionStore()
    store.bind("a", 1)
    store.bind("b", 1)
    store.bind("c", 2)

    assert store.user_for("a") == 1
    assert store.online_user_ids() == {1, 2}
    assert store.unbind("c") == 2
    assert not store.is_online(2)
    assert store.unbind("c") is None


def test_release_keeps_drafts_while_another_connection_remains():
    store = SessionStore()
    store.bind("a", 1)
    store.bind("b", 1)
    store.start_room_draft(1, 0, 1)

    store.release("a")
    assert store.has_drafts(1)

    store.release("b")
    assert not store.has_drafts(1)
    assert store.room_draft(1) is None


def test_new_room_draft_drops_item_draft():
    store = SessionStore()
    store.start_room_draft(1, 0, 1)
    store.start_item_draft(1).name = "Shell"

    draft = store.start_room_draft(1, 2, 2)

    assert (draft.q, draft.r, draft.title) == (2, 2, None)
    assert store.item_draft(1) is None


def test_user_lock_is_shared_and_reentrant():
    store = SessionStore()
    lock = store.user_lock(7)
    assert store.user_lock(7) is lock
    assert store.user_lock(8) is not lock
    with lock:
        with store.user_lock(7):
            pass


def test_user_lock_is_dropped_once_nobody_holds_it():
    store = SessionStore()
    lock = store.user_lock(7)
    ref = weakref.ref(lock)

    del lock
    gc.collect()

    assert ref() is None
    assert store.user_lock(7) is not None


def test_generating_flags():
    store = SessionStore()
    store.mark_generating(3)
    assert store.is_generating(3)
    store.clear_generating(3)
    assert not store.is_generating(3)


def test_clear_resets_everything():
    store = SessionStore()
    store.bind("a", 1)
    store.start_room_draft(1, 0, 1)
    store.mark_generating(1)

    store.clear()

    assert store.online_user_ids() == set()
    assert not store.has_drafts(1)
    assert not store.is_generating(1)


def test_battle_registry_one_battle_per_user():
    registry = BattleRegistry()
    first = registry.start(1, 10, "sid-a", None)
    second = registry.start(1, 11, "sid-a", None)

    assert first.cancelled
    assert registry.get(1) is second
    assert registry.end(1, first) is None
    assert registry.in_combat(1)
    assert registry.end(1) is second
    assert second.cancelled
    assert not registry.in_combat(1)


def test_battle_registry_concurrent_starts_leave_one_live_battle():
    registry = BattleRegistry()
    battles = []

    def _start(enemy_id):
        battles.append(registry.start(1, enemy_id, None, None))

    threads = [threading.Thread(target=_start, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    live = [b for b in battles if not b.cancelled]
    assert live == [registry.get(1)]
