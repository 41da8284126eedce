from __future__ import annotations

import threading
import time
from dataclasses import replace

from src.handlers import dispatch
from src.handlers.dispatch import EVENT_HANDLERS, effective_event_type, entity_key, route_event
from src.handlers.locks import KeyedLock
from src.observability import metrics_snapshot


def _post(post_id: str, tier_id: str) -> dict:
    return {
        "data": {
            "id": post_id,
            "type": "post",
            "attributes": {"title": "Chapter 3"},
            "relationships": {"tiers": {"data": [{"type": "tier", "id": tier_id}]}},
        }
    }


def test_every_patreon_event_type_has_a_handler():
    assert set(EVENT_HANDLERS) == {
        "members:create",
        "members:update",
        "members:delete",
        "members:pledge:create",
        "members:pledge:update",
        "members:pledge:delete",
        "posts:publish",
        "posts:update",
        "posts:delete",
    }
    assert EVENT_HANDLERS["members:pledge:update"] is EVENT_HANDLERS["members:update"]


def test_entity_key_separates_posts_and_members():
    assert entity_key("posts:update", _post("p1", "t-gold")) == "post:p1"
    assert entity_key("members:create", {"data": {"id": "m1", "type": "member"}}) == "member:m1"


def test_publish_of_untracked_post_stays_publish(fake_db):
    assert effective_event_type("posts:publish", _post("p1", "t-gold")) == "posts:publish"


def test_publish_of_tracked_post_is_handled_as_update(ctx, fake_db, notifier):
    first = route_event("posts:publish", _post("p1", "t-gold"), ctx)
    second = route_event("posts:publish", _post("p1", "t-silver"), ctx)

    assert (first.handled_as, first.outcome) == ("posts:publish", "published")
    assert (second.handled_as, second.outcome) == ("posts:update", "waterfall")
    assert [name for name, _ in notifier.tier_messages] == ["Gold", "Silver"]


def test_republish_at_same_tier_does_not_announce_twice(ctx, notifier):
    route_event("posts:publish", _post("p1", "t-gold"), ctx)
    result = route_event("posts:publish", _post("p1", "t-gold"), ctx)

    assert result.outcome == "unchanged"
    assert len(notifier.tier_messages) == 1


def test_unknown_event_type_is_acknowledged_and_ignored(ctx, fake_db, notifier):
    result = route_event("campaigns:update", {"data": {"id": "c1"}}, ctx)

    assert result.outcome == "ignored"
    assert result.handled_as is None
    assert fake_db.calls == []
    assert notifier.tier_messages == []
    assert metrics_snapshot()["webhook.events.ignored|event_type=campaigns:update"] == 1


def test_serialisation_can_be_disabled(ctx, monkeypatch):
    seen: list[str] = []

    class _TrackingLock(KeyedLock):
        def hold(self, key):
            seen.append(key)
            return super().hold(key)

    monkeypatch.setattr(dispatch, "_entity_locks", _TrackingLock())
    route_event("posts:publish", _post("p1", "t-gold"), ctx)
    route_event("posts:publish", _post("p2", "t-gold"), replace(ctx, serialize_per_key=False))

    assert seen == ["post:p1"]


def test_keyed_lock_serialises_same_key_only():
    locks = KeyedLock()
    order: list[str] = []
    release_first = threading.Event()

    def _first():
        with locks.hold("post:p1"):
            order.append("first-start")
            release_first.wait(timeout=2)
            order.append("first-end")

    def _second():
        with locks.hold("post:p1"):
            order.append("second")

    first = threading.Thread(target=_first)
    first.start()
    while "first-start" not in order:
        time.sleep(0.001)
    second = threading.Thread(target=_second)
    second.start()

    with locks.hold("post:p2"):
        order.append("other-key")

    release_first.set()
    first.join(timeout=2)
    second.join(timeout=2)

    assert order.index("other-key") < order.index("first-end")
    assert order.index("first-end") < order.index("second")
    assert locks.active_keys() == []
