"""
Tests for RealtimeService.

Covers:
- Lifecycle (initialize idempotency, fail-fast before initialize)
- replace / append / merge / remove / read_once / read_children_once
- Error wrapping of SDK failures
- subscribe() full-value stream and child event streams
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from conftest import TEST_SETTINGS, make_ready, wait_until
from tdev_firebase.adapter import AdapterState
from tdev_firebase.errors import (
    RealtimeError,
    RealtimeNotInitializedError,
    RealtimeStructureError,
)
from tdev_firebase.realtime import Node, RealtimeService


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:
    """initialize() and the not-initialized guard."""

    def test_starts_uninitialized(self):
        service = RealtimeService(TEST_SETTINGS)
        assert service.state == AdapterState.UNINITIALIZED
        assert service.is_ready is False

    def test_initialize_builds_root_reference(self, fake_database):
        service = RealtimeService(TEST_SETTINGS)
        app = MagicMock(name="App")
        with patch("tdev_firebase.adapter.get_firebase_app", return_value=app) as get_app, \
                patch("tdev_firebase.realtime.service.db") as mock_db:
            mock_db.reference.return_value = fake_database.reference()
            asyncio.run(service.initialize())

        get_app.assert_called_once_with(TEST_SETTINGS)
        mock_db.reference.assert_called_once_with(
            "/", app=app, url="https://demo-test-default-rtdb.firebaseio.com"
        )
        assert service.state == AdapterState.READY
        assert service.app is app

    def test_initialize_is_idempotent(self, fake_database):
        service = RealtimeService(TEST_SETTINGS)
        with patch("tdev_firebase.adapter.get_firebase_app") as get_app, \
                patch("tdev_firebase.realtime.service.db") as mock_db:
            mock_db.reference.return_value = fake_database.reference()

            async def init_many():
                await service.initialize()
                await asyncio.gather(*(service.initialize() for _ in range(5)))

            asyncio.run(init_many())

        assert get_app.call_count == 1
        assert mock_db.reference.call_count == 1

    def test_concurrent_first_initialize_connects_once(self, fake_database):
        service = RealtimeService(TEST_SETTINGS)
        with patch("tdev_firebase.adapter.get_firebase_app") as get_app, \
                patch("tdev_firebase.realtime.service.db") as mock_db:
            mock_db.reference.return_value = fake_database.reference()

            async def init_concurrently():
                await asyncio.gather(*(service.initialize() for _ in range(8)))

            asyncio.run(init_concurrently())

        assert get_app.call_count == 1
        assert service.is_ready

    def test_initialize_failure_wraps_cause(self):
        service = RealtimeService(TEST_SETTINGS)
        cause = ValueError("The default Firebase app already exists")
        with patch("tdev_firebase.adapter.get_firebase_app", side_effect=cause):
            with pytest.raises(RealtimeError) as exc_info:
                asyncio.run(service.initialize())

        assert exc_info.value.cause is cause
        assert "Failed to initialize RealtimeService" in str(exc_info.value)
        assert service.state == AdapterState.UNINITIALIZED

    def test_operations_fail_before_initialize(self):
        service = RealtimeService(TEST_SETTINGS)
        with patch("tdev_firebase.realtime.service.db") as mock_db:
            calls = [
                service.replace("a", 1),
                service.append("a", 1),
                service.merge("a", {"x": 1}),
                service.remove("a"),
                service.read_once("a"),
                service.read_children_once("a"),
                service.subscribe_child_events("a", on_added=print),
            ]
            for call in calls:
                with pytest.raises(RealtimeNotInitializedError):
                    asyncio.run(call)

            for stream in (service.subscribe, service.child_added, service.child_changed, service.child_removed):
                with pytest.raises(RealtimeNotInitializedError):
                    stream("a")

        mock_db.reference.assert_not_called()

    def test_not_initialized_is_a_realtime_error(self):
        service = RealtimeService(TEST_SETTINGS)
        with pytest.raises(RealtimeError, match="not initialized"):
            asyncio.run(service.read_once("a"))


# =============================================================================
# WRITE / READ
# =============================================================================


class TestReadWrite:
    """CRUD round trips against the fake database."""

    @pytest.mark.parametrize(
        "value",
        [42, "text", True, 3.5, [1, 2, 3], {"name": "An", "tags": {"a": True}}],
    )
    def test_replace_then_read_round_trip(self, realtime_service, value):
        async def scenario():
            await realtime_service.replace("items/i1", value)
            return await realtime_service.read_once("items/i1")

        node = asyncio.run(scenario())
        assert node == Node(key="i1", value=value, exists=True)

    def test_replace_destroys_unlisted_children(self, realtime_service):
        async def scenario():
            await realtime_service.replace("users/u1", {"name": "An", "age": 30})
            await realtime_service.replace("users/u1", {"name": "Binh"})
            return await realtime_service.read_once("users/u1")

        assert asyncio.run(scenario()).value == {"name": "Binh"}

    def test_merge_keeps_unspecified_children(self, realtime_service):
        content = {"name": "An", "age": 30, "address": {"city": "Hue"}}

        async def scenario():
            await realtime_service.replace("users/u1", content)
            await realtime_service.merge("users/u1", {"age": 31, "status": "active"})
            return await realtime_service.read_once("users/u1")

        node = asyncio.run(scenario())
        assert node.value == {
            "name": "An",
            "age": 31,
            "address": {"city": "Hue"},
            "status": "active",
        }

    def test_merge_leaves_siblings_untouched(self, realtime_service):
        async def scenario():
            await realtime_service.replace("users", {"u1": {"n": 1}, "u2": {"n": 2}})
            await realtime_service.merge("users/u1", {"n": 10})
            return await realtime_service.read_once("users")

        assert asyncio.run(scenario()).value == {"u1": {"n": 10}, "u2": {"n": 2}}

    def test_merge_requires_mapping(self, realtime_service):
        with pytest.raises(RealtimeStructureError):
            asyncio.run(realtime_service.merge("users/u1", ["not", "a", "map"]))

    def test_remove_is_observable(self, realtime_service):
        async def scenario():
            await realtime_service.replace("users/u1", {"name": "An", "posts": {"p1": 1}})
            await realtime_service.remove("users/u1")
            return await realtime_service.read_once("users/u1")

        node = asyncio.run(scenario())
        assert node.exists is False
        assert node.value is None
        assert node.key is None

    def test_read_missing_node(self, realtime_service):
        node = asyncio.run(realtime_service.read_once("nothing/here"))
        assert node == Node.missing()

    def test_append_returns_generated_key(self, realtime_service, fake_database):
        async def scenario():
            key = await realtime_service.append("messages", {"text": "hi"})
            return key, await realtime_service.read_once(f"messages/{key}")

        key, node = asyncio.run(scenario())
        assert key
        assert node.key == key
        assert node.value == {"text": "hi"}

    def test_append_keys_are_unique(self, realtime_service):
        async def scenario():
            return [await realtime_service.append("events", i) for i in range(120)]

        keys = asyncio.run(scenario())
        assert len(set(keys)) == 120

        children = asyncio.run(realtime_service.read_children_once("events"))
        assert len(children) == 120

    def test_append_without_key_fails(self):
        root = MagicMock()
        root.child.return_value.push.return_value.key = None
        service = make_ready(RealtimeService, root)

        with pytest.raises(RealtimeError, match="No key was generated"):
            asyncio.run(service.append("messages", {"text": "hi"}))

    def test_read_children_once(self, realtime_service):
        async def scenario():
            await realtime_service.replace("rooms", {"r1": {"n": 1}, "r2": "two"})
            return await realtime_service.read_children_once("rooms")

        children = asyncio.run(scenario())
        assert children == [
            Node(key="r1", value={"n": 1}, exists=True),
            Node(key="r2", value="two", exists=True),
        ]

    def test_read_children_of_missing_path(self, realtime_service):
        assert asyncio.run(realtime_service.read_children_once("rooms")) == []

    @pytest.mark.parametrize("value", [5, "scalar", [1, 2]])
    def test_read_children_of_non_mapping_fails(self, realtime_service, value):
        async def scenario():
            await realtime_service.replace("rooms", value)
            return await realtime_service.read_children_once("rooms")

        with pytest.raises(RealtimeStructureError, match="not a map of children"):
            asyncio.run(scenario())

    def test_node_to_dict(self):
        assert Node(key="u1", value={"name": "An"}, exists=True).to_dict() == {
            "key": "u1",
            "name": "An",
        }
        assert Node(key="c1", value=3, exists=True).to_dict() == {"key": "c1", "value": 3}


# =============================================================================
# ERROR HANDLING
# =============================================================================


class TestErrorWrapping:
    """SDK failures surface as RealtimeError with the original cause."""

    def test_backend_failure_is_wrapped(self):
        root = MagicMock()
        cause = PermissionError("Permission denied")
        root.child.return_value.set.side_effect = cause
        service = make_ready(RealtimeService, root)

        with pytest.raises(RealtimeError) as exc_info:
            asyncio.run(service.replace("secret", 1))

        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert str(exc_info.value) == "Cannot set data at: secret: Permission denied"

    def test_invalid_path_is_wrapped(self, realtime_service):
        with pytest.raises(RealtimeError) as exc_info:
            asyncio.run(realtime_service.read_once("/leading/slash"))
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.parametrize(
        "method,args,sdk_call",
        [
            ("remove", ("a",), "delete"),
            ("merge", ("a", {"x": 1}), "update"),
            ("read_once", ("a",), "get"),
            ("read_children_once", ("a",), "get"),
        ],
    )
    def test_each_operation_wraps_errors(self, method, args, sdk_call):
        root = MagicMock()
        getattr(root.child.return_value, sdk_call).side_effect = ConnectionError("offline")
        service = make_ready(RealtimeService, root)

        with pytest.raises(RealtimeError, match="offline"):
            asyncio.run(getattr(service, method)(*args))


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================


class TestSubscribe:
    """Full-value stream."""

    def test_subscriber_sees_each_replace_in_order(self, realtime_service):
        async def scenario():
            subscription = realtime_service.subscribe("counters/c1")
            initial = await subscription.__anext__()
            for value in (1, 2, 3):
                await realtime_service.replace("counters/c1", value)
            seen = [await subscription.__anext__() for _ in range(3)]
            subscription.cancel()
            return initial, seen

        initial, seen = asyncio.run(scenario())
        assert initial.exists is False
        assert [node.value for node in seen] == [1, 2, 3]
        assert all(node.key == "c1" for node in seen)

    def test_first_event_reflects_current_state(self, realtime_service):
        async def scenario():
            await realtime_service.replace("rooms/r1", {"name": "lobby"})
            async with realtime_service.subscribe("rooms/r1") as subscription:
                return await subscription.__anext__()

        node = asyncio.run(scenario())
        assert node == Node(key="r1", value={"name": "lobby"}, exists=True)

    def test_nested_writes_produce_full_value(self, realtime_service):
        async def scenario():
            await realtime_service.replace("rooms/r1", {"name": "lobby", "count": 1})
            subscription = realtime_service.subscribe("rooms/r1")
            await subscription.__anext__()
            await realtime_service.merge("rooms/r1", {"count": 2})
            await realtime_service.replace("rooms/r1/topic", "news")
            await realtime_service.remove("rooms/r1")
            events = [await subscription.__anext__() for _ in range(3)]
            subscription.cancel()
            return events

        events = asyncio.run(scenario())
        assert events[0].value == {"name": "lobby", "count": 2}
        assert events[1].value == {"name": "lobby", "count": 2, "topic": "news"}
        assert events[2].exists is False

    def test_list_value_matches_read_once(self, realtime_service):
        async def scenario():
            await realtime_service.replace("scores", [1, 2, 3])
            subscription = realtime_service.subscribe("scores")
            await subscription.__anext__()
            await realtime_service.replace("scores/1", 5)
            streamed = await subscription.__anext__()
            subscription.cancel()
            return streamed, await realtime_service.read_once("scores")

        streamed, read = asyncio.run(scenario())
        assert streamed.value == [1, 5, 3]
        assert streamed == read

    def test_subscription_is_lazy(self, realtime_service, fake_database):
        realtime_service.subscribe("counters/c1")
        assert fake_database.listeners == []

    def test_cancel_releases_listener_and_ends_stream(self, realtime_service, fake_database):
        async def scenario():
            subscription = realtime_service.subscribe("counters/c1")
            await subscription.__anext__()
            subscription.cancel()
            await realtime_service.replace("counters/c1", 9)
            return [node async for node in subscription]

        assert asyncio.run(scenario()) == []
        assert fake_database.active_listeners() == []
        assert fake_database.listeners[0].close_calls == 1

    def test_listen_failure_is_wrapped(self):
        root = MagicMock()
        root.child.return_value.listen.side_effect = RuntimeError("stream refused")
        service = make_ready(RealtimeService, root)

        async def scenario():
            subscription = service.subscribe("counters/c1")
            await subscription.__anext__()

        with pytest.raises(RealtimeError, match="stream refused"):
            asyncio.run(scenario())


class TestChildEvents:
    """Per-kind child streams and subscribe_child_events()."""

    def test_child_streams(self, realtime_service):
        async def scenario():
            await realtime_service.replace("rooms/r0", {"n": 0})
            added = realtime_service.child_added("rooms")
            changed = realtime_service.child_changed("rooms")
            removed = realtime_service.child_removed("rooms")
            for stream in (added, changed, removed):
                await stream.start()

            await realtime_service.replace("rooms/r1", {"n": 1})
            await realtime_service.merge("rooms/r1", {"n": 2})
            await realtime_service.remove("rooms/r0")

            result = (
                [await added.__anext__(), await added.__anext__()],
                await changed.__anext__(),
                await removed.__anext__(),
            )
            for stream in (added, changed, removed):
                stream.cancel()
            return result

        added, changed, removed = asyncio.run(scenario())
        assert [n.key for n in added] == ["r0", "r1"]
        assert changed == Node(key="r1", value={"n": 2}, exists=True)
        assert removed == Node(key="r0", value={"n": 0}, exists=False)

    def test_subscribe_child_events_callbacks(self, realtime_service):
        added, changed, removed = [], [], []

        async def scenario():
            handles = await realtime_service.subscribe_child_events(
                "rooms",
                on_added=added.append,
                on_changed=changed.append,
                on_removed=removed.append,
            )
            await realtime_service.replace("rooms/r1", {"n": 1})
            await realtime_service.merge("rooms/r1", {"n": 2})
            await realtime_service.remove("rooms/r1")
            await wait_until(lambda: added and changed and removed)
            handles.cancel()
            return handles

        handles = asyncio.run(scenario())
        assert [n.key for n in added] == ["r1"]
        assert [n.value for n in changed] == [{"n": 2}]
        assert [n.key for n in removed] == ["r1"]
        assert len(handles.handles()) == 3

    def test_only_requested_listeners_are_registered(self, realtime_service, fake_database):
        async def scenario():
            handles = await realtime_service.subscribe_child_events("rooms", on_removed=print)
            registered = len(fake_database.active_listeners())
            handles.cancel()
            return handles, registered

        handles, registered = asyncio.run(scenario())
        assert registered == 1
        assert handles.added is None and handles.changed is None
        assert handles.removed is not None

    def test_cancelling_one_handle_keeps_others(self, realtime_service):
        added, removed = [], []

        async def scenario():
            handles = await realtime_service.subscribe_child_events(
                "rooms", on_added=added.append, on_removed=removed.append
            )
            handles.added.cancel()
            await wait_until(lambda: not handles.added.active)

            await realtime_service.replace("rooms/r2", 2)
            await realtime_service.remove("rooms/r2")
            await wait_until(lambda: removed)
            handles.cancel()

        asyncio.run(scenario())
        assert added == []
        assert [n.key for n in removed] == ["r2"]

    def test_async_callbacks_are_awaited(self, realtime_service):
        seen = []

        async def on_added(node):
            await asyncio.sleep(0)
            seen.append(node.key)

        async def scenario():
            handles = await realtime_service.subscribe_child_events("rooms", on_added=on_added)
            await realtime_service.append("rooms", {"n": 1})
            await wait_until(lambda: seen)
            handles.cancel()

        asyncio.run(scenario())
        assert len(seen) == 1
