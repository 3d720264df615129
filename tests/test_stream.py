"""Tests for EventStream — push-based event stream with operator chaining."""

from cellgraph import EventStream, SystemEvent


class TestEmitSubscribe:
    """Core emit/subscribe behavior."""

    def test_subscribe_receives_emitted_values(self):
        stream = EventStream()
        received = []
        stream.subscribe(received.append)
        stream.emit(1)
        stream.emit(2)
        assert received == [1, 2]

    def test_unsubscribe(self):
        stream = EventStream()
        received = []
        unsub = stream.subscribe(received.append)
        stream.emit(1)
        unsub()
        unsub()  # should not raise
        stream.emit(2)
        assert received == [1]
        assert stream.subscriber_count == 0


class TestOperators:
    def test_map_then_filter(self):
        stream = EventStream()
        result = stream.map(lambda v: v * 10).filter(lambda v: v > 10)
        received = []
        result.subscribe(received.append)
        for v in [1, 2, 3]:
            stream.emit(v)
        assert received == [20, 30]

    def test_of_kind(self):
        stream = EventStream()
        received = []
        stream.of_kind("error", "removed").subscribe(lambda e: received.append(e.kind))
        stream.emit(SystemEvent("updated", "x", 1))
        stream.emit(SystemEvent("error", "x"))
        stream.emit(SystemEvent("removed", "x"))
        assert received == ["error", "removed"]

    def test_for_reactive(self):
        stream = EventStream()
        received = []
        stream.for_reactive("a").subscribe(lambda e: received.append(e.value))
        stream.emit(SystemEvent("updated", "a", 1))
        stream.emit(SystemEvent("updated", "b", 2))
        assert received == [1]


class TestDispose:
    def test_emit_after_dispose_is_noop(self):
        stream = EventStream()
        received = []
        stream.subscribe(received.append)
        stream.dispose()
        stream.emit(1)
        assert received == []
        assert stream.disposed

    def test_dispose_propagates_to_children(self):
        parent = EventStream()
        child = parent.of_kind("updated")
        grandchild = child.for_reactive("x")
        parent.dispose()
        assert child.disposed
        assert grandchild.disposed

    def test_child_dispose_does_not_affect_parent(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        received = []
        parent.subscribe(received.append)
        child.dispose()
        parent.emit(1)
        assert received == [1]
        assert not parent.disposed

    def test_child_dispose_unhooks_from_parent(self):
        parent = EventStream()
        child = parent.filter(lambda v: v > 0)
        grandchild = child.map(str)
        assert parent.subscriber_count == 1
        child.dispose()
        assert parent.subscriber_count == 0
        assert grandchild.disposed
