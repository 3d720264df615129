"""Tests for system events and the DevTools hub."""

import logging

import pytest

from cellgraph import Middleware, ReactiveConfig, ReactiveSystem, ValidationFailure
from cellgraph.devtools import DevToolsHub


@pytest.fixture
def hub():
    h = DevToolsHub()
    yield h
    h.reset()


class TestSystemEvents:
    @pytest.mark.asyncio
    async def test_lifecycle_events(self):
        system = ReactiveSystem(options={"dev_tools": True})
        events = []
        system.events.subscribe(lambda e: events.append((e.kind, e.reactive_id, e.value)))
        r = await system.create(ReactiveConfig("state", 0, id="x"))
        await r.set(1)
        await system.remove_reactive("x")
        assert events == [("created", "x", 0), ("updated", "x", 1), ("removed", "x", None)]

    @pytest.mark.asyncio
    async def test_error_event(self):
        def reject(value, ctx):
            raise ValidationFailure("no")

        system = ReactiveSystem(
            middleware=[Middleware("reject", before=reject)], options={"dev_tools": True}
        )
        errors = []
        system.events.of_kind("error").subscribe(lambda e: errors.append(e.error))
        r = await system.create(ReactiveConfig("state", 0, id="x"))
        with pytest.raises(ValidationFailure):
            await r.set(1)
        assert len(errors) == 1
        assert isinstance(errors[0], ValidationFailure)

    @pytest.mark.asyncio
    async def test_propagation_failed_event(self):
        system = ReactiveSystem(
            middleware=[Middleware(
                "gate",
                before=lambda v, ctx: v if ctx.reactive.id != "b" else 1 / 0,
            )],
            options={"dev_tools": True},
        )
        failed = []
        system.events.of_kind("propagation_failed").subscribe(
            lambda e: failed.append(e.reactive_id)
        )
        a = await system.create(ReactiveConfig("state", 0, id="a"))
        await system.create(ReactiveConfig("state", 0, id="b", dependencies=["a"]))
        await a.set(1)
        assert failed == ["b"]

    @pytest.mark.asyncio
    async def test_silent_without_dev_tools(self):
        system = ReactiveSystem()
        events = []
        system.events.subscribe(events.append)
        r = await system.create(ReactiveConfig("state", 0))
        await r.set(1)
        assert events == []

    @pytest.mark.asyncio
    async def test_broken_event_subscriber_does_not_break_commit(self, caplog):
        system = ReactiveSystem(options={"dev_tools": True})

        def broken(event):
            raise RuntimeError("inspector down")

        system.events.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="cellgraph.system"):
            r = await system.create(ReactiveConfig("state", 0))
            await r.set(1)
        assert r.value() == 1
        assert "Event subscriber failed" in caplog.text


class TestDevToolsHub:
    @pytest.mark.asyncio
    async def test_forwards_events_with_state(self, hub):
        system = ReactiveSystem(options={"dev_tools": True})
        hub.attach(system, "app")
        messages = []
        hub.add_sink(messages.append)

        await system.create(ReactiveConfig("state", 5, id="x"))

        assert len(messages) == 1
        message = messages[0]
        assert message.system == "app"
        assert message.event.kind == "created"
        assert message.state["reactives"]["x"]["value"] == 5

    @pytest.mark.asyncio
    async def test_detach_stops_forwarding(self, hub):
        system = ReactiveSystem(options={"dev_tools": True})
        detach = hub.attach(system)
        messages = []
        hub.add_sink(messages.append)
        detach()
        await system.create(ReactiveConfig("state", 5))
        assert messages == []
        assert hub.systems == []

    @pytest.mark.asyncio
    async def test_get_state(self, hub):
        system = ReactiveSystem(options={"dev_tools": True})
        hub.attach(system, "app")
        await system.create(ReactiveConfig("state", 1, id="x"))
        assert hub.get_state("app") == system.snapshot()
        with pytest.raises(KeyError):
            hub.get_state("other")

    def test_duplicate_name(self, hub):
        hub.attach(ReactiveSystem(options={"dev_tools": True}), "app")
        with pytest.raises(ValueError):
            hub.attach(ReactiveSystem(options={"dev_tools": True}), "app")

    def test_warns_without_dev_tools(self, hub, caplog):
        with caplog.at_level(logging.WARNING, logger="cellgraph.devtools"):
            hub.attach(ReactiveSystem(), "quiet")
        assert "without dev_tools" in caplog.text

    @pytest.mark.asyncio
    async def test_sink_removal(self, hub):
        system = ReactiveSystem(options={"dev_tools": True})
        hub.attach(system)
        messages = []
        remove = hub.add_sink(messages.append)
        remove()
        remove()
        await system.create(ReactiveConfig("state", 1))
        assert messages == []

    @pytest.mark.asyncio
    async def test_kinds_limits_forwarded_events(self, hub):
        system = ReactiveSystem(options={"dev_tools": True})
        hub.attach(system, "app", kinds=["updated"])
        messages = []
        hub.add_sink(messages.append)
        x = await system.create(ReactiveConfig("state", 0, id="x"))
        await x.set(1)
        assert [m.event.kind for m in messages] == ["updated"]
        assert messages[0].state["reactives"]["x"]["value"] == 1

    @pytest.mark.asyncio
    async def test_no_snapshot_without_sinks(self, hub, monkeypatch):
        system = ReactiveSystem(options={"dev_tools": True})
        calls = []
        original = system.snapshot
        monkeypatch.setattr(system, "snapshot", lambda: calls.append(1) or original())
        hub.attach(system)
        await system.create(ReactiveConfig("state", 0))
        assert calls == []

    def test_detach_unhooks_from_system_events(self, hub):
        system = ReactiveSystem(options={"dev_tools": True})
        detach = hub.attach(system, "app")
        assert system.events.subscriber_count == 1
        detach()
        assert system.events.subscriber_count == 0
