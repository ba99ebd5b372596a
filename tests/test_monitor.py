"""Unit tests for the hub connectivity monitor."""

import asyncio
from dataclasses import replace

import pytest

from insteon_bridge.monitor import HubMonitor


class Sink:
    def __init__(self):
        self.messages = []

    async def __call__(self, message_type, data):
        self.messages.append((message_type, data))


def make_monitor(context, hub, **overrides):
    context.config = replace(context.config, **overrides)
    sink = Sink()
    return HubMonitor(context, hub, [sink]), sink


class TestStrategies:
    @pytest.mark.asyncio
    async def test_hub2_connects_over_http_with_credentials(self, context, hub):
        monitor, sink = make_monitor(context, hub)
        await monitor.connect()
        assert hub.connect_calls == [("http", "192.168.1.50", 25105, "admin", "secret")]
        assert context.hub_connected
        assert sink.messages == [
            ("bridgestatus", {"message": "Connected to hub", "insteonConnection": "connected"})
        ]

    @pytest.mark.asyncio
    async def test_hub1_connects_over_tcp(self, context, hub):
        monitor, _ = make_monitor(context, hub, model="2242", hub_port=9761)
        await monitor.connect()
        assert hub.connect_calls == [("tcp", "192.168.1.50", 9761)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model,message", [("2243", "Connected to hub"), ("plm", "Connected to PLM")])
    async def test_serial_models(self, context, hub, model, message):
        monitor, sink = make_monitor(context, hub, model=model, host="/dev/ttyUSB0")
        await monitor.connect()
        assert hub.connect_calls == [("serial", "/dev/ttyUSB0", 19200)]
        assert sink.messages[0][1]["message"] == message


class TestRetry:
    @pytest.mark.asyncio
    async def test_failure_leaves_flag_unset(self, context, hub):
        hub.connect_failures = [OSError("unreachable")]
        monitor, _ = make_monitor(context, hub)
        with pytest.raises(OSError):
            await monitor.connect()
        assert not context.hub_connected

    @pytest.mark.asyncio
    async def test_run_retries_with_backoff(self, context, hub, monkeypatch):
        hub.connect_failures = [OSError("unreachable"), TimeoutError("slow")]
        monitor, sink = make_monitor(context, hub, reconnect_initial=1.0, reconnect_max=1.5)
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay):
            delays.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("insteon_bridge.monitor.asyncio.sleep", fake_sleep)
        await asyncio.wait_for(monitor.run(), timeout=2)
        assert delays == [1.0, 1.5]
        assert monitor.connect_attempts == 3
        assert context.hub_connected
        statuses = [data for _, data in sink.messages]
        assert statuses[0]["insteonConnection"] == "disconnected"
        assert statuses[0]["error"] == "OSError: unreachable"
        assert statuses[-1] == {"message": "Connected to hub", "insteonConnection": "connected"}

    @pytest.mark.asyncio
    async def test_wait_until_connected_and_stop(self, context, hub):
        monitor, _ = make_monitor(context, hub)
        assert not await monitor.wait_until_connected(timeout=0.01)
        monitor.start()
        assert await monitor.wait_until_connected(timeout=1)
        await monitor.stop()
        assert hub.closed
        assert not context.hub_connected

    @pytest.mark.asyncio
    async def test_broken_sink_does_not_abort_connect(self, context, hub):
        async def broken(message_type, data):
            raise RuntimeError("sink down")

        sink = Sink()
        monitor = HubMonitor(context, hub, [broken, sink])
        await monitor.connect()
        assert context.hub_connected
        assert len(sink.messages) == 1
