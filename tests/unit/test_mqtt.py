"""Unit tests for showerguard._mqtt: MQTT port and adapters.

Test Techniques Used:
    - Protocol Conformance: isinstance checks against MqttPort
    - State-based Testing: MockMqttClient recording
    - Boundary Value Analysis: reconnect backoff growth and cap
    - Mock-based Isolation: aiomqtt patched via sys.modules for MqttClient
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from showerguard._mqtt import (
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
    WillConfig,
)
from showerguard._settings import MqttSettings
from showerguard.testing import MockMqttClient

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


async def _blocking_messages():  # noqa: ANN202
    """Block until cancelled, yielding nothing."""
    await asyncio.Event().wait()
    yield  # pragma: no cover


@pytest.fixture
def mock_aiomqtt() -> Iterator[tuple[MagicMock, AsyncMock]]:
    """Mock aiomqtt module whose client connects and then idles."""
    mock_module = MagicMock()

    mock_client_instance = AsyncMock()
    mock_client_instance.__aenter__ = AsyncMock(return_value=mock_client_instance)
    mock_client_instance.__aexit__ = AsyncMock(return_value=False)
    type(mock_client_instance).messages = property(
        lambda self: _blocking_messages(),
    )
    mock_client_instance.subscribe = AsyncMock()
    mock_client_instance.publish = AsyncMock()

    mock_module.Client.return_value = mock_client_instance
    mock_module.Will = MagicMock()

    with patch.dict(sys.modules, {"aiomqtt": mock_module}):
        yield mock_module, mock_client_instance


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class TestProtocols:
    """Structural conformance of the adapters.

    Technique: Protocol Conformance.
    """

    def test_both_clients_are_mqtt_ports(self) -> None:
        assert isinstance(MockMqttClient(), MqttPort)
        assert isinstance(MqttClient(settings=MqttSettings()), MqttPort)

    def test_only_real_client_has_lifecycle(self) -> None:
        assert isinstance(MqttClient(settings=MqttSettings()), MqttLifecycle)
        assert not isinstance(MockMqttClient(), MqttLifecycle)

    def test_both_clients_deliver_messages(self) -> None:
        assert isinstance(MockMqttClient(), MqttMessageHandler)
        assert isinstance(MqttClient(settings=MqttSettings()), MqttMessageHandler)


class TestWillConfig:
    """LWT value object.

    Technique: Specification-based Testing.
    """

    def test_defaults(self) -> None:
        will = WillConfig(topic="sg/status")
        assert will.payload == "offline"
        assert will.qos == 1
        assert will.retain is True


# ---------------------------------------------------------------------------
# Test double
# ---------------------------------------------------------------------------


class TestMockMqttClient:
    """Recording double.

    Technique: State-based Testing.
    """

    async def test_records_publish(self) -> None:
        mqtt = MockMqttClient()
        await mqtt.publish("a", "1", retain=True, qos=0)
        await mqtt.publish("b", "2")
        assert mqtt.published == [("a", "1", True, 0), ("b", "2", False, 1)]
        assert mqtt.get_messages_for("a") == [("1", True, 0)]
        assert mqtt.payloads("b") == ["2"]

    async def test_retained_keeps_last_retained_payload(self) -> None:
        mqtt = MockMqttClient()
        await mqtt.publish("sg/shower_active", "on", retain=True)
        await mqtt.publish("sg/shower_active", "off", retain=True)
        await mqtt.publish("sg/shower_data", "{}")
        assert mqtt.retained == {"sg/shower_active": "off"}

    async def test_fail_on_publish(self) -> None:
        mqtt = MockMqttClient(fail_on_publish=ConnectionError("down"))
        with pytest.raises(ConnectionError):
            await mqtt.publish("a", "1")
        assert mqtt.published == []

    async def test_deliver_invokes_callbacks_in_order(self) -> None:
        mqtt = MockMqttClient()
        seen: list[str] = []

        async def first(topic: str, payload: str) -> None:
            seen.append(f"first:{topic}:{payload}")

        async def second(topic: str, payload: str) -> None:
            seen.append(f"second:{topic}:{payload}")

        mqtt.on_message(first)
        mqtt.on_message(second)
        await mqtt.deliver("t", "p")

        assert seen == ["first:t:p", "second:t:p"]

    async def test_reset(self) -> None:
        mqtt = MockMqttClient()
        await mqtt.publish("a", "1", retain=True)
        await mqtt.subscribe("b")
        mqtt.reset()
        assert mqtt.published == []
        assert mqtt.subscriptions == []
        assert mqtt.retained == {}


# ---------------------------------------------------------------------------
# Real client
# ---------------------------------------------------------------------------


class TestMqttClientBackoff:
    """Reconnect delay growth.

    Technique: Boundary Value Analysis.
    """

    def _client(self) -> MqttClient:
        return MqttClient(
            settings=MqttSettings(reconnect_interval=2.0, reconnect_max_interval=30.0),
        )

    @pytest.mark.parametrize(
        ("failures", "ceiling"),
        [(1, 2.0), (2, 4.0), (3, 8.0), (4, 16.0), (5, 30.0), (20, 30.0)],
    )
    def test_doubles_up_to_cap(self, failures: int, ceiling: float) -> None:
        delay = self._client()._backoff_delay(failures)  # noqa: SLF001
        assert ceiling * 0.8 <= delay <= ceiling


class TestMqttClientLifecycle:
    """start/stop and connection state.

    Technique: State Transition Testing.
    """

    async def test_publish_raises_when_not_connected(self) -> None:
        client = MqttClient(settings=MqttSettings())
        with pytest.raises(RuntimeError, match="not connected"):
            await client.publish("t", "p")

    async def test_connects_and_restores_subscriptions(
        self,
        mock_aiomqtt: tuple[MagicMock, AsyncMock],
    ) -> None:
        _, mock_client = mock_aiomqtt
        client = MqttClient(settings=MqttSettings(qos=0))
        await client.subscribe("ems-esp/tapwater_active")

        await client.start()
        assert await client.wait_connected(timeout=1.0)

        mock_client.subscribe.assert_awaited_with("ems-esp/tapwater_active", qos=0)
        await client.publish("sg/x", "1", retain=True)
        mock_client.publish.assert_awaited_with("sg/x", "1", retain=True, qos=1)

        await client.stop()
        assert not client.is_connected

    async def test_will_passed_to_client(
        self,
        mock_aiomqtt: tuple[MagicMock, AsyncMock],
    ) -> None:
        mock_module, _ = mock_aiomqtt
        client = MqttClient(
            settings=MqttSettings(),
            will=WillConfig(topic="sg/status"),
        )
        await client.start()
        await client.wait_connected(timeout=1.0)
        await client.stop()

        mock_module.Will.assert_called_once_with(
            topic="sg/status",
            payload="offline",
            qos=1,
            retain=True,
        )

    async def test_wait_connected_times_out(self) -> None:
        client = MqttClient(settings=MqttSettings())
        assert await client.wait_connected(timeout=0.01) is False

    async def test_stop_is_idempotent(self) -> None:
        client = MqttClient(settings=MqttSettings())
        await client.stop()
        await client.stop()

    async def test_reconnects_after_error(self) -> None:
        settings = MqttSettings(reconnect_interval=0.01)
        mock_module = MagicMock()
        call_count = 0

        def client_factory(**_kwargs: object) -> AsyncMock:
            nonlocal call_count
            call_count += 1
            cm = AsyncMock()
            if call_count == 1:
                cm.__aenter__ = AsyncMock(side_effect=OSError("refused"))
            else:
                cm.__aenter__ = AsyncMock(return_value=cm)
                type(cm).messages = property(lambda self: _blocking_messages())
                cm.subscribe = AsyncMock()
            cm.__aexit__ = AsyncMock(return_value=False)
            return cm

        mock_module.Client = client_factory

        with patch.dict(sys.modules, {"aiomqtt": mock_module}):
            client = MqttClient(settings=settings)
            await client.start()
            assert await client.wait_connected(timeout=1.0)
            assert call_count == 2
            await client.stop()


class TestMqttClientDispatch:
    """Inbound message fan-out.

    Technique: Specification-based Testing + Error Guessing.
    """

    async def test_decodes_bytes(self) -> None:
        client = MqttClient(settings=MqttSettings())
        seen: list[tuple[str, str]] = []

        async def cb(topic: str, payload: str) -> None:
            seen.append((topic, payload))

        client.on_message(cb)
        await client._dispatch(  # noqa: SLF001
            SimpleNamespace(topic="ems-esp/tapwater_active", payload=b"on"),
        )
        assert seen == [("ems-esp/tapwater_active", "on")]

    async def test_skips_none_payload(self) -> None:
        client = MqttClient(settings=MqttSettings())
        cb = AsyncMock()
        client.on_message(cb)
        await client._dispatch(SimpleNamespace(topic="t", payload=None))  # noqa: SLF001
        cb.assert_not_awaited()

    async def test_callback_error_does_not_stop_others(self) -> None:
        client = MqttClient(settings=MqttSettings())
        failing = AsyncMock(side_effect=ValueError("bad"))
        ok = AsyncMock()
        client.on_message(failing)
        client.on_message(ok)

        await client._dispatch(SimpleNamespace(topic="t", payload=b"x"))  # noqa: SLF001

        ok.assert_awaited_once_with("t", "x")
