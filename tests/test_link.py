from __future__ import annotations

from types import SimpleNamespace

import pytest

from emsurvey.errors import (
    ConnectionFailed,
    DeviceNotFound,
    ExchangeInProgress,
    LinkError,
    LinkTimeout,
    MalformedResponse,
    NotConnected,
)
from emsurvey.field.config import LinkSettings
from emsurvey.field.link import LinkClient, LinkState, normalize_address, parse_response


class FakeSerialException(Exception):
    pass


class FakeSerialInstance:
    def __init__(self, responses: list[bytes], port: str):
        self.port = port
        self._responses = responses
        self.written: list[bytes] = []
        self.closed = False
        self.fail_write = False

    def reset_input_buffer(self) -> None:
        pass

    def write(self, data: bytes) -> int:
        if self.fail_write:
            raise FakeSerialException("write failed")
        self.written.append(data)
        return len(data)

    def flush(self) -> None:
        pass

    def readline(self) -> bytes:
        if self._responses:
            return self._responses.pop(0)
        return b""

    def close(self) -> None:
        self.closed = True


class FakeSerialModule:
    SerialException = FakeSerialException

    def __init__(self, responses: list[bytes], fail_open: bool = False):
        self.responses = responses
        self.fail_open = fail_open
        self.instances: list[FakeSerialInstance] = []

    def Serial(self, port, baudrate, timeout):
        if self.fail_open:
            raise FakeSerialException(f"could not open port {port}")
        instance = FakeSerialInstance(self.responses, port)
        self.instances.append(instance)
        return instance


@pytest.fixture
def fake_serial(monkeypatch):
    module = FakeSerialModule([])
    monkeypatch.setattr("emsurvey.field.link.serial", module)
    return module


def _client(port: str | None = "/dev/rfcomm0") -> LinkClient:
    return LinkClient(LinkSettings(address="3C:8A:1F:9C:45:D4", port=port, timeout=0.1))


def test_parse_response_reads_current_and_voltage() -> None:
    reading = parse_response('{"current": 0.5, "voltage": 0.01}\r\n')
    assert reading.current == 0.5
    assert reading.voltage == 0.01


@pytest.mark.parametrize(
    "line",
    ["not json", "[1, 2]", '{"current": 0.5}', '{"current": "0.5", "voltage": 0.01}', '{"current": true, "voltage": 1}'],
)
def test_parse_response_rejects_bad_payloads(line: str) -> None:
    with pytest.raises(MalformedResponse):
        parse_response(line)


def test_discover_matches_bonded_port_by_address(monkeypatch) -> None:
    ports = [
        SimpleNamespace(device="/dev/ttyS0", hwid="PNP0501", serial_number=None, description="ttyS0"),
        SimpleNamespace(
            device="COM7",
            hwid=r"BTHENUM\{00001101-0000-1000-8000-00805F9B34FB}_LOCALMFG&0002\7&2A0&0&3C8A1F9C45D4_C00000000",
            serial_number=None,
            description="Standard Serial over Bluetooth link",
        ),
    ]
    monkeypatch.setattr("emsurvey.field.link.list_ports.comports", lambda: ports)
    device = _client(port=None).discover()
    assert device.port == "COM7"
    assert normalize_address(device.address) == "3C8A1F9C45D4"


def test_discover_without_paired_device(monkeypatch) -> None:
    monkeypatch.setattr("emsurvey.field.link.list_ports.comports", lambda: [])
    client = _client(port=None)
    with pytest.raises(DeviceNotFound):
        client.open()
    assert client.state is LinkState.DISCONNECTED


def test_connect_failure_leaves_client_disconnected(monkeypatch) -> None:
    module = FakeSerialModule([], fail_open=True)
    monkeypatch.setattr("emsurvey.field.link.serial", module)
    client = _client()
    with pytest.raises(ConnectionFailed):
        client.open()
    assert not client.connected
    assert client.state is LinkState.DISCONNECTED


def test_exchange_writes_frequency_and_parses_reply(fake_serial) -> None:
    fake_serial.responses.append(b'{"current": 0.52, "voltage": 0.0134}\n')
    client = _client()
    session = client.open()
    assert client.state is LinkState.CONNECTED

    reading = client.exchange(session, 813)

    assert fake_serial.instances[0].written == [b"813\n"]
    assert reading.current == 0.52
    assert reading.voltage == 0.0134
    assert client.state is LinkState.CONNECTED
    assert client.connected


def test_exchange_without_session_does_not_write(fake_serial) -> None:
    client = _client()
    with pytest.raises(NotConnected):
        client.exchange(None, 813)
    assert fake_serial.instances == []


def test_exchange_with_stale_session_is_rejected(fake_serial) -> None:
    client = _client()
    session = client.open()
    client.disconnect(session)
    with pytest.raises(NotConnected):
        client.exchange(session, 559)
    assert fake_serial.instances[0].written == []


def test_reconnect_closes_previous_port(fake_serial) -> None:
    client = _client()
    first = client.open()
    second = client.open()
    assert len(fake_serial.instances) == 2
    assert fake_serial.instances[0].closed
    assert not first.open
    assert not fake_serial.instances[1].closed
    assert client.session is second
    assert client.state is LinkState.CONNECTED
    with pytest.raises(NotConnected):
        client.exchange(first, 813)


def test_timeout_disconnects_and_clears_session(fake_serial) -> None:
    client = _client()
    session = client.open()
    with pytest.raises(LinkTimeout):
        client.exchange(session, 407)
    assert client.session is None
    assert client.state is LinkState.DISCONNECTED
    assert fake_serial.instances[0].closed
    with pytest.raises(NotConnected):
        client.exchange(session, 407)


def test_malformed_reply_disconnects(fake_serial) -> None:
    fake_serial.responses.append(b"garbage\n")
    client = _client()
    session = client.open()
    with pytest.raises(MalformedResponse):
        client.exchange(session, 254)
    assert not client.connected


def test_transport_failure_maps_to_link_error(fake_serial) -> None:
    client = _client()
    session = client.open()
    fake_serial.instances[0].fail_write = True
    with pytest.raises(LinkError):
        client.exchange(session, 203)
    assert not client.connected


def test_exchange_rejects_overlapping_request(fake_serial) -> None:
    client = _client()
    session = client.open()
    client._exchange_lock.acquire()
    try:
        with pytest.raises(ExchangeInProgress):
            client.exchange(session, 153)
    finally:
        client._exchange_lock.release()
    assert fake_serial.instances[0].written == []


def test_disconnect_swallows_close_errors(fake_serial) -> None:
    client = _client()
    session = client.open()

    def broken_close() -> None:
        raise FakeSerialException("already gone")

    session.handle.close = broken_close
    client.disconnect(session)
    assert client.session is None
    assert client.state is LinkState.DISCONNECTED


def test_opened_releases_session_on_error(fake_serial) -> None:
    client = _client()
    with pytest.raises(RuntimeError):
        with client.opened():
            raise RuntimeError("boom")
    assert fake_serial.instances[0].closed
    assert not client.connected
