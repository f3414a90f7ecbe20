from __future__ import annotations

import enum
import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import serial  # type: ignore[import]
from serial.tools import list_ports  # type: ignore[import]

from ..errors import (
    ConnectionFailed,
    DeviceNotFound,
    ExchangeInProgress,
    LinkError,
    LinkTimeout,
    MalformedResponse,
    NotConnected,
)
from .config import LinkSettings

logger = logging.getLogger(__name__)


class LinkState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    EXCHANGING = "exchanging"


@dataclass(frozen=True)
class Device:
    address: str
    port: str
    description: str = ""


@dataclass
class Session:
    """Open transport to one device. Only valid while `open` is True."""

    device: Device
    handle: Any
    open: bool = field(default=True)


@dataclass(frozen=True)
class Reading:
    current: float  # amps
    voltage: float  # volts


def normalize_address(address: str) -> str:
    return "".join(ch for ch in address.upper() if ch not in ":-_ ")


def parse_response(line: str) -> Reading:
    """Decode one JSON response line into a :class:`Reading`."""
    stripped = line.strip()
    try:
        payload = json.loads(stripped)
    except ValueError as exc:
        raise MalformedResponse(f"Response is not JSON: {stripped!r}") from exc
    if not isinstance(payload, dict):
        raise MalformedResponse(f"Response is not a JSON object: {stripped!r}")
    values = {}
    for key in ("current", "voltage"):
        value = payload.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedResponse(f"Response field '{key}' missing or not numeric: {stripped!r}")
        values[key] = float(value)
    return Reading(current=values["current"], voltage=values["voltage"])


class LinkClient:
    """
    Request/response client for the sensor's serial link.

    One command line goes out per exchange and exactly one response line is
    read back. Any failure during an exchange drops the session; the caller
    must run discover/connect again before the next exchange.
    """

    def __init__(self, settings: LinkSettings):
        self.settings = settings
        self.state = LinkState.DISCONNECTED
        self.session: Optional[Session] = None
        self._exchange_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self.session is not None and self.session.open

    def discover(self) -> Device:
        if self.settings.port:
            return Device(address=self.settings.address, port=self.settings.port, description="configured")
        wanted = normalize_address(self.settings.address)
        for port in list_ports.comports():
            fields = (port.hwid or "", port.serial_number or "", port.device or "")
            if any(wanted in normalize_address(value) for value in fields):
                logger.debug("Matched %s on %s (%s)", self.settings.address, port.device, port.hwid)
                return Device(address=self.settings.address, port=port.device, description=port.description or "")
        raise DeviceNotFound(f"Device {self.settings.address} not found. Please pair the device first.")

    def connect(self, device: Device) -> Session:
        if self.connected:
            # one live session per client; release the old port first
            self.disconnect(self.session)
        self.state = LinkState.CONNECTING
        try:
            handle = serial.Serial(
                port=device.port,
                baudrate=self.settings.baudrate,
                timeout=self.settings.timeout,
            )
        except (serial.SerialException, OSError) as exc:
            self.state = LinkState.DISCONNECTED
            raise ConnectionFailed(f"Could not connect to {device.port}: {exc}") from exc
        self.session = Session(device=device, handle=handle)
        self.state = LinkState.CONNECTED
        logger.info("Connected to %s on %s", device.address, device.port)
        return self.session

    def open(self) -> Session:
        try:
            return self.connect(self.discover())
        except LinkError:
            self._drop()
            raise

    def exchange(self, session: Optional[Session], frequency_hz: int) -> Reading:
        if session is None or not session.open or session is not self.session:
            raise NotConnected("No Bluetooth device connected")
        if not self._exchange_lock.acquire(blocking=False):
            raise ExchangeInProgress("A previous exchange has not completed")
        try:
            self.state = LinkState.EXCHANGING
            command = f"{frequency_hz}\n"
            try:
                session.handle.reset_input_buffer()
                session.handle.write(command.encode("utf-8"))
                session.handle.flush()
                logger.debug("Sent command %r", command)
                raw = session.handle.readline()
            except (serial.SerialException, OSError) as exc:
                raise LinkError(f"Transport failure during exchange: {exc}") from exc
            if not raw:
                raise LinkTimeout(f"No response for {frequency_hz} Hz")
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedResponse(f"Response is not UTF-8: {raw!r}") from exc
            logger.debug("Received response %r", line)
            reading = parse_response(line)
        except LinkError:
            self.disconnect(session)
            raise
        finally:
            self._exchange_lock.release()
        self.state = LinkState.CONNECTED
        return reading

    def disconnect(self, session: Optional[Session]) -> None:
        if session is not None and session.open:
            session.open = False
            try:
                session.handle.close()
                logger.info("Disconnected from %s", session.device.port)
            except Exception as exc:
                logger.warning("Disconnect error on %s: %s", session.device.port, exc)
        if session is None or session is self.session:
            self._drop()

    def close(self) -> None:
        self.disconnect(self.session)

    @contextmanager
    def opened(self) -> Iterator[Session]:
        session = self.open()
        try:
            yield session
        finally:
            self.disconnect(session)

    def _drop(self) -> None:
        self.session = None
        self.state = LinkState.DISCONNECTED
