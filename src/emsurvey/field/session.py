from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from ..calc import derive, require_finite
from ..errors import ExchangeInProgress
from ..models import Measurement, SurveyConstants, format_coordinate
from . import acquisition
from .acquisition import AcquisitionState, Connect, Exchange, PersistStation, PlayTone
from .feedback import LocationProvider, SilentTonePlayer, StaticLocation, TonePlayer
from .link import LinkClient, Reading
from .repository import SurveyRepository

logger = logging.getLogger(__name__)


def build_measurement(
    frequency: int,
    reading: Reading,
    constants: SurveyConstants,
    station_number: int,
    *,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    captured_at: Optional[datetime] = None,
) -> Measurement:
    """Convert one device reading into a stored measurement.

    Current and voltage are rounded to two decimals (voltage in mV) and the
    derived quantities are computed from those rounded values. Raises
    :class:`~emsurvey.errors.InvalidReading` when they are not finite.
    """
    tx_current = f"{reading.current:.2f}"
    rx_voltage = f"{reading.voltage * 1000:.2f}"
    values = require_finite(
        derive(frequency, float(tx_current), float(rx_voltage), constants.inter_coil, constants.average_resistivity),
        frequency=frequency,
    )
    when = captured_at or datetime.now()
    return Measurement(
        frequency=frequency,
        tx_current=tx_current,
        rx_voltage=rx_voltage,
        latitude=format_coordinate(latitude),
        longitude=format_coordinate(longitude),
        distance=constants.distance(station_number),
        calculated_depth=values.depth,
        calculated_conductivity=values.conductivity,
        calculated_resistivity=values.resistivity,
        date=when.date().isoformat(),
        time=when.strftime("%H:%M:%S"),
    )


class SurveySession:
    """Runs the acquisition state machine against the device, storage and feedback."""

    def __init__(
        self,
        link: LinkClient,
        repository: SurveyRepository,
        *,
        location: Optional[LocationProvider] = None,
        tones: Optional[TonePlayer] = None,
        signal_generator: bool = False,
        beep: bool = True,
        clock: Callable[[], datetime] = datetime.now,
        state: Optional[AcquisitionState] = None,
    ):
        self.link = link
        self.repository = repository
        self.location = location or StaticLocation()
        self.tones = tones or SilentTonePlayer()
        self.signal_generator = signal_generator
        self.beep = beep
        self.clock = clock
        self.state = state or acquisition.new_survey()
        self._fetching = False

    @classmethod
    def resume(cls, link: LinkClient, repository: SurveyRepository, project_index: int, station_number: int, **kwargs) -> "SurveySession":
        project = repository.get(project_index)
        state = acquisition.resume(project, station_number, project_index)
        logger.info("Editing project '%s' (index %d) from station %d", project.name, project_index, station_number)
        return cls(link, repository, state=state, **kwargs)

    def start(self, name: str, constants: SurveyConstants) -> AcquisitionState:
        state = acquisition.configure(self.state, name, constants)
        self.state = acquisition.begin(state, gps=self.location.current_fix())
        logger.info("Project '%s' initialised at station %d", self.state.name, self.state.station_number)
        return self.state

    def fetch(self) -> Optional[Measurement]:
        """Connect if needed, otherwise acquire the current frequency.

        Returns the recorded measurement, or None when this call only
        established the device connection.
        """
        if self._fetching:
            raise ExchangeInProgress("An acquisition is already pending")
        self._fetching = True
        try:
            _, effects = acquisition.request_fetch(self.state, self.link.connected, self.signal_generator)
            measurement = None
            tone_requested = False
            try:
                for effect in effects:
                    if isinstance(effect, Connect):
                        self.link.open()
                        return None
                    if isinstance(effect, PlayTone):
                        tone_requested = True
                        self._play_tone(effect.frequency)
                    elif isinstance(effect, Exchange):
                        measurement = self._acquire(effect.frequency)
            finally:
                if tone_requested:
                    self._stop_tone()
            if measurement is not None and self.beep:
                # beep only once the excitation tone is stopped
                self._safe_tone_call(self.tones.beep)
            return measurement
        finally:
            self._fetching = False

    def advance(self, direction: int) -> AcquisitionState:
        self.state = acquisition.advance(self.state, direction)
        return self.state

    def complete_station(self) -> int:
        """Persist the in-progress station and move on to the next one.

        Returns the number of the station that was saved. When storage fails
        the in-progress readings are kept so the save can be retried.
        """
        pending, effects = acquisition.complete_station(self.state)
        index = self.state.project_index
        for effect in effects:
            if isinstance(effect, PersistStation):
                index = self._persist(effect)
        assert index is not None
        saved = pending.station_number
        self.state = acquisition.station_saved(pending, index)
        logger.info("Station %d saved successfully", saved)
        return saved

    def finish(self) -> AcquisitionState:
        if self.state.measurements:
            logger.warning(
                "Discarding %d unsaved readings for station %d",
                len(self.state.measurements),
                self.state.station_number,
            )
        self.state = acquisition.finish(self.state)
        self.close()
        return self.state

    def close(self) -> None:
        """Release the device link and any playing tone. Safe to call repeatedly."""
        self._stop_tone()
        self.link.close()

    def __enter__(self) -> "SurveySession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _acquire(self, frequency: int) -> Measurement:
        assert self.state.constants is not None
        reading = self.link.exchange(self.link.session, frequency)
        fix = self.location.current_fix()
        measurement = build_measurement(
            frequency,
            reading,
            self.state.constants,
            self.state.station_number,
            latitude=fix.latitude if fix else None,
            longitude=fix.longitude if fix else None,
            captured_at=self.clock(),
        )
        self.state = acquisition.record(self.state, measurement)
        logger.info(
            "Station %d %d Hz: I=%s A V=%s mV sigma=%.6g",
            self.state.station_number,
            frequency,
            measurement.tx_current,
            measurement.rx_voltage,
            measurement.calculated_conductivity,
        )
        return measurement

    def _persist(self, effect: PersistStation) -> int:
        if effect.index is None:
            return self.repository.append(effect.project)
        self.repository.replace(effect.index, effect.project)
        return effect.index

    def _play_tone(self, frequency: int) -> None:
        self._safe_tone_call(self.tones.start, frequency)

    def _stop_tone(self) -> None:
        self._safe_tone_call(self.tones.stop)

    def _safe_tone_call(self, func: Callable[..., None], *args) -> None:
        try:
            func(*args)
        except Exception as exc:
            logger.warning("Audio feedback failed: %s", exc)
