"""
Acquisition state machine.

The survey workflow is an immutable :class:`AcquisitionState` value and a set
of transition functions. Transitions never touch the device or storage; the
ones that need I/O return the effects to run alongside the new state, and
:class:`emsurvey.field.session.SurveySession` executes them.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..errors import ConstantsFrozen, IncompleteStation, InvalidTransition, ValidationError
from ..models import FREQUENCIES_HZ, GpsFix, Measurement, Project, SurveyConstants


class Phase(str, enum.Enum):
    SETUP = "setup"
    ACQUIRING = "acquiring"
    STATION_COMPLETE = "station_complete"
    FINISHED = "finished"


@dataclass(frozen=True)
class Connect:
    pass


@dataclass(frozen=True)
class Exchange:
    frequency: int


@dataclass(frozen=True)
class PlayTone:
    frequency: int


@dataclass(frozen=True)
class PersistStation:
    project: Project
    station_number: int
    index: Optional[int]  # None appends a new project record


Effect = Union[Connect, Exchange, PlayTone, PersistStation]


@dataclass(frozen=True)
class AcquisitionState:
    phase: Phase = Phase.SETUP
    name: str = ""
    constants: Optional[SurveyConstants] = None
    project: Optional[Project] = None
    station_number: int = 0
    frequency_index: int = 0
    measurements: Mapping[int, Measurement] = field(default_factory=dict)
    project_index: Optional[int] = None

    @property
    def frequency(self) -> int:
        return FREQUENCIES_HZ[self.frequency_index]

    @property
    def missing_frequencies(self) -> List[int]:
        return [freq for freq in FREQUENCIES_HZ if freq not in self.measurements]

    @property
    def is_last_frequency(self) -> bool:
        return self.frequency_index == len(FREQUENCIES_HZ) - 1


def _require(state: AcquisitionState, *phases: Phase) -> None:
    if state.phase not in phases:
        allowed = ", ".join(phase.value for phase in phases)
        raise InvalidTransition(f"Not allowed while {state.phase.value} (requires {allowed})")


def new_survey() -> AcquisitionState:
    return AcquisitionState()


def configure(state: AcquisitionState, name: str, constants: Optional[SurveyConstants]) -> AcquisitionState:
    if state.phase is not Phase.SETUP:
        raise ConstantsFrozen("Survey constants are frozen once acquisition has started")
    return replace(state, name=name, constants=constants)


def begin(state: AcquisitionState, gps: Optional[GpsFix] = None) -> AcquisitionState:
    _require(state, Phase.SETUP)
    missing = []
    if not state.name.strip():
        missing.append("name")
    if state.constants is None:
        missing.append("constants")
    if missing:
        raise ValidationError(f"Fill all required parameters (missing: {', '.join(missing)})")
    assert state.constants is not None
    project = Project(name=state.name.strip(), constants=state.constants, gps=gps)
    return replace(
        state,
        phase=Phase.ACQUIRING,
        project=project,
        station_number=state.constants.first_station,
        frequency_index=0,
        measurements={},
    )


def resume(project: Project, station_number: int, project_index: int) -> AcquisitionState:
    """Re-enter acquisition of a persisted project at *station_number*.

    The named station is regenerated from scratch; earlier readings for it are
    replaced when the station is completed again.
    """
    return AcquisitionState(
        phase=Phase.ACQUIRING,
        name=project.name,
        constants=project.constants,
        project=project,
        station_number=station_number,
        frequency_index=0,
        measurements={},
        project_index=project_index,
    )


def request_fetch(
    state: AcquisitionState, connected: bool, signal_generator: bool = False
) -> Tuple[AcquisitionState, List[Effect]]:
    _require(state, Phase.ACQUIRING)
    if not connected:
        return state, [Connect()]
    effects: List[Effect] = []
    if signal_generator:
        effects.append(PlayTone(state.frequency))
    effects.append(Exchange(state.frequency))
    return state, effects


def record(state: AcquisitionState, measurement: Measurement) -> AcquisitionState:
    _require(state, Phase.ACQUIRING)
    if measurement.frequency not in FREQUENCIES_HZ:
        raise ValidationError(f"Unsupported frequency {measurement.frequency} Hz")
    measurements: Dict[int, Measurement] = dict(state.measurements)
    measurements[measurement.frequency] = measurement
    return replace(state, measurements=measurements)


def advance(state: AcquisitionState, direction: int) -> AcquisitionState:
    _require(state, Phase.ACQUIRING)
    step = 1 if direction > 0 else -1 if direction < 0 else 0
    index = min(max(state.frequency_index + step, 0), len(FREQUENCIES_HZ) - 1)
    return replace(state, frequency_index=index)


def complete_station(state: AcquisitionState) -> Tuple[AcquisitionState, List[Effect]]:
    _require(state, Phase.ACQUIRING)
    if set(state.measurements) != set(FREQUENCIES_HZ):
        raise IncompleteStation(state.missing_frequencies)
    assert state.project is not None
    ordered = [state.measurements[freq] for freq in FREQUENCIES_HZ]
    project = state.project.with_station(state.station_number, ordered)
    pending = replace(state, phase=Phase.STATION_COMPLETE, project=project)
    return pending, [PersistStation(project=project, station_number=state.station_number, index=state.project_index)]


def station_saved(state: AcquisitionState, index: int) -> AcquisitionState:
    _require(state, Phase.STATION_COMPLETE)
    return replace(
        state,
        phase=Phase.ACQUIRING,
        station_number=state.station_number + 1,
        frequency_index=0,
        measurements={},
        project_index=index,
    )


def finish(state: AcquisitionState) -> AcquisitionState:
    return replace(state, phase=Phase.FINISHED)
