"""Survey data model: constants, measurements and projects."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationError

FREQUENCIES_HZ: tuple[int, ...] = (813, 559, 407, 254, 203, 153, 102, 33)

_CONSTANT_FIELDS = {
    "transect": "transect",
    "inter_station": "interStation",
    "average_resistivity": "averageResistivity",
    "inter_coil": "interCoil",
}
# Key names used by the original handheld app records.
_LEGACY_CONSTANT_FIELDS = {
    "transect": "transcat",
    "inter_station": "interstation",
    "average_resistivity": "averageResistivity",
    "inter_coil": "intercoil",
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class SurveyConstants:
    transect: int
    inter_station: float
    average_resistivity: float
    inter_coil: float

    @staticmethod
    def from_mapping(data: Mapping[str, Any]) -> "SurveyConstants":
        """Build constants from operator input.

        Accepts either attribute names (``inter_station``) or the persisted
        camelCase keys (``interStation``). Every missing field is reported in
        one :class:`ValidationError`.
        """
        values: Dict[str, Any] = {}
        missing: List[str] = []
        for attr, key in _CONSTANT_FIELDS.items():
            raw = data.get(attr, data.get(key))
            if _is_blank(raw):
                missing.append(attr)
            else:
                values[attr] = raw
        if missing:
            raise ValidationError(f"Fill all required parameters (missing: {', '.join(missing)})")
        try:
            transect = int(str(values["transect"]).strip())
            floats = {
                attr: float(values[attr])
                for attr in ("inter_station", "average_resistivity", "inter_coil")
            }
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Survey constants must be numeric: {exc}") from exc
        return SurveyConstants(transect=transect, **floats)

    @property
    def first_station(self) -> int:
        return self.transect * 100 + 1

    def distance(self, station_number: int) -> float:
        return (station_number - self.first_station) * self.inter_station

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transect": self.transect,
            "interStation": self.inter_station,
            "averageResistivity": self.average_resistivity,
            "interCoil": self.inter_coil,
        }


@dataclass(frozen=True)
class GpsFix:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Measurement:
    frequency: int
    tx_current: str
    rx_voltage: str
    latitude: str
    longitude: str
    distance: float
    calculated_depth: float
    calculated_conductivity: float
    calculated_resistivity: float
    date: str
    time: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frequency": self.frequency,
            "txCurrent": self.tx_current,
            "rxVoltage": self.rx_voltage,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "distance": self.distance,
            "calculatedDepth": self.calculated_depth,
            "calculatedConductivity": self.calculated_conductivity,
            "calculatedResistivity": self.calculated_resistivity,
            "date": self.date,
            "time": self.time,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Measurement":
        return Measurement(
            frequency=int(data["frequency"]),
            tx_current=str(data["txCurrent"]),
            rx_voltage=str(data["rxVoltage"]),
            latitude=str(data.get("latitude", "0.000000")),
            longitude=str(data.get("longitude", "0.000000")),
            distance=float(data["distance"]),
            calculated_depth=float(data["calculatedDepth"]),
            calculated_conductivity=float(data["calculatedConductivity"]),
            calculated_resistivity=float(data["calculatedResistivity"]),
            date=str(data.get("date", "")),
            time=str(data.get("time", "")),
        )


@dataclass
class Project:
    name: str
    constants: SurveyConstants
    stations: Dict[int, List[Measurement]] = field(default_factory=dict)
    gps: Optional[GpsFix] = None

    def with_station(self, station_number: int, measurements: List[Measurement]) -> "Project":
        """Return a copy with *station_number* set to *measurements*."""
        stations = {number: list(values) for number, values in self.stations.items()}
        stations[station_number] = list(measurements)
        return Project(name=self.name, constants=self.constants, stations=stations, gps=self.gps)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "constants": self.constants.to_dict(),
            "stations": {
                str(number): [measurement.to_dict() for measurement in values]
                for number, values in self.stations.items()
            },
        }
        if self.gps is not None:
            data["gps"] = self.gps.to_dict()
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Project":
        if "constants" in data:
            constants = SurveyConstants.from_mapping(data["constants"])
        elif "common" in data:
            common = data["common"]
            constants = SurveyConstants.from_mapping(
                {attr: common.get(key) for attr, key in _LEGACY_CONSTANT_FIELDS.items()}
            )
        else:
            raise ValidationError("Project record has no survey constants")
        gps_data = data.get("gps")
        gps = None
        if gps_data:
            gps = GpsFix(latitude=float(gps_data["latitude"]), longitude=float(gps_data["longitude"]))
        stations = {
            int(number): [Measurement.from_dict(item) for item in values]
            for number, values in (data.get("stations") or {}).items()
        }
        return Project(name=str(data.get("name", "")), constants=constants, stations=stations, gps=gps)


def format_coordinate(value: Optional[float]) -> str:
    if value is None:
        return "0.000000"
    return f"{value:.6f}"
