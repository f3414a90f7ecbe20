from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..models import GpsFix

# Hardware address of the supported sensor's Bluetooth serial adapter.
DEVICE_ADDRESS = "3C:8A:1F:9C:45:D4"
DEFAULT_STORE_PATH = Path("survey_results.json")
RESULTS_KEY = "emsurvey:results"


@dataclass
class LinkSettings:
    address: str = DEVICE_ADDRESS
    port: Optional[str] = None  # skip discovery when set
    baudrate: int = 9600
    timeout: float = 5.0


@dataclass
class StorageSettings:
    path: Path = DEFAULT_STORE_PATH
    key: str = RESULTS_KEY


@dataclass
class FeedbackSettings:
    signal_generator: bool = False
    beep: bool = True
    sample_rate: int = 44100


@dataclass
class FieldConfig:
    link: LinkSettings = field(default_factory=LinkSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    feedback: FeedbackSettings = field(default_factory=FeedbackSettings)
    location: Optional[GpsFix] = None


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> FieldConfig:
    """
    Load the field configuration from JSON and apply CLI-style overrides.

    Overrides are dotted `key=value` pairs, e.g.:
        ["link.port=/dev/rfcomm0", "feedback.signal_generator=true"]
    Without a path the built-in defaults are used.
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)

    link_data = merged.get("link") or {}
    storage_data = merged.get("storage") or {}
    feedback_data = merged.get("feedback") or {}
    location_data = merged.get("location")
    port = link_data.get("port")
    return FieldConfig(
        link=LinkSettings(
            address=str(link_data.get("address", DEVICE_ADDRESS)),
            port=str(port) if port else None,
            baudrate=int(link_data.get("baudrate", 9600)),
            timeout=float(link_data.get("timeout", 5.0)),
        ),
        storage=StorageSettings(
            path=Path(storage_data.get("path", DEFAULT_STORE_PATH)),
            key=str(storage_data.get("key", RESULTS_KEY)),
        ),
        feedback=FeedbackSettings(
            signal_generator=bool(feedback_data.get("signal_generator", False)),
            beep=bool(feedback_data.get("beep", True)),
            sample_rate=int(feedback_data.get("sample_rate", 44100)),
        ),
        location=_parse_location(location_data),
    )


def _parse_location(data: Any) -> Optional[GpsFix]:
    if not data:
        return None
    if not isinstance(data, dict) or "latitude" not in data or "longitude" not in data:
        raise ValueError("location requires fields 'latitude' and 'longitude'")
    return GpsFix(latitude=float(data["latitude"]), longitude=float(data["longitude"]))


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    return key, _coerce_value(raw_value.strip())


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    if raw.startswith("/") or ":" in raw:
        # device paths and hardware addresses stay text
        return raw
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
