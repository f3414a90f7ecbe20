"""
Station-by-station field acquisition for EM surveys.

The subpackage holds the sensor link client, the acquisition state machine
and the driver that runs it, the project repository, and the configuration
used by the field CLI.
"""

from .acquisition import AcquisitionState, Phase
from .config import DEVICE_ADDRESS, FieldConfig, load_config
from .link import LinkClient, LinkState, Reading, Session
from .repository import JsonFileStore, SurveyRepository
from .session import SurveySession, build_measurement

__all__ = [
    "AcquisitionState",
    "Phase",
    "DEVICE_ADDRESS",
    "FieldConfig",
    "load_config",
    "LinkClient",
    "LinkState",
    "Reading",
    "Session",
    "JsonFileStore",
    "SurveyRepository",
    "SurveySession",
    "build_measurement",
]
