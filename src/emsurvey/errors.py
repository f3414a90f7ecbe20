"""Exception hierarchy shared by the acquisition core."""
from __future__ import annotations

from typing import Iterable


class SurveyError(Exception):
    """Base class for every recoverable survey error."""


class ValidationError(SurveyError, ValueError):
    """Operator input or workflow precondition failed."""


class IncompleteStation(ValidationError):
    def __init__(self, missing: Iterable[int]):
        self.missing = sorted(missing, reverse=True)
        freqs = ", ".join(f"{freq} Hz" for freq in self.missing)
        super().__init__(f"Complete all frequencies before saving (missing: {freqs})")


class ConstantsFrozen(ValidationError):
    """Survey constants cannot change once acquisition has started."""


class InvalidTransition(ValidationError):
    """Operation not allowed in the current acquisition phase."""


class LinkError(SurveyError):
    """Transport-level failure talking to the sensor."""


class DeviceNotFound(LinkError):
    pass


class ConnectionFailed(LinkError):
    pass


class LinkTimeout(LinkError, TimeoutError):
    pass


class MalformedResponse(LinkError):
    pass


class NotConnected(LinkError):
    pass


class ExchangeInProgress(LinkError):
    pass


class InvalidReading(SurveyError):
    """Derived quantities are not finite and must not be stored."""


class RepositoryError(SurveyError):
    """Durable storage could not be read or written."""


class IndexOutOfRange(RepositoryError, IndexError):
    pass
