"""Operator feedback collaborators: location fixes and audio cues."""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import numpy as np

from ..models import GpsFix

logger = logging.getLogger(__name__)

BEEP_FREQUENCY_HZ = 1000.0
BEEP_DURATION_SEC = 0.15


class LocationProvider(Protocol):
    def current_fix(self) -> Optional[GpsFix]: ...


class TonePlayer(Protocol):
    def start(self, frequency_hz: float) -> None: ...

    def stop(self) -> None: ...

    def beep(self) -> None: ...


class StaticLocation:
    """Location provider returning a fixed position (or none)."""

    def __init__(self, fix: Optional[GpsFix] = None) -> None:
        self._fix = fix

    def current_fix(self) -> Optional[GpsFix]:
        return self._fix


class SilentTonePlayer:
    def start(self, frequency_hz: float) -> None:
        logger.debug("Tone %.0f Hz requested (silent)", frequency_hz)

    def stop(self) -> None:
        pass

    def beep(self) -> None:
        pass


def sine_wave(frequency_hz: float, duration_sec: float, sample_rate: int, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(int(duration_sec * sample_rate), dtype=np.float32) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency_hz * t)).astype(np.float32)


class SoundDeviceTonePlayer:
    """Plays the excitation tone through the host sound card.

    Used when the phone/laptop acts as the signal generator for the
    transmitter coil. Requires the optional ``sounddevice`` dependency.
    """

    def __init__(self, sample_rate: int = 44100, device: int | str | None = None) -> None:
        self.sample_rate = sample_rate
        self.device = device
        self._sd = _require_sounddevice()
        self._playing = False

    def start(self, frequency_hz: float) -> None:
        self.stop()
        # one second buffer of whole cycles loops without a click
        samples = sine_wave(frequency_hz, 1.0, self.sample_rate)
        self._sd.play(samples, samplerate=self.sample_rate, loop=True, device=self.device)
        self._playing = True
        logger.debug("Tone started at %.0f Hz", frequency_hz)

    def stop(self) -> None:
        if not self._playing:
            return
        self._sd.stop()
        self._playing = False

    def beep(self) -> None:
        samples = sine_wave(BEEP_FREQUENCY_HZ, BEEP_DURATION_SEC, self.sample_rate)
        self._sd.play(samples, samplerate=self.sample_rate, device=self.device)
        # play() has replaced any looping tone
        self._playing = False


def _require_sounddevice() -> Any:
    try:
        import sounddevice as sd  # type: ignore[import]
    except (ImportError, OSError) as exc:
        raise RuntimeError("sounddevice is required for audio feedback (pip install .[audio])") from exc
    return sd
