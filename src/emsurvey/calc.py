"""Frequency-domain EM approximation for depth, conductivity and resistivity."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import InvalidReading

# Constants of the coil-pair approximation; kept exactly as calibrated in the field.
PRIMARY_FIELD_TERM = 0.00000232
CONDUCTIVITY_DIVISOR = 0.0000039478
CONDUCTIVITY_SCALE = 1e8
RESISTIVITY_SCALE = 10000.0
SKIN_DEPTH_FACTOR = 503.0 / 5.0


@dataclass(frozen=True)
class DerivedValues:
    conductivity: float
    resistivity: float
    depth: float

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite([self.conductivity, self.resistivity, self.depth])))


def derive(
    frequency: float,
    tx_current: float,
    rx_voltage_mv: float,
    inter_coil: float,
    average_resistivity: float,
) -> DerivedValues:
    """Derive conductivity, resistivity and depth for one reading.

    Parameters
    ----------
    frequency:
        Excitation frequency in Hz.
    tx_current:
        Transmit current in amps. The approximation does not use it; it is
        accepted so callers can pass a full reading.
    rx_voltage_mv:
        Received voltage in millivolts.
    inter_coil:
        Transmitter/receiver coil separation in metres.
    average_resistivity:
        Expected ground resistivity in ohm-metres, used for the depth estimate.

    Returns
    -------
    DerivedValues
        Plain Python floats, evaluated in float64.

    Division by zero yields NaN/inf rather than raising; use
    :func:`require_finite` before storing the result.
    """

    freq = np.float64(frequency)
    coil = np.float64(inter_coil)
    rx_mv = np.float64(rx_voltage_mv)
    avg_res = np.float64(average_resistivity)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        rx_volts = rx_mv / 1000
        ht = (100 * rx_volts) / (4 * coil)
        term1 = 2 * ht
        term2 = (PRIMARY_FIELD_TERM * coil) / coil**3
        conductivity = ((term1 - term2) / CONDUCTIVITY_DIVISOR * freq * coil**2) / CONDUCTIVITY_SCALE
        resistivity = (1 / conductivity) * RESISTIVITY_SCALE
        depth = -SKIN_DEPTH_FACTOR * np.sqrt(avg_res / freq)

    return DerivedValues(
        conductivity=float(conductivity),
        resistivity=float(resistivity),
        depth=float(depth),
    )


def require_finite(values: DerivedValues, *, frequency: float | None = None) -> DerivedValues:
    if not values.is_finite():
        where = f" at {frequency:g} Hz" if frequency is not None else ""
        raise InvalidReading(
            f"Invalid reading{where}: conductivity={values.conductivity!r} "
            f"resistivity={values.resistivity!r} depth={values.depth!r}"
        )
    return values
