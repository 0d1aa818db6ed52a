import math
from typing import Optional
import numpy as np

from .scope_model import WaveformParameters, TimebaseConfig, InvalidConfiguration, INPUT_RANGES

_default_rng = np.random.default_rng()


def synthesize(params: WaveformParameters, timebase: TimebaseConfig, divisions: int,
               points_per_division: int, phase: float,
               rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Sample one capture window of a periodic signal.

    Sample i sits at t = i * time_step from the left edge of the screen, where
    time_step = (time/div * divisions) / (points/div * divisions). ``phase`` is
    added to the argument of every sample, so successive frames can be slid
    along the waveform by the caller's phase accumulator.

    Noise, when enabled, is an independent uniform draw per sample within
    +/- noise_fraction * amplitude.
    """
    if divisions <= 0 or points_per_division <= 0:
        raise InvalidConfiguration(
            f"divisions and points/div must be > 0, got {divisions}, {points_per_division}")
    params.validate()
    timebase.validate()

    total_points = int(points_per_division) * int(divisions)
    time_step = timebase.time_step(divisions, points_per_division)
    t = np.arange(total_points, dtype=np.float64) * time_step
    arg = 2 * math.pi * params.frequency * t + phase

    if params.shape == "square":
        raw = np.where(np.sin(arg) >= 0, 1.0, -1.0)
    elif params.shape == "triangle":
        raw = (2 / math.pi) * np.arcsin(np.sin(arg))
    elif params.shape == "sawtooth":
        # atan(tan(x/2)) keeps the discontinuities at odd multiples of pi
        raw = (2 / math.pi) * np.arctan(np.tan(arg / 2))
    else:
        raw = np.sin(arg)

    data = raw * params.amplitude + params.offset
    if params.noise_fraction > 0:
        gen = rng if rng is not None else _default_rng
        spread = params.noise_fraction * params.amplitude
        data = data + gen.uniform(-spread, spread, total_points)
    return data


def apply_input_stage(data: np.ndarray, coupling: str = "DC", input_range: str = "15V") -> np.ndarray:
    """Channel front end: GND reads zero, AC drops the buffer mean, then clip to the input range."""
    arr = np.asarray(data, dtype=np.float64)
    if coupling == "GND":
        return np.zeros_like(arr)
    if coupling == "AC" and arr.size:
        arr = arr - float(np.mean(arr))
    limit = INPUT_RANGES[input_range]
    return np.clip(arr, -limit, limit)
