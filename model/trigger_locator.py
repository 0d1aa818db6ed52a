import math
from typing import Optional
import numpy as np

from .scope_model import ChannelConfig, TriggerConfig, TimebaseConfig, DIVISIONS, POINTS_PER_DIVISION
from .synthesizer import synthesize

EPSILON = 1e-12


def angular_frequency(frequency: float) -> float:
    return 2 * math.pi * max(frequency, EPSILON)


def find_crossing_index(data: np.ndarray, level: float, rising: bool = True) -> Optional[int]:
    """Index of the first sample completing a level crossing, or None.

    Rising: prev < level <= curr. Falling: prev > level >= curr.
    """
    arr = np.asarray(data, dtype=float)
    if arr.size < 2:
        return None
    prev = arr[:-1]
    curr = arr[1:]
    if rising:
        hits = np.flatnonzero((prev < level) & (level <= curr))
    else:
        hits = np.flatnonzero((prev > level) & (level >= curr))
    if hits.size == 0:
        return None
    return int(hits[0]) + 1


def _sine_time_offset(channel: ChannelConfig, trigger: TriggerConfig, phase: float) -> Optional[float]:
    wf = channel.waveform
    amplitude = wf.amplitude if abs(wf.amplitude) > EPSILON else EPSILON
    normalized = (trigger.level - wf.offset) / amplitude
    if normalized < -1.0 or normalized > 1.0:
        return None

    if trigger.edge == "rising":
        trigger_phase = math.asin(normalized)
    else:
        trigger_phase = math.pi - math.asin(normalized)

    cycle_phase = phase % (2 * math.pi)
    phase_offset = trigger_phase - cycle_phase
    while phase_offset > math.pi:
        phase_offset -= 2 * math.pi
    while phase_offset <= -math.pi:
        phase_offset += 2 * math.pi
    return phase_offset / angular_frequency(wf.frequency)


def locate_trigger_time_offset(channel: ChannelConfig, trigger: TriggerConfig, phase: float,
                               timebase: Optional[TimebaseConfig] = None,
                               divisions: int = DIVISIONS,
                               points_per_division: int = POINTS_PER_DIVISION,
                               rng: Optional[np.random.Generator] = None) -> Optional[float]:
    """
    Time shift (seconds) that brings a trigger crossing of ``channel`` to the
    left edge of the capture window, or None when the channel never reaches
    the trigger level.

    Sines are solved analytically. Other shapes are sampled over the full
    window and scanned for the first crossing; a crossing at index i gives
    -(i * time_step). Adding ``offset * omega`` to the accumulator phase gives
    the triggered phase for the published buffer.
    """
    if channel.waveform.shape == "sine":
        return _sine_time_offset(channel, trigger, phase)

    timebase = timebase if timebase is not None else TimebaseConfig()
    data = synthesize(channel.waveform, timebase, divisions, points_per_division, phase, rng=rng)
    idx = find_crossing_index(data, trigger.level, rising=(trigger.edge == "rising"))
    if idx is None:
        return None
    return -(idx * timebase.time_step(divisions, points_per_division))
