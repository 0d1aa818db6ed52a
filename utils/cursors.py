from typing import Dict, List, Tuple
import numpy as np

from model.scope_model import DIVISIONS

SNAP_RADIUS_PX = 10.0


def find_extrema(sig) -> Tuple[List[int], List[int]]:
    """Indices of strict local peaks and valleys (end points never qualify)."""
    arr = np.asarray(sig, dtype=float).ravel()
    if arr.size < 3:
        return [], []
    mid = arr[1:-1]
    left = arr[:-2]
    right = arr[2:]
    peaks = np.flatnonzero((mid > left) & (mid > right)) + 1
    valleys = np.flatnonzero((mid < left) & (mid < right)) + 1
    return peaks.tolist(), valleys.tolist()


def _nearest_within(target: float, candidates: np.ndarray, radius: float):
    if candidates.size == 0:
        return None
    dist = np.abs(candidates - target)
    best = int(np.argmin(dist))
    if dist[best] > radius:
        return None
    return best


def snap_time_cursor(x_norm: float, sig, pixel_width: float,
                     snap_radius_px: float = SNAP_RADIUS_PX) -> float:
    """
    Move a vertical (time) cursor onto the nearest peak or valley.

    ``x_norm`` is 0..1 across the screen; extremum i of an n-sample buffer
    sits at pixel (i / n) * pixel_width. Returns ``x_norm`` untouched when no
    extremum lies within ``snap_radius_px``.
    """
    arr = np.asarray(sig, dtype=float).ravel()
    n = arr.size
    if n == 0 or pixel_width <= 0:
        return x_norm
    peaks, valleys = find_extrema(arr)
    idx = np.asarray(peaks + valleys, dtype=int)
    if idx.size == 0:
        return x_norm
    best = _nearest_within(x_norm * pixel_width, idx / n * pixel_width, snap_radius_px)
    if best is None:
        return x_norm
    return float(idx[best]) / n


def voltage_to_pixel_y(volts, pixel_height: float, volts_per_division: float,
                       vertical_offset: float = 0.0, divisions: int = DIVISIONS):
    pixels_per_volt = pixel_height / (volts_per_division * divisions)
    return pixel_height / 2.0 - (np.asarray(volts, dtype=float) + vertical_offset) * pixels_per_volt


def snap_voltage_cursor(y_norm: float, sig, pixel_height: float, volts_per_division: float,
                        vertical_offset: float = 0.0, divisions: int = DIVISIONS,
                        snap_radius_px: float = SNAP_RADIUS_PX) -> float:
    """Horizontal-cursor counterpart of :func:`snap_time_cursor`, matched on pixel Y."""
    arr = np.asarray(sig, dtype=float).ravel()
    if arr.size == 0 or pixel_height <= 0 or volts_per_division <= 0 or divisions <= 0:
        return y_norm
    peaks, valleys = find_extrema(arr)
    idx = np.asarray(peaks + valleys, dtype=int)
    if idx.size == 0:
        return y_norm
    ys = voltage_to_pixel_y(arr[idx], pixel_height, volts_per_division, vertical_offset, divisions)
    best = _nearest_within(y_norm * pixel_height, ys, snap_radius_px)
    if best is None:
        return y_norm
    return float(ys[best]) / pixel_height


def cursor_readout(x1: float, x2: float, y1: float, y2: float, time_per_division: float,
                   volts_per_division: float, divisions: int = DIVISIONS) -> Dict[str, float]:
    """Times and voltages under two time cursors and two voltage cursors (all 0..1 positions)."""
    total_time = time_per_division * divisions
    total_volts = volts_per_division * divisions
    t1 = x1 * total_time
    t2 = x2 * total_time
    delta_t = abs(t2 - t1)
    # y = 0 is the top of the screen
    v1 = (0.5 - y1) * total_volts
    v2 = (0.5 - y2) * total_volts
    return {
        "t1": t1,
        "t2": t2,
        "delta_t": delta_t,
        "frequency_hz": 1.0 / delta_t if delta_t > 0 else 0.0,
        "v1": v1,
        "v2": v2,
        "delta_v": abs(v2 - v1),
    }
