from typing import Dict, Mapping
import numpy as np

from model.scope_model import TimebaseConfig, DIVISIONS

METRIC_KEYS = ("v_max", "v_min", "v_pp", "v_rms", "frequency_hz", "period_s", "duty_cycle")


def measure(sig, timebase: TimebaseConfig, divisions: int = DIVISIONS) -> Dict[str, float]:
    """
    Scalar measurements for one published buffer.
    - Vmax/Vmin/Vpp/Vrms on the raw samples (RMS includes DC).
    - Frequency: sign changes of (x - mean) between neighbours, two per
      period, over the capture window time/div * divisions.
    - Duty cycle: percentage of samples above the mean.
    An empty buffer gives zeros everywhere.
    """
    metrics = {k: 0.0 for k in METRIC_KEYS}
    if sig is None:
        return metrics
    raw = np.asarray(sig, dtype=float).ravel()
    n = raw.size
    if n == 0:
        return metrics

    vmax = float(np.max(raw))
    vmin = float(np.min(raw))
    rms = float(np.sqrt(np.mean(raw ** 2)))

    centered = raw - float(np.mean(raw))
    crossings = int(np.count_nonzero(centered[:-1] * centered[1:] < 0))
    window = timebase.capture_window(divisions)
    freq = (crossings / 2.0) / window if window > 0 else 0.0
    period = 1.0 / freq if freq > 0 else 0.0
    duty = 100.0 * float(np.count_nonzero(centered > 0)) / n

    metrics["v_max"] = vmax
    metrics["v_min"] = vmin
    metrics["v_pp"] = vmax - vmin
    metrics["v_rms"] = rms
    metrics["frequency_hz"] = float(freq)
    metrics["period_s"] = float(period)
    metrics["duty_cycle"] = duty
    return metrics


def measure_channels(buffers: Mapping[str, np.ndarray], timebase: TimebaseConfig,
                     divisions: int = DIVISIONS) -> Dict[str, Dict[str, float]]:
    return {ch: measure(buf, timebase, divisions) for ch, buf in buffers.items()}
