from dataclasses import dataclass, field
from typing import Dict, Optional
import numpy as np

SHAPES = ("sine", "square", "triangle", "sawtooth")
TRIGGER_MODES = ("auto", "normal", "single")
TRIGGER_EDGES = ("rising", "falling")
CHANNELS = ("ch1", "ch2")
COUPLINGS = ("AC", "DC", "GND")
INPUT_RANGES = {"5V": 5.0, "15V": 15.0}   # clip limit, +/- volts

DIVISIONS = 10
POINTS_PER_DIVISION = 100
FRAME_RATE = 60.0                   # scheduler ticks per second
PHASE_WRAP = 2 * np.pi * 100        # accumulators wrap here to bound magnitude
AUTO_TRIGGER_TIMEOUT_FRAMES = 30    # ~0.5 s at 60 ticks/s


class InvalidConfiguration(ValueError):
    """Raised when a configuration would put NaN/Inf into the sample buffers."""


def empty_buffer() -> np.ndarray:
    return np.zeros(0, dtype=np.float64)


@dataclass(frozen=True)
class WaveformParameters:
    frequency: float = 1000.0           # Hz
    amplitude: float = 2.5              # volts
    offset: float = 0.0                 # volts
    shape: str = "sine"                 # one of SHAPES
    noise_fraction: float = 0.02        # 0..1 of amplitude

    def validate(self):
        if not np.isfinite(self.frequency) or self.frequency <= 0:
            raise InvalidConfiguration(f"frequency must be > 0 Hz, got {self.frequency}")
        if not np.isfinite(self.amplitude) or self.amplitude < 0:
            raise InvalidConfiguration(f"amplitude must be >= 0 V, got {self.amplitude}")
        if not np.isfinite(self.offset):
            raise InvalidConfiguration(f"offset must be finite, got {self.offset}")
        if self.shape not in SHAPES:
            raise InvalidConfiguration(f"unknown waveform shape {self.shape!r}")
        if not 0.0 <= self.noise_fraction <= 1.0:
            raise InvalidConfiguration(f"noise fraction must be within [0, 1], got {self.noise_fraction}")


@dataclass
class ChannelConfig:
    enabled: bool = True
    volts_per_division: float = 1.0
    vertical_offset: float = 0.0        # volts
    waveform: WaveformParameters = field(default_factory=WaveformParameters)
    coupling: str = "DC"                # one of COUPLINGS
    input_range: str = "15V"            # key of INPUT_RANGES

    def validate(self):
        if not np.isfinite(self.volts_per_division) or self.volts_per_division <= 0:
            raise InvalidConfiguration(f"volts/div must be > 0, got {self.volts_per_division}")
        if self.coupling not in COUPLINGS:
            raise InvalidConfiguration(f"unknown coupling {self.coupling!r}")
        if self.input_range not in INPUT_RANGES:
            raise InvalidConfiguration(f"unknown input range {self.input_range!r}")
        self.waveform.validate()


@dataclass
class TimebaseConfig:
    time_per_division: float = 0.001    # seconds
    sample_rate: float = 1e6            # Hz

    def validate(self):
        if not np.isfinite(self.time_per_division) or self.time_per_division <= 0:
            raise InvalidConfiguration(f"time/div must be > 0 s, got {self.time_per_division}")
        if not np.isfinite(self.sample_rate) or self.sample_rate <= 0:
            raise InvalidConfiguration(f"sample rate must be > 0 Hz, got {self.sample_rate}")

    def time_step(self, divisions: int, points_per_division: int) -> float:
        total_time = self.time_per_division * divisions
        return total_time / (points_per_division * divisions)

    def capture_window(self, divisions: int) -> float:
        return self.time_per_division * divisions


@dataclass
class TriggerConfig:
    mode: str = "auto"                  # "auto", "normal" or "single"
    edge: str = "rising"                # "rising" or "falling"
    level: float = 0.0                  # volts
    holdoff_seconds: float = 0.0        # seconds
    source: str = "ch1"                 # "ch1" or "ch2"

    def validate(self):
        if self.mode not in TRIGGER_MODES:
            raise InvalidConfiguration(f"unknown trigger mode {self.mode!r}")
        if self.edge not in TRIGGER_EDGES:
            raise InvalidConfiguration(f"unknown trigger edge {self.edge!r}")
        if self.source not in CHANNELS:
            raise InvalidConfiguration(f"unknown trigger source {self.source!r}")
        if not np.isfinite(self.level):
            raise InvalidConfiguration(f"trigger level must be finite, got {self.level}")
        if not np.isfinite(self.holdoff_seconds) or self.holdoff_seconds < 0:
            raise InvalidConfiguration(f"holdoff must be >= 0 s, got {self.holdoff_seconds}")


def default_channels() -> Dict[str, ChannelConfig]:
    return {
        "ch1": ChannelConfig(),
        "ch2": ChannelConfig(waveform=WaveformParameters(frequency=2000.0, amplitude=1.5, shape="square")),
    }


@dataclass
class TriggerRuntimeState:
    is_running: bool = True
    is_triggered: bool = False
    armed: bool = True
    last_trigger_timestamp: Optional[float] = None     # ms, scheduler clock
    no_trigger_frames: int = 0
    phase: Dict[str, float] = field(default_factory=lambda: {ch: 0.0 for ch in CHANNELS})
    triggered_phase: Dict[str, float] = field(default_factory=lambda: {ch: 0.0 for ch in CHANNELS})
    frozen_buffers: Dict[str, np.ndarray] = field(default_factory=dict, repr=False)
    buffers: Dict[str, np.ndarray] = field(
        default_factory=lambda: {ch: empty_buffer() for ch in CHANNELS}, repr=False)


@dataclass
class ScopeModel:
    channels: Dict[str, ChannelConfig] = field(default_factory=default_channels)
    timebase: TimebaseConfig = field(default_factory=TimebaseConfig)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    divisions: int = DIVISIONS
    points_per_division: int = POINTS_PER_DIVISION
    frame_rate: float = FRAME_RATE
    display_channel: str = "ch1"        # channel measured and used by the cursors
    last_payload: Optional[dict] = field(default=None, repr=False)

    def validate(self):
        if int(self.divisions) <= 0:
            raise InvalidConfiguration(f"divisions must be > 0, got {self.divisions}")
        if int(self.points_per_division) <= 0:
            raise InvalidConfiguration(f"points per division must be > 0, got {self.points_per_division}")
        if not np.isfinite(self.frame_rate) or self.frame_rate <= 0:
            raise InvalidConfiguration(f"frame rate must be > 0, got {self.frame_rate}")
        if self.display_channel not in CHANNELS:
            raise InvalidConfiguration(f"unknown display channel {self.display_channel!r}")
        for cfg in self.channels.values():
            cfg.validate()
        self.timebase.validate()
        self.trigger.validate()

    @property
    def total_points(self) -> int:
        return int(self.points_per_division) * int(self.divisions)
