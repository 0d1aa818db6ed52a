import copy
import logging
import math
from typing import Dict, Optional

import numpy as np
from PySide6 import QtCore

from .scope_model import (
    ScopeModel, ChannelConfig, TimebaseConfig, TriggerConfig, TriggerRuntimeState,
    InvalidConfiguration, CHANNELS, PHASE_WRAP, AUTO_TRIGGER_TIMEOUT_FRAMES, empty_buffer,
)
from .synthesizer import synthesize, apply_input_stage
from .trigger_locator import locate_trigger_time_offset, angular_frequency

logger = logging.getLogger(__name__)


class TriggerEngine(QtCore.QObject):
    """
    Per-frame trigger state machine for both channels.

    The host calls :meth:`tick` once per display refresh with a monotonic
    timestamp in milliseconds. Holdoff is configured in seconds and compared
    against that clock after conversion to milliseconds.
    """
    data_ready = QtCore.Signal(object)      # dict {ch1, ch2, triggered, timestamp}
    status = QtCore.Signal(str)
    error = QtCore.Signal(str)
    running_changed = QtCore.Signal(bool)

    def __init__(self, model: Optional[ScopeModel] = None, rng: Optional[np.random.Generator] = None,
                 parent=None):
        super().__init__(parent)
        self.model = model if model is not None else ScopeModel()
        self.model.validate()
        self.rng = rng
        self.state = TriggerRuntimeState()

    # ---- published state ----
    @property
    def buffers(self) -> Dict[str, np.ndarray]:
        return self.state.buffers

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    @property
    def is_triggered(self) -> bool:
        return self.state.is_triggered

    @property
    def armed(self) -> bool:
        return self.state.armed

    @property
    def state_name(self) -> str:
        s = self.state
        if not s.is_running:
            if self.model.trigger.mode == "single" and not s.armed and s.last_trigger_timestamp is not None:
                return "captured"
            return "idle"
        if s.is_triggered:
            return "triggered"
        if self.model.trigger.mode == "auto":
            return "free-running"
        return "armed"

    @property
    def status_text(self) -> str:
        if self.state.is_triggered:
            return "Trig'd"
        if self.state.armed and self.state.is_running:
            return "Armed"
        return "Stopped"

    # ---- configuration ----
    def set_channel_config(self, which: str, config: ChannelConfig):
        if which not in CHANNELS:
            raise InvalidConfiguration(f"unknown channel {which!r}")
        config.validate()
        self.model.channels[which] = copy.deepcopy(config)
        logger.debug("channel %s configured: %s", which, config)

    def set_timebase_config(self, config: TimebaseConfig):
        config.validate()
        self.model.timebase = copy.deepcopy(config)
        logger.debug("timebase configured: %s", config)

    def set_trigger_config(self, config: TriggerConfig):
        config.validate()
        self.model.trigger = copy.deepcopy(config)
        logger.debug("trigger configured: %s", config)

    # ---- transitions ----
    def set_running(self, running: bool):
        if running == self.state.is_running:
            return
        self.state.is_running = running
        if running:
            self.state.armed = True
        logger.info("acquisition %s", "running" if running else "stopped")
        self.status.emit("Running" if running else "Stopped")
        self.running_changed.emit(running)

    def toggle_running(self):
        self.set_running(not self.state.is_running)

    def reset_phase(self):
        """
        Zero both accumulators and triggered phases, drop the frozen captures,
        clear holdoff and auto counters, and re-arm.

        The running flag is kept, and so are the currently published buffers:
        the display keeps showing the last frame until the next tick publishes.
        In normal mode with no crossing that means the old frame stays up.
        """
        running = self.state.is_running
        buffers = self.state.buffers
        self.state = TriggerRuntimeState(is_running=running)
        self.state.buffers = buffers
        logger.debug("phase and trigger state reset")

    def arm_trigger(self):
        self.state.armed = True
        self.status.emit("Trigger armed")
        if self.model.trigger.mode == "single" and not self.state.is_running:
            self.set_running(True)

    # ---- per-frame work ----
    def _synthesize_all(self, phases: Dict[str, float]) -> Dict[str, np.ndarray]:
        m = self.model
        out = {}
        for ch in CHANNELS:
            cfg = m.channels[ch]
            if not cfg.enabled:
                out[ch] = empty_buffer()
                continue
            data = synthesize(cfg.waveform, m.timebase, m.divisions, m.points_per_division,
                              phases[ch], rng=self.rng)
            out[ch] = apply_input_stage(data, cfg.coupling, cfg.input_range)
        return out

    def _publish(self, buffers: Dict[str, np.ndarray], triggered: bool, timestamp: float):
        self.state.buffers = dict(buffers)
        self.state.is_triggered = triggered
        payload = {
            "ch1": self.state.buffers.get("ch1", empty_buffer()),
            "ch2": self.state.buffers.get("ch2", empty_buffer()),
            "triggered": triggered,
            "timestamp": timestamp,
        }
        self.model.last_payload = payload
        self.data_ready.emit(payload)

    def _advance_phases(self):
        m = self.model
        for ch in CHANNELS:
            step = 2 * math.pi * m.channels[ch].waveform.frequency / m.frame_rate
            self.state.phase[ch] = (self.state.phase[ch] + step) % PHASE_WRAP

    def _eligible(self, timestamp: float) -> bool:
        trig = self.model.trigger
        s = self.state
        if trig.holdoff_seconds > 0 and s.last_trigger_timestamp is not None:
            if timestamp - s.last_trigger_timestamp < trig.holdoff_seconds * 1000.0:
                return False
        if trig.mode == "single" and not s.armed:
            return False
        return True

    def tick(self, timestamp: float):
        """Run one scheduler frame. ``timestamp`` is a monotonic clock in ms."""
        if not self.state.is_running:
            return
        m = self.model
        s = self.state
        trig = m.trigger

        self._advance_phases()
        if not self._eligible(timestamp):
            return

        dt = locate_trigger_time_offset(m.channels[trig.source], trig, s.phase[trig.source],
                                        m.timebase, m.divisions, m.points_per_division, rng=self.rng)
        if dt is not None:
            for ch in CHANNELS:
                omega = angular_frequency(m.channels[ch].waveform.frequency)
                s.triggered_phase[ch] = s.phase[ch] + dt * omega
            buffers = self._synthesize_all(s.triggered_phase)
            s.frozen_buffers = dict(buffers)
            s.last_trigger_timestamp = timestamp
            s.no_trigger_frames = 0
            self._publish(buffers, True, timestamp)
            if trig.mode == "single":
                s.armed = False
                logger.info("single-shot capture at %.1f ms", timestamp)
                self.status.emit("Single capture complete")
                self.set_running(False)
            return

        if trig.mode == "auto":
            s.no_trigger_frames += 1
            if s.no_trigger_frames >= AUTO_TRIGGER_TIMEOUT_FRAMES:
                logger.debug("no trigger for %d frames, free-running", s.no_trigger_frames)
                s.no_trigger_frames = 0
                self._publish(self._synthesize_all(s.phase), False, timestamp)
        elif trig.mode == "normal":
            if s.frozen_buffers:
                self._publish(s.frozen_buffers, False, timestamp)
            else:
                s.is_triggered = False
