# scope_controller.py
import logging
import time
from typing import Callable, Dict, Optional

import numpy as np
from PySide6 import QtCore, QtWidgets

from model.scope_model import (
    ScopeModel, ChannelConfig, TimebaseConfig, TriggerConfig, InvalidConfiguration, CHANNELS,
)
from model.trigger_engine import TriggerEngine
from utils.metrics import measure, METRIC_KEYS
from utils.cursors import snap_time_cursor, snap_voltage_cursor
from utils.units import acquisition_summary

logger = logging.getLogger(__name__)

FRAME_INTERVAL_MS = 16      # ~60 display refreshes per second


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ScopeController:
    def __init__(self, model: ScopeModel, view=None, engine: Optional[TriggerEngine] = None,
                 clock: Optional[Callable[[], float]] = None, interval_ms: int = FRAME_INTERVAL_MS):
        self.model = model
        self.view = view
        self.engine = engine if engine is not None else TriggerEngine(model)
        self.clock = clock if clock is not None else monotonic_ms
        self.last_metrics: Dict[str, float] = {k: 0.0 for k in METRIC_KEYS}

        self.engine.data_ready.connect(self.on_data_ready)
        self.engine.status.connect(self.on_status)
        self.engine.error.connect(self.on_error)
        self.engine.running_changed.connect(self._on_running_changed)

        # host refresh callback
        self.timer = QtCore.QTimer()
        self.timer.setInterval(interval_ms)
        self.timer.timeout.connect(self._on_frame)

        if self.view is not None:
            self.view.toggle_start_action.triggered.connect(self._on_toggle_start)
            self.view.single_action.triggered.connect(self.arm_trigger)
            self.view.reset_action.triggered.connect(self.reset_phase)
            self.view.controls.changed.connect(self._update_model_from_ui)
            self.view.cursor_moved.connect(self._on_cursor_moved)
            trig = self.model.trigger
            self.view.set_trigger_level(trig.level, self.model.channels[trig.source].vertical_offset)
            self.view.log("Simulator ready.")

    # ---- scheduling ----
    def start(self):
        if self.engine.is_running and not self.timer.isActive():
            self.timer.start()
        self._sync_view_state()

    def stop(self):
        self.timer.stop()

    def _on_frame(self):
        self.engine.tick(self.clock())

    def _on_running_changed(self, running: bool):
        if running:
            self.timer.start()
        else:
            self.timer.stop()
        self._sync_view_state()

    def acquisition_text(self) -> str:
        tb = self.model.timebase
        cfg = self.model.channels[self.model.display_channel]
        return acquisition_summary(self.engine.is_running, tb.sample_rate, tb.time_per_division,
                                   cfg.volts_per_division)

    def _sync_view_state(self):
        if self.view is None:
            return
        try:
            self.view.toggle_start_action.setChecked(self.engine.is_running)
            self.view.set_status(self.engine.status_text)
            self.view.set_acquisition_info(self.acquisition_text())
        except Exception as ex:
            logger.debug("view state sync failed: %s", ex)

    # ---- user actions ----
    def _on_toggle_start(self, checked: bool):
        if checked != self.engine.is_running:
            self.toggle_running()

    def toggle_running(self):
        self.engine.toggle_running()

    def reset_phase(self):
        self.engine.reset_phase()
        self.on_status("Phase reset")

    def arm_trigger(self):
        self.engine.arm_trigger()
        self._sync_view_state()

    # ---- configuration ----
    def _apply(self, setter, *args) -> bool:
        try:
            setter(*args)
        except InvalidConfiguration as ex:
            logger.warning("rejected configuration: %s", ex)
            self.engine.error.emit(f"Invalid configuration: {ex}")
            return False
        return True

    def apply_channel_config(self, which: str, config: ChannelConfig) -> bool:
        return self._apply(self.engine.set_channel_config, which, config)

    def apply_timebase_config(self, config: TimebaseConfig) -> bool:
        return self._apply(self.engine.set_timebase_config, config)

    def apply_trigger_config(self, config: TriggerConfig) -> bool:
        ok = self._apply(self.engine.set_trigger_config, config)
        if ok and self.view is not None:
            self.view.set_trigger_level(config.level, self.model.channels[config.source].vertical_offset)
        return ok

    def set_display_channel(self, which: str) -> bool:
        if which not in CHANNELS:
            self.on_error(f"Unknown channel {which!r}")
            return False
        self.model.display_channel = which
        return True

    def _update_model_from_ui(self):
        controls = self.view.controls
        ok = True
        for ch in CHANNELS:
            ok = self.apply_channel_config(ch, controls.get_channel_config(ch)) and ok
        ok = self.apply_timebase_config(controls.get_timebase_config()) and ok
        ok = self.apply_trigger_config(controls.get_trigger_config()) and ok
        ok = self.set_display_channel(controls.get_display_channel()) and ok
        if ok:
            self.view.set_channel_visible({ch: self.model.channels[ch].enabled for ch in CHANNELS})
        self._sync_view_state()
        return ok

    # ---- cursors ----
    def display_buffer(self) -> np.ndarray:
        return self.engine.buffers.get(self.model.display_channel, np.zeros(0))

    def snap_time(self, x_norm: float, pixel_width: float) -> float:
        return snap_time_cursor(x_norm, self.display_buffer(), pixel_width)

    def snap_voltage(self, y_norm: float, pixel_height: float) -> float:
        cfg = self.model.channels[self.model.display_channel]
        return snap_voltage_cursor(y_norm, self.display_buffer(), pixel_height,
                                   cfg.volts_per_division, cfg.vertical_offset, self.model.divisions)

    def _on_cursor_moved(self, kind: str, which: int, norm: float, pixels: float):
        if not self.view.controls.snap_enabled():
            return
        if kind == "time":
            self.view.set_cursor(kind, which, self.snap_time(norm, pixels))
        else:
            self.view.set_cursor(kind, which, self.snap_voltage(norm, pixels))

    # ---- engine signals ----
    @QtCore.Slot(object)
    def on_data_ready(self, payload):
        self.last_metrics = measure(payload.get(self.model.display_channel), self.model.timebase,
                                    self.model.divisions)
        if self.view is None:
            return
        try:
            for ch in CHANNELS:
                self.view.update_curve(ch, payload.get(ch))
            self.view.update_measurement_table(self.last_metrics, self.model.display_channel)
            self.view.set_status(self.engine.status_text)
        except Exception as ex:
            logger.exception("view update failed")
            self.view.log(f"Plot update error: {ex}")

    @QtCore.Slot(str)
    def on_status(self, text: str):
        logger.info("status: %s", text)
        if self.view is not None:
            self.view.log(f"STATUS: {text}")

    @QtCore.Slot(str)
    def on_error(self, text: str):
        logger.error("%s", text)
        if self.view is not None:
            self.view.log(f"ERROR: {text}")
            QtWidgets.QMessageBox.warning(self.view, "Configuration error", text)
