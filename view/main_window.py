from typing import Dict, Optional
import numpy as np
from PySide6 import QtCore, QtGui, QtWidgets
import pyqtgraph as pg

from model.scope_model import (
    ScopeModel, ChannelConfig, TimebaseConfig, TriggerConfig, WaveformParameters,
    SHAPES, TRIGGER_MODES, TRIGGER_EDGES, CHANNELS, COUPLINGS, INPUT_RANGES,
)
from utils.cursors import cursor_readout
from utils.units import format_value, format_time, format_voltage, format_frequency

TRACE_COLORS = {"ch1": "#f5d90a", "ch2": "#22d3ee"}
HOLDOFF_OPTIONS = [("Off", 0.0), ("100 µs", 1e-4), ("1 ms", 1e-3), ("10 ms", 1e-2),
                   ("100 ms", 0.1), ("500 ms", 0.5), ("1 s", 1.0)]


class ChannelBox(QtWidgets.QGroupBox):
    def __init__(self, name: str, cfg: ChannelConfig, parent=None):
        super().__init__(name.upper(), parent)
        form = QtWidgets.QFormLayout(self)
        self.enabled_cb = QtWidgets.QCheckBox("Enabled")
        self.enabled_cb.setChecked(cfg.enabled)
        form.addRow(self.enabled_cb)

        self.shape_combo = QtWidgets.QComboBox()
        self.shape_combo.addItems(SHAPES)
        self.shape_combo.setCurrentText(cfg.waveform.shape)
        form.addRow("Shape:", self.shape_combo)

        self.freq_spin = self._spin(0.1, 1e6, cfg.waveform.frequency, 1, " Hz")
        form.addRow("Frequency:", self.freq_spin)
        self.amp_spin = self._spin(0.0, 50.0, cfg.waveform.amplitude, 0.1, " V")
        form.addRow("Amplitude:", self.amp_spin)
        self.offset_spin = self._spin(-50.0, 50.0, cfg.waveform.offset, 0.1, " V")
        form.addRow("Offset:", self.offset_spin)
        self.noise_spin = self._spin(0.0, 1.0, cfg.waveform.noise_fraction, 0.01, "")
        form.addRow("Noise:", self.noise_spin)
        self.vdiv_spin = self._spin(0.001, 100.0, cfg.volts_per_division, 0.1, " V/div")
        form.addRow("Scale:", self.vdiv_spin)
        self.voffset_spin = self._spin(-50.0, 50.0, cfg.vertical_offset, 0.1, " V")
        form.addRow("Position:", self.voffset_spin)
        self.coupling_combo = QtWidgets.QComboBox()
        self.coupling_combo.addItems(COUPLINGS)
        self.coupling_combo.setCurrentText(cfg.coupling)
        form.addRow("Coupling:", self.coupling_combo)
        self.range_combo = QtWidgets.QComboBox()
        for key, limit in INPUT_RANGES.items():
            self.range_combo.addItem(f"±{limit:g} V", key)
        self.range_combo.setCurrentIndex(self.range_combo.findData(cfg.input_range))
        form.addRow("Input range:", self.range_combo)

    @staticmethod
    def _spin(lo, hi, value, step, suffix):
        s = QtWidgets.QDoubleSpinBox()
        s.setDecimals(3)
        s.setRange(lo, hi)
        s.setSingleStep(step)
        s.setValue(value)
        s.setSuffix(suffix)
        return s

    def get_config(self) -> ChannelConfig:
        return ChannelConfig(
            enabled=self.enabled_cb.isChecked(),
            volts_per_division=float(self.vdiv_spin.value()),
            vertical_offset=float(self.voffset_spin.value()),
            coupling=self.coupling_combo.currentText(),
            input_range=self.range_combo.currentData(),
            waveform=WaveformParameters(
                frequency=float(self.freq_spin.value()),
                amplitude=float(self.amp_spin.value()),
                offset=float(self.offset_spin.value()),
                shape=self.shape_combo.currentText(),
                noise_fraction=float(self.noise_spin.value()),
            ),
        )


class ControlsPanel(QtWidgets.QFrame):
    changed = QtCore.Signal()

    def __init__(self, model: ScopeModel, parent=None):
        super().__init__(parent)
        layout = QtWidgets.QVBoxLayout(self)
        self.channel_boxes = {ch: ChannelBox(ch, model.channels[ch]) for ch in CHANNELS}
        for box in self.channel_boxes.values():
            layout.addWidget(box)

        tb = QtWidgets.QGroupBox("Timebase")
        tform = QtWidgets.QFormLayout(tb)
        self.tdiv_spin = ChannelBox._spin(1e-3, 1000.0, model.timebase.time_per_division * 1e3, 0.1, " ms/div")
        tform.addRow("Time:", self.tdiv_spin)
        self.display_combo = QtWidgets.QComboBox()
        self.display_combo.addItems(CHANNELS)
        self.display_combo.setCurrentText(model.display_channel)
        tform.addRow("Measure:", self.display_combo)
        layout.addWidget(tb)

        trig = QtWidgets.QGroupBox("Trigger")
        form = QtWidgets.QFormLayout(trig)
        self.mode_combo = QtWidgets.QComboBox()
        self.mode_combo.addItems(TRIGGER_MODES)
        self.mode_combo.setCurrentText(model.trigger.mode)
        form.addRow("Mode:", self.mode_combo)
        self.edge_combo = QtWidgets.QComboBox()
        self.edge_combo.addItems(TRIGGER_EDGES)
        self.edge_combo.setCurrentText(model.trigger.edge)
        form.addRow("Edge:", self.edge_combo)
        self.source_combo = QtWidgets.QComboBox()
        self.source_combo.addItems(CHANNELS)
        self.source_combo.setCurrentText(model.trigger.source)
        form.addRow("Source:", self.source_combo)
        self.level_spin = ChannelBox._spin(-50.0, 50.0, model.trigger.level, 0.1, " V")
        form.addRow("Level:", self.level_spin)
        self.holdoff_combo = QtWidgets.QComboBox()
        for label, value in HOLDOFF_OPTIONS:
            self.holdoff_combo.addItem(label, value)
        form.addRow("Holdoff:", self.holdoff_combo)
        self.snap_cb = QtWidgets.QCheckBox("Snap cursors to waveform")
        self.snap_cb.setChecked(True)
        form.addRow(self.snap_cb)
        layout.addWidget(trig)

        self.apply_btn = QtWidgets.QPushButton("Apply")
        self.apply_btn.clicked.connect(self.changed.emit)
        layout.addWidget(self.apply_btn)
        layout.addStretch(1)

    def get_channel_config(self, which: str) -> ChannelConfig:
        return self.channel_boxes[which].get_config()

    def get_timebase_config(self) -> TimebaseConfig:
        return TimebaseConfig(time_per_division=float(self.tdiv_spin.value()) / 1e3)

    def get_trigger_config(self) -> TriggerConfig:
        return TriggerConfig(
            mode=self.mode_combo.currentText(),
            edge=self.edge_combo.currentText(),
            level=float(self.level_spin.value()),
            holdoff_seconds=float(self.holdoff_combo.currentData()),
            source=self.source_combo.currentText(),
        )

    def get_display_channel(self) -> str:
        return self.display_combo.currentText()

    def snap_enabled(self) -> bool:
        return self.snap_cb.isChecked()


class MainWindow(QtWidgets.QMainWindow):
    # kind ("time"/"voltage"), cursor number, normalized position, plot size in pixels
    cursor_moved = QtCore.Signal(str, int, float, float)

    def __init__(self, model: ScopeModel, parent=None):
        super().__init__(parent)
        self.model = model
        self.setWindowTitle("Dual-Channel Oscilloscope Simulator")

        toolbar = self.addToolBar("Acquisition")
        self.toggle_start_action = QtGui.QAction("Run/Stop", self)
        self.toggle_start_action.setCheckable(True)
        self.single_action = QtGui.QAction("Single / Arm", self)
        self.reset_action = QtGui.QAction("Reset", self)
        for act in (self.toggle_start_action, self.single_action, self.reset_action):
            toolbar.addAction(act)
        self.status_label = QtWidgets.QLabel("Stopped")
        toolbar.addSeparator()
        toolbar.addWidget(self.status_label)
        toolbar.addSeparator()
        self.acquisition_label = QtWidgets.QLabel("")
        toolbar.addWidget(self.acquisition_label)

        self.plot_widget = pg.PlotWidget(background="k")
        self.plot_widget.showGrid(x=True, y=True, alpha=0.3)
        self.plot_widget.setMouseEnabled(x=False, y=False)
        self.curve_items = {ch: self.plot_widget.plot(pen=pg.mkPen(TRACE_COLORS[ch], width=2), name=ch.upper())
                            for ch in CHANNELS}
        self.trigger_line = pg.InfiniteLine(angle=0, movable=False,
                                            pen=pg.mkPen("#f97316", style=QtCore.Qt.PenStyle.DashLine))
        self.plot_widget.addItem(self.trigger_line)

        self.time_cursors = [pg.InfiniteLine(angle=90, movable=True, pen="m") for _ in range(2)]
        self.volt_cursors = [pg.InfiniteLine(angle=0, movable=True, pen="c") for _ in range(2)]
        for i, line in enumerate(self.time_cursors):
            line.sigPositionChangeFinished.connect(lambda _l, i=i: self._on_cursor_dragged("time", i))
            self.plot_widget.addItem(line)
        for i, line in enumerate(self.volt_cursors):
            line.sigPositionChangeFinished.connect(lambda _l, i=i: self._on_cursor_dragged("voltage", i))
            self.plot_widget.addItem(line)

        self.controls = ControlsPanel(model)
        self.param_table = QtWidgets.QTableWidget(0, 2)
        self.param_table.setHorizontalHeaderLabels(["Measurement", "Value"])
        self.param_table.horizontalHeader().setStretchLastSection(True)
        self.cursor_label = QtWidgets.QLabel("")
        self.log_view = QtWidgets.QPlainTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setMaximumBlockCount(500)

        right = QtWidgets.QVBoxLayout()
        right.addWidget(self.plot_widget, 3)
        right.addWidget(self.param_table, 1)
        right.addWidget(self.cursor_label)
        right.addWidget(self.log_view, 1)
        central = QtWidgets.QWidget()
        layout = QtWidgets.QHBoxLayout(central)
        scroll = QtWidgets.QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(self.controls)
        scroll.setMaximumWidth(320)
        layout.addWidget(scroll)
        layout.addLayout(right, 1)
        self.setCentralWidget(central)

        self._reset_axes()
        self._place_default_cursors()

    # ---- geometry helpers ----
    def _window_seconds(self) -> float:
        return self.model.timebase.time_per_division * self.model.divisions

    def _volts_span(self) -> float:
        cfg = self.model.channels[self.model.display_channel]
        return cfg.volts_per_division * self.model.divisions

    def _reset_axes(self):
        half = self._volts_span() / 2.0
        self.plot_widget.setXRange(0.0, self._window_seconds(), padding=0)
        self.plot_widget.setYRange(-half, half, padding=0)

    def _place_default_cursors(self):
        for line, x in zip(self.time_cursors, (0.25, 0.75)):
            line.setValue(x * self._window_seconds())
        for line, y in zip(self.volt_cursors, (0.25, 0.75)):
            line.setValue((0.5 - y) * self._volts_span())

    def _cursor_norms(self):
        xs = [line.value() / self._window_seconds() for line in self.time_cursors]
        ys = [0.5 - line.value() / self._volts_span() for line in self.volt_cursors]
        return xs, ys

    # ---- controller API ----
    def _on_cursor_dragged(self, kind: str, which: int):
        xs, ys = self._cursor_norms()
        rect = self.plot_widget.getViewBox().sceneBoundingRect()
        if kind == "time":
            self.cursor_moved.emit(kind, which, xs[which], rect.width())
        else:
            self.cursor_moved.emit(kind, which, ys[which], rect.height())
        self._update_cursor_label()

    def set_cursor(self, kind: str, which: int, norm: float):
        if kind == "time":
            self.time_cursors[which].setValue(norm * self._window_seconds())
        else:
            self.volt_cursors[which].setValue((0.5 - norm) * self._volts_span())
        self._update_cursor_label()

    def _update_cursor_label(self):
        xs, ys = self._cursor_norms()
        cfg = self.model.channels[self.model.display_channel]
        r = cursor_readout(xs[0], xs[1], ys[0], ys[1], self.model.timebase.time_per_division,
                           cfg.volts_per_division, self.model.divisions)
        self.cursor_label.setText(
            f"Δt {format_time(r['delta_t'])}  1/Δt {format_frequency(r['frequency_hz'])}  "
            f"ΔV {format_voltage(r['delta_v'])}")

    def update_curve(self, key: str, data: Optional[np.ndarray]):
        arr = np.asarray(data if data is not None else [], dtype=float)
        if arr.size == 0:
            self.curve_items[key].setData([], [])
            return
        offset = self.model.channels[key].vertical_offset
        # traces share the display channel's scale
        scale = (self.model.channels[self.model.display_channel].volts_per_division
                 / self.model.channels[key].volts_per_division)
        t = np.arange(arr.size) * (self._window_seconds() / arr.size)
        self.curve_items[key].setData(t, (arr + offset) * scale)

    def set_channel_visible(self, visible: Dict[str, bool]):
        for ch, flag in visible.items():
            self.curve_items[ch].setVisible(flag)
        self._reset_axes()

    def set_trigger_level(self, level: float, vertical_offset: float = 0.0):
        self.trigger_line.setValue(level + vertical_offset)

    def set_status(self, text: str):
        self.status_label.setText(text)

    def set_acquisition_info(self, text: str):
        self.acquisition_label.setText(text)

    def update_measurement_table(self, metrics: Dict[str, float], channel: str):
        rows = [
            ("Vmax", format_value(metrics["v_max"], "V")),
            ("Vmin", format_value(metrics["v_min"], "V")),
            ("Vpp", format_value(metrics["v_pp"], "V")),
            ("Vrms", format_value(metrics["v_rms"], "V")),
            ("Freq", format_value(metrics["frequency_hz"], "Hz")),
            ("Period", format_value(metrics["period_s"], "s")),
            ("Duty", f"{metrics['duty_cycle']:.1f} %"),
        ]
        self.param_table.setRowCount(len(rows))
        for r, (name, value) in enumerate(rows):
            self.param_table.setItem(r, 0, QtWidgets.QTableWidgetItem(f"{channel.upper()} {name}"))
            self.param_table.setItem(r, 1, QtWidgets.QTableWidgetItem(value))

    def log(self, text: str):
        ts = QtCore.QDateTime.currentDateTime().toString("hh:mm:ss.zzz")
        self.log_view.appendPlainText(f"[{ts}] {text}")
