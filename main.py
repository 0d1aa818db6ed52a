import argparse
import dataclasses
import logging
import sys
from PySide6 import QtWidgets

from model.scope_model import (
    ScopeModel, TriggerConfig, InvalidConfiguration, SHAPES, TRIGGER_MODES, TRIGGER_EDGES, CHANNELS,
)
from view.main_window import MainWindow
from controller.scope_controller import ScopeController


def build_model(args) -> ScopeModel:
    model = ScopeModel(frame_rate=args.fps, display_channel=args.display)
    model.trigger = TriggerConfig(mode=args.trigger_mode, edge=args.trigger_edge, level=args.trigger_level,
                                  holdoff_seconds=args.holdoff, source=args.trigger_source)
    for ch, freq, shape in (("ch1", args.ch1_freq, args.ch1_shape), ("ch2", args.ch2_freq, args.ch2_shape)):
        cfg = model.channels[ch]
        wf = cfg.waveform
        cfg.waveform = dataclasses.replace(
            wf,
            frequency=freq if freq is not None else wf.frequency,
            shape=shape if shape is not None else wf.shape,
        )
    model.channels["ch2"].enabled = not args.no_ch2
    model.timebase.time_per_division = args.time_div_ms / 1e3
    model.validate()
    return model


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Dual-channel oscilloscope simulator.")
    p.add_argument("--trigger-mode", choices=TRIGGER_MODES, default="auto", help="trigger mode")
    p.add_argument("--trigger-edge", choices=TRIGGER_EDGES, default="rising", help="trigger edge slope")
    p.add_argument("--trigger-level", type=float, default=0.0, help="trigger level (V)")
    p.add_argument("--trigger-source", choices=CHANNELS, default="ch1", help="channel the trigger watches")
    p.add_argument("--holdoff", type=float, default=0.0, help="trigger holdoff in seconds")
    p.add_argument("--ch1-freq", type=float, default=None, help="CH1 frequency (Hz)")
    p.add_argument("--ch1-shape", choices=SHAPES, default=None, help="CH1 waveform shape")
    p.add_argument("--ch2-freq", type=float, default=None, help="CH2 frequency (Hz)")
    p.add_argument("--ch2-shape", choices=SHAPES, default=None, help="CH2 waveform shape")
    p.add_argument("--no-ch2", action="store_true", help="start with CH2 disabled")
    p.add_argument("--time-div-ms", type=float, default=1.0, help="timebase in ms/div")
    p.add_argument("--display", choices=CHANNELS, default="ch1", help="channel used for measurements")
    p.add_argument("--fps", type=float, default=60.0, help="simulated display refresh rate")
    p.add_argument("--log-level", default="INFO", help="python logging level")
    return p.parse_args(argv)


def main():
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        model = build_model(args)
    except InvalidConfiguration as ex:
        print(f"Invalid configuration: {ex}", file=sys.stderr)
        sys.exit(2)

    app = QtWidgets.QApplication(sys.argv)
    main_win = MainWindow(model)
    controller = ScopeController(model, main_win)
    main_win.resize(1200, 700)
    main_win.show()
    controller.start()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
