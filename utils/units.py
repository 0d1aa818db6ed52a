"""Engineering-unit strings for the measurement table and cursor readouts."""


def format_value(value: float, unit: str, decimals: int = 2) -> str:
    a = abs(value)
    if a >= 1e6:
        return f"{value / 1e6:.{decimals}f} M{unit}"
    if a >= 1e3:
        return f"{value / 1e3:.{decimals}f} k{unit}"
    if a >= 1:
        return f"{value:.{decimals}f} {unit}"
    if a >= 1e-3:
        return f"{value * 1e3:.{decimals}f} m{unit}"
    if a >= 1e-6:
        return f"{value * 1e6:.{decimals}f} µ{unit}"
    return f"{value:.{decimals}f} {unit}"


def format_time(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:.3f} s"
    if seconds >= 1e-3:
        return f"{seconds * 1e3:.3f} ms"
    if seconds >= 1e-6:
        return f"{seconds * 1e6:.3f} µs"
    return f"{seconds * 1e9:.3f} ns"


def format_voltage(volts: float) -> str:
    if abs(volts) >= 1:
        return f"{volts:.3f} V"
    return f"{volts * 1e3:.3f} mV"


def format_frequency(hz: float) -> str:
    if hz >= 1e6:
        return f"{hz / 1e6:.3f} MHz"
    if hz >= 1e3:
        return f"{hz / 1e3:.3f} kHz"
    return f"{hz:.3f} Hz"


def format_sample_rate(rate: float) -> str:
    if rate >= 1e6:
        return f"{rate / 1e6:.1f} MS/s"
    if rate >= 1e3:
        return f"{rate / 1e3:.1f} kS/s"
    return f"{rate:g} S/s"


def format_volts_per_division(vpd: float) -> str:
    if vpd >= 1:
        return f"{vpd:g} V/div"
    return f"{vpd * 1e3:g} mV/div"


def acquisition_summary(running: bool, sample_rate: float, time_per_division: float,
                        volts_per_division: float) -> str:
    """Status-bar text: run state, sample rate, timebase and vertical scale."""
    return "  |  ".join([
        "Running" if running else "Stopped",
        format_sample_rate(sample_rate),
        f"{format_time(time_per_division)}/div",
        format_volts_per_division(volts_per_division),
    ])
