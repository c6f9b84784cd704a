"""Unit conversion and display formatting. Absent values render as ``N/A``."""

from __future__ import annotations

NA = "N/A"


def mhz_to_ghz(mhz: float) -> float:
    return mhz / 1000.0


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9.0 / 5.0 + 32.0


def format_frequency(mhz: float | None, unit: str = "GHz") -> str:
    if mhz is None:
        return NA
    if unit.upper() == "MHZ":
        return f"{mhz:.0f} MHz"
    return f"{mhz_to_ghz(mhz):.2f} GHz"


def format_temperature(celsius: float | None, unit: str = "C") -> str:
    if celsius is None:
        return NA
    if unit.upper() == "F":
        return f"{celsius_to_fahrenheit(celsius):.1f} °F"
    return f"{celsius:.1f} °C"


def format_voltage(volts: float | None) -> str:
    return NA if volts is None else f"{volts:.3f} V"


def format_power(watts: float | None) -> str:
    return NA if watts is None else f"{watts:.2f} W"


def format_percent(value: float | None) -> str:
    return NA if value is None else f"{value:.1f}%"


def format_bytes(size: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    order = 0
    while value >= 1024 and order < len(units) - 1:
        value /= 1024
        order += 1
    return f"{value:.2f} {units[order]}"


def temperature_style(celsius: float | None) -> str:
    if celsius is None:
        return "grey50"
    if celsius >= 80:
        return "red"
    if celsius >= 70:
        return "yellow"
    if celsius >= 50:
        return "green"
    return "blue"


def utilization_style(percent: float | None) -> str:
    if percent is None:
        return "grey50"
    if percent >= 80:
        return "red"
    if percent >= 50:
        return "yellow"
    if percent >= 20:
        return "green"
    return "blue"
