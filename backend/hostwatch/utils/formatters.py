"""Human-readable formatting for alert messages and notification bodies."""

_SIZES = ["Bytes", "KB", "MB", "GB", "TB", "PB"]


def format_bytes(num_bytes: float, decimals: int = 2) -> str:
    """1536 -> '1.5 KB'"""
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(_SIZES) - 1:
        value /= 1024
        i += 1
    return f"{round(value, max(decimals, 0)):g} {_SIZES[i]}"


def format_percentage(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def format_temperature(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}°C"
