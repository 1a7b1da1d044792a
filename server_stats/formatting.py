"""Pure text-formatting helpers shared by the report sections."""
import shutil
from typing import Optional

_UNITS = ['K', 'M', 'G', 'T']


def pct(numerator: float, denominator: float) -> str:
    """Percentage of numerator over denominator with two decimals"""
    if denominator == 0:
        return '0.00'
    return f"{numerator / denominator * 100:.2f}"


def bytes_h(num_bytes: float) -> str:
    """Human-readable byte count (1.5K, 2.0G, ...)"""
    if num_bytes < 1024:
        return f"{int(num_bytes)}B"

    value = num_bytes / 1024
    for unit in _UNITS[:-1]:
        if value < 1024:
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}{_UNITS[-1]}"


def hr(width: Optional[int] = None) -> str:
    """Horizontal rule as wide as the terminal"""
    if width is None:
        width = shutil.get_terminal_size(fallback=(80, 24)).columns
    return '-' * width


def format_uptime(seconds: float) -> str:
    """Render an elapsed time the way `uptime -p` does"""
    minutes_total = int(seconds) // 60
    days, remainder = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = []
    for amount, label in ((days, 'day'), (hours, 'hour')):
        if amount or parts:
            parts.append(f"{amount} {label}" + ('' if amount == 1 else 's'))
    parts.append(f"{minutes} minute" + ('' if minutes == 1 else 's'))
    return 'up ' + ', '.join(parts)


def process_row(pid, name, cpu, mem) -> str:
    """One fixed-width row of the top-processes table"""
    return f"{str(pid):<7} {str(name):<25} {str(cpu):>6} {str(mem):>6}"
