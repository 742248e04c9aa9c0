"""
Shared color definitions for terminal output.

Colors are disabled when NO_COLOR is set (https://no-color.org) or when
the stream is not a terminal.
"""

import os
import sys
from typing import Optional, TextIO


class Colors:
    RESET = "\x1b[0m"
    BOLD = "\x1b[1m"
    DIM = "\x1b[2m"
    GREEN = "\x1b[38;2;74;222;128m"
    RED = "\x1b[38;2;248;113;113m"
    YELLOW = "\x1b[38;2;250;204;21m"
    INDIGO = "\x1b[38;2;99;102;241m"
    MUTED = "\x1b[38;2;148;163;184m"


def use_color(stream: Optional[TextIO] = None, environ=None) -> bool:
    """Tell whether ANSI colors should be written to stream."""
    environ = os.environ if environ is None else environ
    if environ.get("NO_COLOR"):
        return False
    stream = stream or sys.stdout
    return hasattr(stream, "isatty") and stream.isatty()


def paint(text: str, color: str, enabled: bool = True) -> str:
    if not enabled:
        return text
    return f"{color}{text}{Colors.RESET}"
