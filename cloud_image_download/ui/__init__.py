"""
Terminal output for cid.
"""

from .colors import Colors, paint, use_color
from .report import format_summary

__all__ = ["Colors", "paint", "use_color", "format_summary"]
