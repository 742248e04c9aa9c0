"""
Core building blocks for cid: constants, checksums, files and formatting.
"""

from .checksums import Algorithm, Checksum, ParsedChecksums, hash_file, parse_checksum_text
from .files import expand_path
from .formatting import format_duration, format_size, sanitize_filename

__all__ = [
    "Algorithm",
    "Checksum",
    "ParsedChecksums",
    "hash_file",
    "parse_checksum_text",
    "expand_path",
    "format_duration",
    "format_size",
    "sanitize_filename",
]
