"""
Image catalog: version resolution, checksum sources and candidate building.
"""

from .builder import ImageCatalogBuilder, matches_filters
from .checksum_source import (
    ChecksumSource,
    ChecksumSourceMode,
    is_checksum_file,
    is_checksum_manifest,
    qualify_checksum_source,
)
from .models import CloudImage, ImageStatus, VersionPointer
from .normalize import render_destination, validate_template
from .resolver import VersionResolver, ordering_key, select_latest

__all__ = [
    "ImageCatalogBuilder",
    "matches_filters",
    "ChecksumSource",
    "ChecksumSourceMode",
    "is_checksum_file",
    "is_checksum_manifest",
    "qualify_checksum_source",
    "CloudImage",
    "ImageStatus",
    "VersionPointer",
    "render_destination",
    "validate_template",
    "VersionResolver",
    "ordering_key",
    "select_latest",
]
