"""
Catalog data types for cid.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..core.checksums import Checksum
from ..errors import NoChecksumSource

if TYPE_CHECKING:
    from .checksum_source import ChecksumSource


class ImageStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    VERIFIED = "verified"
    FAILED = "failed"


# One-directional state machine
_TRANSITIONS = {
    ImageStatus.PENDING: {ImageStatus.DOWNLOADING, ImageStatus.FAILED},
    ImageStatus.DOWNLOADING: {ImageStatus.VERIFIED, ImageStatus.FAILED},
    ImageStatus.VERIFIED: set(),
    ImageStatus.FAILED: set(),
}


@dataclass(frozen=True)
class VersionPointer:
    """A version token resolved to a concrete remote directory for this run."""
    site: str
    version: str
    url: str
    after_version: str = ""


@dataclass(eq=False)
class CloudImage:
    """An image candidate: where it comes from, where it goes, how far it got."""
    name: str
    url: str
    site: str
    pointer: VersionPointer
    destination: Path
    checksum_source: Optional["ChecksumSource"] = None
    checksum: Optional[Checksum] = None
    verify_only: bool = False
    status: ImageStatus = ImageStatus.PENDING
    reason: str = ""

    @property
    def version(self) -> str:
        return self.pointer.version

    @property
    def after_version(self) -> str:
        return self.pointer.after_version

    def expected_checksum(self) -> Checksum:
        """
        Published checksum of this image, fetched on first use.

        Raises:
            NoChecksumSource: If the site publishes no checksum for it
            ChecksumParseError: If the checksum document is unreadable
            TransportError: If the checksum document cannot be fetched
        """
        if self.checksum is None:
            if self.checksum_source is None:
                raise NoChecksumSource(f"no checksum published for {self.name}")
            self.checksum = self.checksum_source.lookup(self.name)
        return self.checksum

    def _move_to(self, status: ImageStatus):
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"{self.name}: cannot go from {self.status.value} to {status.value}")
        self.status = status

    def mark_downloading(self):
        self._move_to(ImageStatus.DOWNLOADING)

    def mark_verified(self):
        self._move_to(ImageStatus.VERIFIED)

    def mark_failed(self, reason: str):
        self._move_to(ImageStatus.FAILED)
        self.reason = reason

    def __str__(self) -> str:
        if self.checksum is None:
            return f"{self.url} -> {self.destination}"
        return f"{self.url} -> {self.destination} ({self.checksum})"
