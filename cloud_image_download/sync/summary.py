"""
Run summary for cid.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class FailedItem:
    name: str
    reason: str


@dataclass(frozen=True)
class ResolutionFailure:
    """A site version that could not be resolved or listed."""
    site: str
    version: str
    reason: str


@dataclass
class Summary:
    """Outcome of one sync run."""
    requested: int = 0
    downloaded: int = 0
    verified: int = 0
    skipped: int = 0
    not_started: int = 0
    failures: List[FailedItem] = field(default_factory=list)
    resolution_errors: List[ResolutionFailure] = field(default_factory=list)
    cancelled: bool = False
    bytes_downloaded: int = 0
    elapsed: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        """True for a complete run without any failure."""
        return not self.failures and not self.resolution_errors and not self.cancelled

    def add_failure(self, name: str, reason: str):
        self.failures.append(FailedItem(name, reason))

    def finalize(self, elapsed: float) -> "Summary":
        """Sort failures by name and record the run duration."""
        self.failures.sort(key=lambda item: (item.name, item.reason))
        self.resolution_errors.sort(key=lambda item: (item.site, item.version))
        self.elapsed = elapsed
        return self
