"""
Error types for cid.

Errors come in two families:
- RunFatalError: the run cannot continue (broken configuration, unusable
  history database). Raised before any further network activity.
- ItemError: scoped to one site version or one image. Contained by the
  runner and reported in the Summary.
"""


class CidError(Exception):
    """Base class for all cid errors."""


# ============================================================================
# Run-fatal errors
# ============================================================================

class RunFatalError(CidError):
    """An error that aborts the whole run."""


class ConfigError(RunFatalError):
    """Configuration is malformed (bad regex, bad template, missing keys)."""


class StoreUnavailable(RunFatalError):
    """The history database cannot be created, opened or written."""


# ============================================================================
# Item-scoped errors
# ============================================================================

class ItemError(CidError):
    """An error limited to one site version or one image."""


class ResolutionError(ItemError):
    """A remote directory listing is unreachable or empty."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class NoChecksumSource(ItemError):
    """No published checksum could be found for an image."""


class ChecksumParseError(ItemError):
    """A checksum manifest or sidecar file could not be parsed."""


class DestinationCollision(ItemError):
    """Two images of the same run resolve to the same destination path."""


class TransportError(ItemError):
    """HTTP, connection or timeout failure while talking to a site."""
