"""
Checksum source qualification for cid.

A site directory publishes checksums in one of two ways:
- ONE_FILE: one manifest (SHA256SUMS, CHECKSUM, ...) covering every image
- EVERY_FILE: one sidecar per image (<image>.sha256, <image>.SHA256SUM, ...)

qualify_checksum_source() inspects a listing and returns a ChecksumSource
that answers "what is the expected checksum of image X" for either mode.
"""

import logging
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..core.checksums import Checksum, parse_checksum_text
from ..core.constants import CHECKSUM_FILE_RE, MANIFEST_NAMES, MANIFEST_SUFFIX_RE, SIDECAR_SUFFIXES
from ..errors import ChecksumParseError, ItemError, NoChecksumSource
from ..remote.client import SiteClient
from ..remote.listing import RemoteEntry

logger = logging.getLogger(__name__)


class ChecksumSourceMode(str, Enum):
    ONE_FILE = "one_file"
    EVERY_FILE = "every_file"


def is_checksum_manifest(name: str) -> bool:
    """Tell whether a file name is an aggregate checksum manifest."""
    return name.upper() in MANIFEST_NAMES or bool(MANIFEST_SUFFIX_RE.search(name))


def is_checksum_file(name: str) -> bool:
    """Tell whether a file name is any kind of checksum file (never an image)."""
    return is_checksum_manifest(name) or bool(CHECKSUM_FILE_RE.search(name))


def sidecar_stem(name: str, listed: Set[str]) -> Optional[str]:
    """
    Name of the listed file that name is the per-image checksum file of.

    listed holds the lower-cased names of the directory files. Returns None
    when name is not <listed file><sidecar suffix>.
    """
    lowered = name.lower()
    for suffix in SIDECAR_SUFFIXES:
        if lowered.endswith(suffix) and lowered[: -len(suffix)] in listed:
            return lowered[: -len(suffix)]
    return None


def _manifest_rank(name: str) -> int:
    """Lower is preferred: SHA-512 manifests first."""
    return 0 if "512" in name else 1


class ChecksumSource:
    """
    Expected checksums for the images of one remote directory.

    ONE_FILE sources download and parse their manifest once, on first
    lookup. EVERY_FILE sources fetch one sidecar per looked-up image.
    A failed fetch is remembered and not retried within the run.
    """

    def __init__(
        self,
        mode: ChecksumSourceMode,
        client: SiteClient,
        manifest_url: str = "",
        sidecars: Optional[Dict[str, str]] = None,
    ):
        self.mode = mode
        self.client = client
        self.manifest_url = manifest_url
        self.sidecars = sidecars or {}
        self._lock = threading.Lock()
        self._manifest: Optional[Dict[str, Checksum]] = None
        self._manifest_error: Optional[ItemError] = None

    @classmethod
    def one_file(cls, client: SiteClient, manifest_url: str) -> "ChecksumSource":
        return cls(ChecksumSourceMode.ONE_FILE, client, manifest_url=manifest_url)

    @classmethod
    def every_file(cls, client: SiteClient, sidecars: Dict[str, str]) -> "ChecksumSource":
        return cls(ChecksumSourceMode.EVERY_FILE, client, sidecars=sidecars)

    def lookup(self, name: str) -> Checksum:
        """
        Expected checksum of the image called name.

        Raises:
            NoChecksumSource: If no checksum is published for name
            ChecksumParseError: If the checksum document is unreadable
            TransportError: If the checksum document cannot be fetched
        """
        if self.mode == ChecksumSourceMode.ONE_FILE:
            return self._lookup_manifest(name)
        return self._lookup_sidecar(name)

    def _load_manifest(self) -> Dict[str, Checksum]:
        with self._lock:
            if self._manifest_error is not None:
                raise self._manifest_error
            if self._manifest is None:
                try:
                    text = self.client.get_text(self.manifest_url, retry=False)
                    parsed = parse_checksum_text(text)
                except ItemError as e:
                    self._manifest_error = e
                    raise
                if parsed.malformed:
                    logger.warning("%s: %d malformed line(s) skipped", self.manifest_url, parsed.malformed)
                logger.info("Loaded %d checksum(s) from %s", len(parsed.entries), self.manifest_url)
                self._manifest = parsed.entries
            return self._manifest

    def _lookup_manifest(self, name: str) -> Checksum:
        checksum = self._load_manifest().get(name)
        if checksum is None:
            raise NoChecksumSource(f"{name} is not listed in {self.manifest_url}")
        return checksum

    def _lookup_sidecar(self, name: str) -> Checksum:
        url = self.sidecars.get(name)
        if url is None:
            raise NoChecksumSource(f"no checksum file published for {name}")

        parsed = parse_checksum_text(self.client.get_text(url, retry=False))
        if name in parsed.entries:
            return parsed.entries[name]
        if parsed.bare is not None:
            return parsed.bare
        if len(parsed.entries) == 1:
            return next(iter(parsed.entries.values()))
        raise ChecksumParseError(f"{url} does not hold a checksum for {name}")

    def __repr__(self) -> str:
        if self.mode == ChecksumSourceMode.ONE_FILE:
            return f"ChecksumSource(one_file, {self.manifest_url})"
        return f"ChecksumSource(every_file, {len(self.sidecars)} sidecar(s))"


def find_sidecars(listing: Iterable[RemoteEntry], candidate_names: Sequence[str]) -> Dict[str, str]:
    """Map each candidate image to the URL of its sidecar checksum file, if any."""
    files = {entry.name.lower(): entry for entry in listing if not entry.is_dir}
    sidecars = {}
    for name in candidate_names:
        for suffix in SIDECAR_SUFFIXES:
            entry = files.get(f"{name}{suffix}".lower())
            if entry is not None:
                sidecars[name] = entry.url
                break
    return sidecars


def qualify_checksum_source(
    listing: Sequence[RemoteEntry],
    candidate_names: Sequence[str],
    client: SiteClient,
) -> ChecksumSource:
    """
    Decide how the directory behind listing publishes checksums.

    A manifest wins over sidecars since it needs a single request. When
    several manifests are listed the SHA-512 one is preferred, then listing
    order.

    Raises:
        NoChecksumSource: If neither a manifest nor any sidecar is listed
    """
    # a.qcow2.SHA256SUM belongs to a.qcow2 whether or not a.qcow2 is wanted
    listed = {entry.name.lower() for entry in listing if not entry.is_dir}
    manifests: List[RemoteEntry] = [
        entry for entry in listing
        if not entry.is_dir and is_checksum_manifest(entry.name) and sidecar_stem(entry.name, listed) is None
    ]

    if manifests:
        chosen = sorted(manifests, key=lambda entry: _manifest_rank(entry.name))[0]
        if len(manifests) > 1:
            logger.info(
                "Several checksum manifests found (%s), using %s",
                ", ".join(entry.name for entry in manifests), chosen.name,
            )
        logger.info("Checksums for %s come from one file: %s", chosen.url.rsplit("/", 1)[0], chosen.name)
        return ChecksumSource.one_file(client, chosen.url)

    sidecars = find_sidecars(listing, candidate_names)
    if sidecars:
        missing = [name for name in candidate_names if name not in sidecars]
        if missing:
            logger.warning("No checksum file for: %s", ", ".join(missing))
        logger.info("Checksums come from %d per-image file(s)", len(sidecars))
        return ChecksumSource.every_file(client, sidecars)

    raise NoChecksumSource("no checksum manifest or per-image checksum file found")
