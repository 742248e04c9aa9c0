"""
Version resolution for cid.

Sites publish each release line under <base_url>/<version>/ and frequently
add one directory per build below it, named by date (20240501), dated build
(20240501-0042) or increasing serial number (42). The resolver walks such
chains down to the latest build.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from ..errors import ResolutionError, TransportError
from .models import VersionPointer
from ..remote.client import SiteClient
from ..remote.listing import RemoteEntry, join_url

logger = logging.getLogger(__name__)

# YYYYMMDD, YYYYMMDD-NNNN or a plain integer
ORDERED_NAME_RE = re.compile(r"^(?P<major>\d+)(?:-(?P<build>\d{4}))?$")
DATED_BUILD_MAJOR_LENGTH = 8

# Guard against servers that answer every path with the same ordered listing
MAX_DEPTH = 8


def ordering_key(name: str) -> Optional[Tuple[int, int]]:
    """
    Ordering key of a directory name, or None if the name is not ordered.

    '20240501' -> (20240501, -1), '20240501-0042' -> (20240501, 42), '7' -> (7, -1)
    """
    match = ORDERED_NAME_RE.match(name.rstrip("/"))
    if not match:
        return None
    build = match.group("build")
    if build is not None:
        if len(match.group("major")) != DATED_BUILD_MAJOR_LENGTH:
            return None
        return int(match.group("major")), int(build)
    return int(match.group("major")), -1


def select_latest(entries: Sequence[RemoteEntry]) -> Optional[RemoteEntry]:
    """
    Pick the sub-directory with the greatest ordering key.

    Non-ordered sub-directories are ignored when ordered ones exist. Files
    are never candidates. Returns None when no sub-directory is ordered.
    """
    ordered = []
    unordered = []
    for entry in entries:
        if not entry.is_dir:
            continue
        key = ordering_key(entry.name)
        if key is None:
            unordered.append(entry.name)
        else:
            ordered.append((key, entry))

    if not ordered:
        return None

    if unordered:
        logger.warning(
            "Ignoring non-ordered directories next to ordered ones (please review): %s",
            ", ".join(unordered),
        )

    best_key, best = ordered[0]
    for key, entry in ordered[1:]:
        if key > best_key:
            best_key, best = key, entry
    return best


class VersionResolver:
    """Resolves version tokens to the remote directory holding their latest build."""

    def __init__(self, client: SiteClient, max_depth: int = MAX_DEPTH):
        self.client = client
        self.max_depth = max_depth

    def _list(self, url: str) -> List[RemoteEntry]:
        try:
            entries = self.client.list_directory(url)
        except TransportError as e:
            raise ResolutionError(url, str(e)) from e
        if not entries:
            raise ResolutionError(url, "empty directory listing")
        return entries

    def resolve_directory(self, url: str) -> str:
        """
        Follow ordered sub-directories from url down to the latest one.

        Raises:
            ResolutionError: If a listing on the way is unreachable or empty
        """
        current = url
        for _ in range(self.max_depth):
            latest = select_latest(self._list(current))
            if latest is None:
                return current
            logger.info("Latest directory in %s is %s", current, latest.name)
            current = join_url(current, latest.name)

        logger.warning("Stopped following ordered directories at %s after %d levels", current, self.max_depth)
        return current

    def resolve(
        self,
        base_url: str,
        version: str,
        after_segments: Optional[Sequence[str]] = None,
        site: str = "",
    ) -> List[VersionPointer]:
        """
        Resolve one version token.

        After-version segments are appended literally to the resolved
        directory, each one producing its own pointer.

        Args:
            base_url: Site base URL
            version: Version token (e.g. "22.04")
            after_segments: Path segments to append after resolution
            site: Site name recorded in the pointers

        Returns:
            One VersionPointer per after-version segment (or a single one)

        Raises:
            ResolutionError: If the version directory cannot be resolved
        """
        resolved = self.resolve_directory(join_url(base_url, version))
        segments = list(after_segments) if after_segments else [""]

        pointers = []
        for segment in segments:
            url = join_url(resolved, segment)
            logger.info("Resolved %s %s to %s", site or base_url, version, url)
            pointers.append(VersionPointer(site=site, version=version, url=url, after_version=segment))
        return pointers
