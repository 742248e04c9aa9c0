"""
Image catalog building for cid.

Turns a resolved site directory into CloudImage candidates: name filtering,
checksum source qualification and destination naming.
"""

import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Pattern, Sequence, Tuple

from ..core.constants import NAME_DATE_RE
from ..errors import NoChecksumSource, ResolutionError, TransportError
from ..remote.client import SiteClient
from ..remote.listing import RemoteEntry
from .checksum_source import is_checksum_file, qualify_checksum_source
from .models import CloudImage, VersionPointer
from .normalize import render_destination

if TYPE_CHECKING:
    from ..config import Site

logger = logging.getLogger(__name__)


def matches_filters(name: str, include: Pattern, excludes: Sequence[Pattern]) -> bool:
    """
    Tell whether a bare file name is a wanted image.

    The name must match the include filter, must not match any exclude
    filter and must not be a checksum file.
    """
    if not include.search(name) or is_checksum_file(name):
        return False
    for exclude in excludes:
        if exclude.search(name):
            logger.debug("Excluded %s (matches %s)", name, exclude.pattern)
            return False
    return True


def name_date_key(name: str) -> Tuple[bool, str, str]:
    """
    Sort key ordering image names by the build date they embed.

    Undated names sort before dated ones and compare by name among
    themselves: "disk.img" < "arch-20240401.qcow2" < "arch-20240501.qcow2".
    """
    match = NAME_DATE_RE.search(name)
    if match is None:
        return False, "", name
    return True, match.group(0), name


def keep_latest(images: List[CloudImage]) -> List[CloudImage]:
    """
    Keep the newest image of each destination, by date in the file name.

    A template without {name} maps every dated build of a directory to one
    file. Survivors stay in listing order.
    """
    latest: Dict[Path, CloudImage] = {}
    for image in images:
        current = latest.get(image.destination)
        if current is None or name_date_key(image.name) > name_date_key(current.name):
            latest[image.destination] = image

    kept = [image for image in images if latest[image.destination] is image]
    for image in images:
        if latest[image.destination] is not image:
            logger.info("Skipping %s, superseded by %s", image.name, latest[image.destination].name)
    return kept


class ImageCatalogBuilder:
    """Builds the candidate images of one resolved site directory."""

    def __init__(self, client: SiteClient, run_date: Optional[date] = None):
        self.client = client
        self.run_date = run_date or date.today()

    def _list(self, url: str) -> List[RemoteEntry]:
        try:
            return self.client.list_directory(url)
        except TransportError as e:
            raise ResolutionError(url, str(e)) from e

    def build(
        self,
        site: "Site",
        pointer: VersionPointer,
        listing: Optional[Sequence[RemoteEntry]] = None,
    ) -> List[CloudImage]:
        """
        List candidate images for one version pointer.

        Args:
            site: Site configuration (filters, template, destination)
            pointer: Resolved directory to scan
            listing: Already fetched listing of pointer.url (fetched if None)

        Returns:
            CloudImages in listing order, all PENDING. When several images
            share a destination only the newest one is returned

        Raises:
            ResolutionError: If the directory cannot be listed
        """
        if listing is None:
            listing = self._list(pointer.url)

        wanted = [
            entry for entry in listing
            if not entry.is_dir and matches_filters(entry.name, site.include_re, site.exclude_res)
        ]
        if not wanted:
            logger.info("No image matches %r in %s", site.image_name_filter, pointer.url)
            return []

        source = None
        try:
            source = qualify_checksum_source(listing, [entry.name for entry in wanted], self.client)
        except NoChecksumSource as e:
            logger.warning("%s: %s", pointer.url, e)

        images = []
        for entry in wanted:
            relative = render_destination(
                site.normalize,
                version=pointer.version,
                run_date=self.run_date,
                after_version=pointer.after_version,
                name=entry.name,
            )
            image = CloudImage(
                name=entry.name,
                url=entry.url,
                site=site.name,
                pointer=pointer,
                destination=site.destination_path / relative,
                checksum_source=source,
            )
            logger.debug("Candidate %s", image)
            images.append(image)

        images = keep_latest(images)
        logger.info("%d candidate image(s) in %s", len(images), pointer.url)
        return images
