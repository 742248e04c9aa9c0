"""
Candidate filtering for cid.

Decides which catalog candidates still need work by comparing their
published checksum against the download history.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..catalog.models import CloudImage
from ..errors import ItemError
from .history import HistoryStore

logger = logging.getLogger(__name__)


@dataclass
class FilterResult:
    """
    Candidates split by what the run has to do with them.

    work: images to download (or to verify in place when verify_only)
    owned: images whose (name, checksum) is already in the history
    excluded: (image, reason) pairs whose checksum could not be determined
    unchecked: images left alone because the run was cancelled
    """
    work: List[CloudImage] = field(default_factory=list)
    owned: List[CloudImage] = field(default_factory=list)
    excluded: List[Tuple[CloudImage, str]] = field(default_factory=list)
    unchecked: List[CloudImage] = field(default_factory=list)


def filter_candidates(
    candidates: Sequence[CloudImage],
    store: HistoryStore,
    verify_existing: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> FilterResult:
    """
    Build the work list from the catalog candidates.

    Args:
        candidates: Images from the catalog builder, in catalog order
        store: Download history
        verify_existing: Check already present destination files in place
            instead of downloading them again
        cancel_event: Once set, the remaining candidates are not looked up

    Returns:
        FilterResult, each list keeping catalog order
    """
    result = FilterResult()

    for index, image in enumerate(candidates):
        if cancel_event is not None and cancel_event.is_set():
            result.unchecked.extend(candidates[index:])
            logger.info("Cancelled, %d candidate(s) not checked", len(result.unchecked))
            break

        try:
            checksum = image.expected_checksum()
        except ItemError as e:
            logger.warning("Skipping %s: %s", image.name, e)
            image.mark_failed(str(e))
            result.excluded.append((image, str(e)))
            continue

        if store.exists(image.name, checksum):
            logger.debug("Already have %s (%s)", image.name, checksum)
            result.owned.append(image)
            continue

        if verify_existing and image.destination.is_file():
            logger.info("Will verify existing %s", image.destination)
            image.verify_only = True

        result.work.append(image)

    logger.info(
        "%d to process, %d already synced, %d without checksum",
        len(result.work), len(result.owned), len(result.excluded),
    )
    return result
