"""
Image downloader for cid.

Downloads the work list concurrently, verifies every file against its
published checksum and records verified files in the history.
Uses asyncio + aiohttp with a fixed pool of worker tasks fed by a queue.

Each file is streamed to a _download_* temp file next to its destination
and hashed on the fly; only a matching file is renamed into place and
committed. Nothing is ever left at the destination path otherwise.
"""

import asyncio
import logging
import os
import ssl
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import aiohttp
import certifi

from ..catalog.models import CloudImage, ImageStatus
from ..config import Proxies
from ..core.checksums import hash_file
from ..core.constants import CHUNK_SIZE, CONCURRENT_REQUESTS
from ..core.files import create_temp_file, remove_file
from ..core.formatting import format_size
from ..errors import DestinationCollision, ItemError, StoreUnavailable
from ..remote.client import USER_AGENT
from .history import HistoryStore
from .summary import Summary

logger = logging.getLogger(__name__)


class TransferCancelled(Exception):
    """Raised inside a transfer when the run is cancelled."""


def claim_destinations(work_list: Sequence[CloudImage]) -> Tuple[List[CloudImage], List[CloudImage]]:
    """
    Give each destination path to the first image (work-list order) wanting it.

    Returns:
        Tuple of (claimed images, colliding images marked failed)
    """
    owners: Dict[str, CloudImage] = {}
    claimed = []
    collisions = []
    for image in work_list:
        key = os.path.normcase(os.path.abspath(image.destination))
        owner = owners.get(key)
        if owner is None:
            owners[key] = image
            claimed.append(image)
            continue
        error = DestinationCollision(f"{image.destination} is also the destination of {owner.url}")
        logger.error("%s: %s", image.name, error)
        image.mark_failed(str(error))
        collisions.append(image)
    return claimed, collisions


class DownloadVerifyPipeline:
    """
    Concurrent download and verification of cloud images.

    Usage:
        pipeline = DownloadVerifyPipeline(store, max_parallel=4)
        summary = pipeline.run(work_list, cancel_event=event)
    """

    def __init__(
        self,
        store: HistoryStore,
        max_parallel: int = CONCURRENT_REQUESTS,
        timeout: Tuple[int, int] = (10, 120),
        chunk_size: int = CHUNK_SIZE,
        proxies: Optional[Proxies] = None,
        user_agent: str = USER_AGENT,
    ):
        self.store = store
        self.max_parallel = max_parallel
        self.timeout = aiohttp.ClientTimeout(connect=timeout[0], sock_read=timeout[1])
        self.chunk_size = chunk_size
        self.proxies = proxies or Proxies()
        self.user_agent = user_agent

    def run(
        self,
        work_list: Sequence[CloudImage],
        max_parallel: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Summary:
        """Process the work list. Blocks until every worker is done."""
        return asyncio.run(self.run_async(work_list, max_parallel, cancel_event))

    async def run_async(
        self,
        work_list: Sequence[CloudImage],
        max_parallel: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Summary:
        """
        Download and verify every image of the work list.

        Args:
            work_list: Images to process, PENDING
            max_parallel: Worker count (defaults to the pipeline setting)
            cancel_event: Set from another thread to stop the run

        Returns:
            Summary of this batch

        Raises:
            StoreUnavailable: If a verified file could not be committed
        """
        max_parallel = max_parallel or self.max_parallel
        if max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")
        cancel_event = cancel_event or threading.Event()

        start = time.time()
        summary = Summary(requested=len(work_list))

        claimed, collisions = claim_destinations(work_list)
        for image in collisions:
            summary.add_failure(image.name, image.reason)

        queue: asyncio.Queue = asyncio.Queue()
        for image in claimed:
            queue.put_nowait(image)

        fatal: List[StoreUnavailable] = []

        if claimed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(
                limit=max_parallel,
                limit_per_host=max_parallel,
                ttl_dns_cache=300,
                ssl=ssl_context,
            )
            headers = {"User-Agent": self.user_agent}
            async with aiohttp.ClientSession(
                timeout=self.timeout, connector=connector, headers=headers, trust_env=False
            ) as session:
                workers = [
                    asyncio.create_task(
                        self._worker(session, queue, summary, cancel_event, fatal),
                        name=f"cid-worker-{i}",
                    )
                    for i in range(min(max_parallel, len(claimed)))
                ]
                await asyncio.gather(*workers)

        summary.not_started = sum(1 for image in work_list if image.status == ImageStatus.PENDING)
        summary.cancelled = cancel_event.is_set()
        summary.finalize(time.time() - start)

        if fatal:
            raise fatal[0]
        return summary

    async def _worker(
        self,
        session: aiohttp.ClientSession,
        queue: asyncio.Queue,
        summary: Summary,
        cancel_event: threading.Event,
        fatal: List[StoreUnavailable],
    ):
        while not cancel_event.is_set():
            try:
                image = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._process(session, image, summary, cancel_event)
            except StoreUnavailable as e:
                logger.error("%s", e)
                if image.status == ImageStatus.DOWNLOADING:
                    image.mark_failed(str(e))
                    summary.add_failure(image.name, str(e))
                fatal.append(e)
                cancel_event.set()
            finally:
                queue.task_done()

    async def _process(
        self,
        session: aiohttp.ClientSession,
        image: CloudImage,
        summary: Summary,
        cancel_event: threading.Event,
    ):
        """Take one image from PENDING to VERIFIED or FAILED."""
        loop = asyncio.get_running_loop()
        image.mark_downloading()

        try:
            expected = await loop.run_in_executor(None, image.expected_checksum)
        except ItemError as e:
            self._fail(image, summary, str(e))
            return

        if image.verify_only:
            await self._verify_in_place(image, expected, summary)
            return

        try:
            fd, temp_path = create_temp_file(image.destination)
        except OSError as e:
            self._fail(image, summary, f"I/O error: {e}")
            return

        try:
            received, actual = await self._transfer(session, image, fd, expected.hasher(), cancel_event)
            summary.bytes_downloaded += received

            if not expected.matches(actual):
                self._fail(image, summary, f"checksum mismatch: expected {expected.digest}, got {actual}")
                return

            os.replace(temp_path, image.destination)
            self.store.commit(image.name, expected)
            image.mark_verified()
            summary.downloaded += 1
            logger.info("Downloaded %s (%s)", image.destination, format_size(received))

        except TransferCancelled:
            self._fail(image, summary, "download cancelled")
        except aiohttp.ClientResponseError as e:
            self._fail(image, summary, f"HTTP {e.status}")
        except asyncio.TimeoutError:
            self._fail(image, summary, "timeout")
        except aiohttp.ClientError as e:
            self._fail(image, summary, f"transport error: {e}")
        except OSError as e:
            self._fail(image, summary, f"I/O error: {e}")
        finally:
            remove_file(temp_path)

    async def _transfer(
        self,
        session: aiohttp.ClientSession,
        image: CloudImage,
        fd: int,
        hasher,
        cancel_event: threading.Event,
    ) -> Tuple[int, str]:
        """Stream one image body into fd. Returns (bytes received, hex digest)."""
        received = 0
        with os.fdopen(fd, "wb") as f:
            proxy = self.proxies.for_url(image.url)
            async with session.get(image.url, proxy=proxy, allow_redirects=True) as response:
                response.raise_for_status()
                logger.debug("GET %s -> %s (%s bytes)", image.url, response.status, response.content_length)
                async for chunk in response.content.iter_chunked(self.chunk_size):
                    if cancel_event.is_set():
                        raise TransferCancelled()
                    hasher.update(chunk)
                    f.write(chunk)
                    received += len(chunk)

                if response.content_length is not None and received < response.content_length:
                    raise aiohttp.ClientPayloadError(
                        f"connection closed after {received} of {response.content_length} bytes"
                    )
        return received, hasher.hexdigest()

    async def _verify_in_place(self, image: CloudImage, expected, summary: Summary):
        """Checksum an existing destination file; never modifies it."""
        loop = asyncio.get_running_loop()
        try:
            actual = await loop.run_in_executor(None, hash_file, Path(image.destination), expected.algorithm)
        except OSError as e:
            self._fail(image, summary, f"I/O error: {e}")
            return

        if not expected.matches(actual.digest):
            self._fail(image, summary, "corrupt")
            return

        self.store.commit(image.name, expected)
        image.mark_verified()
        summary.verified += 1
        logger.info("Verified existing %s", image.destination)

    @staticmethod
    def _fail(image: CloudImage, summary: Summary, reason: str):
        logger.warning("%s: %s", image.name, reason)
        image.mark_failed(reason)
        summary.add_failure(image.name, reason)
