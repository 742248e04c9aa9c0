"""
Sync run orchestration for cid.

One run:
1. validate the configuration and open the history (fatal errors stop here,
   before any network activity)
2. per site and version: resolve the latest directory, qualify its checksum
   source and build the candidate list
3. drop candidates already in the history
4. download and verify the rest
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import List, Optional, Tuple

from ..catalog.builder import ImageCatalogBuilder
from ..catalog.models import CloudImage
from ..catalog.resolver import VersionResolver
from ..config import RunOptions, Settings, Site
from ..core.files import find_temp_files, remove_file
from ..errors import ResolutionError
from ..remote.client import SiteClient, SiteClientConfig
from .downloader import DownloadVerifyPipeline
from .history import HistoryStore
from .summary import ResolutionFailure, Summary
from .sync_filter import filter_candidates

logger = logging.getLogger(__name__)


def collect_site(
    site: Site,
    resolver: VersionResolver,
    builder: ImageCatalogBuilder,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[List[CloudImage], List[ResolutionFailure]]:
    """
    Build the candidates of every version of one site.

    A version that cannot be resolved or listed is reported and skipped;
    the other versions go on. Once cancel_event is set no further version
    is looked up.
    """
    candidates: List[CloudImage] = []
    failures: List[ResolutionFailure] = []

    for version in site.version_list:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Cancelled, not resolving %s %s", site.name, version)
            break
        try:
            pointers = resolver.resolve(site.base_url, version, site.after_version_url, site=site.name)
            for pointer in pointers:
                candidates.extend(builder.build(site, pointer))
        except ResolutionError as e:
            logger.error("%s %s: %s", site.name, version, e)
            failures.append(ResolutionFailure(site.name, version, str(e)))

    return candidates, failures


def cleanup_stale_downloads(sites: List[Site]) -> int:
    """Remove temp files left behind by an interrupted run."""
    removed = 0
    for site in sites:
        for path in find_temp_files(site.destination_path):
            if remove_file(path):
                logger.info("Removed stale partial download %s", path)
                removed += 1
    return removed


def run_sync(
    settings: Settings,
    options: RunOptions,
    cancel_event: Optional[threading.Event] = None,
    client: Optional[SiteClient] = None,
    run_date: Optional[date] = None,
) -> Summary:
    """
    Run a full sync of every configured site.

    Args:
        settings: Sites and file/environment configuration
        options: Per-run parameters (database, parallelism, verify mode)
        cancel_event: Set from another thread (e.g. SIGINT handler) to stop
        client: HTTP client for listings and checksum files (created if None)
        run_date: Date used for {date} in destination templates (today if None)

    Returns:
        Summary of the run

    Raises:
        ConfigError: If the configuration is invalid
        StoreUnavailable: If the history database cannot be used
    """
    start = time.time()
    cancel_event = cancel_event or threading.Event()

    settings.validate()
    store = HistoryStore.open(options.db_path)

    own_client = client is None
    if own_client:
        client = SiteClient(SiteClientConfig(
            timeout=options.timeout,
            max_retries=options.max_retries,
            proxies=options.proxies.as_dict(),
        ))

    try:
        cleanup_stale_downloads(settings.sites)

        resolver = VersionResolver(client)
        builder = ImageCatalogBuilder(client, run_date=run_date)

        candidates: List[CloudImage] = []
        resolution_errors: List[ResolutionFailure] = []
        workers = max(1, min(options.concurrent_downloads, len(settings.sites)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() keeps configuration order
            for site_candidates, site_failures in executor.map(
                lambda site: collect_site(site, resolver, builder, cancel_event), settings.sites
            ):
                candidates.extend(site_candidates)
                resolution_errors.extend(site_failures)

        filtered = filter_candidates(
            candidates, store, verify_existing=options.verify_existing, cancel_event=cancel_event,
        )

        pipeline = DownloadVerifyPipeline(
            store,
            max_parallel=options.concurrent_downloads,
            proxies=options.proxies,
        )
        summary = pipeline.run(filtered.work, cancel_event=cancel_event)

        summary.requested = len(candidates)
        summary.skipped = len(filtered.owned)
        summary.not_started += len(filtered.unchecked)
        for image, reason in filtered.excluded:
            summary.add_failure(image.name, reason)
        summary.resolution_errors.extend(resolution_errors)
        summary.finalize(time.time() - start)

        logger.info(
            "Run finished: %d downloaded, %d verified, %d failed, %d skipped",
            summary.downloaded, summary.verified, summary.failed, summary.skipped,
        )
        return summary

    finally:
        if own_client:
            client.close()
        store.close()
