"""
Sync engine: download history, filtering, download pipeline and run orchestration.
"""

from .downloader import DownloadVerifyPipeline, claim_destinations
from .history import HistoryRecord, HistoryStore
from .runner import run_sync
from .summary import FailedItem, ResolutionFailure, Summary
from .sync_filter import FilterResult, filter_candidates

__all__ = [
    "DownloadVerifyPipeline",
    "claim_destinations",
    "HistoryRecord",
    "HistoryStore",
    "run_sync",
    "FailedItem",
    "ResolutionFailure",
    "Summary",
    "FilterResult",
    "filter_candidates",
]
