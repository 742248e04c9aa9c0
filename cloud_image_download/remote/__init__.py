"""
Remote site access: HTTP client and directory listing parsing.
"""

from .client import SiteClient, SiteClientConfig, USER_AGENT
from .listing import RemoteEntry, directory_url, join_url, parse_listing

__all__ = [
    "SiteClient",
    "SiteClientConfig",
    "USER_AGENT",
    "RemoteEntry",
    "directory_url",
    "join_url",
    "parse_listing",
]
