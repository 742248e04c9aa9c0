"""
HTTP client for mirror sites.

Fetches directory listings and checksum documents. Image bodies are not
fetched here (see DownloadVerifyPipeline for that).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from .. import __version__
from ..errors import TransportError
from .listing import RemoteEntry, directory_url, parse_listing

logger = logging.getLogger(__name__)

USER_AGENT = f"cid/{__version__}"


@dataclass
class SiteClientConfig:
    """Configuration for SiteClient."""
    timeout: int = 60
    max_retries: int = 3
    proxies: Dict[str, str] = field(default_factory=dict)
    user_agent: str = USER_AGENT


class SiteClient:
    """
    Mirror site client.

    Handles listing remote directories and reading small text documents.
    Proxies come from the config only; the process environment is ignored.
    """

    def __init__(self, config: Optional[SiteClientConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or SiteClientConfig()
        self.session = session or requests.Session()
        self.session.trust_env = False
        self.session.headers.update({"User-Agent": self.config.user_agent, "Accept": "*/*"})
        if self.config.proxies:
            self.session.proxies.update(self.config.proxies)
        self._requests = 0

    @property
    def request_count(self) -> int:
        """Total HTTP requests made by this client."""
        return self._requests

    def _request_with_retry(self, method: str, url: str, retries: Optional[int] = None, **kwargs) -> requests.Response:
        """
        Make a request, retrying timeouts, connection errors and 5xx/429 answers.

        Raises:
            TransportError: When the request ultimately fails
        """
        timeout = kwargs.pop("timeout", self.config.timeout)
        attempts = max(1, retries if retries is not None else self.config.max_retries)

        for attempt in range(attempts):
            try:
                response = self.session.request(method, url, timeout=timeout, **kwargs)
                self._requests += 1
                response.raise_for_status()
                return response
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else 0
                if (status == 429 or status >= 500) and attempt < attempts - 1:
                    time.sleep(2 ** attempt)
                    continue
                raise TransportError(f"HTTP {status} for {url}") from e
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                if attempt < attempts - 1:
                    logger.debug("Retrying %s after %s", url, e)
                    time.sleep(2 ** attempt)
                    continue
                raise TransportError(f"cannot reach {url}: {e}") from e
            except requests.exceptions.RequestException as e:
                raise TransportError(f"request to {url} failed: {e}") from e

        raise TransportError(f"request to {url} failed after {attempts} attempts")

    def list_directory(self, url: str) -> List[RemoteEntry]:
        """
        List the files and sub-directories of a remote directory.

        Args:
            url: Directory URL (trailing slash optional)

        Returns:
            Entries in listing order
        """
        response = self._request_with_retry("GET", directory_url(url))
        entries = parse_listing(response.text, response.url)
        logger.debug("Listed %d entries at %s", len(entries), url)
        return entries

    def get_text(self, url: str, retry: bool = True) -> str:
        """Fetch a small text document (checksum files)."""
        response = self._request_with_retry("GET", url, retries=None if retry else 1)
        return response.text

    def close(self):
        self.session.close()

    def __enter__(self) -> "SiteClient":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
