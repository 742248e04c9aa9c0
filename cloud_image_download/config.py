"""
Configuration management for cid.

Config sources, lowest to highest precedence:
- built-in defaults
- TOML configuration file (default /etc/cid.toml)
- CID_* environment variables (CID_DB_PATH, CID_CONCURRENT_DOWNLOADS)
- command line options

The core never reads the environment itself: everything it needs is
handed over through Settings and RunOptions.
"""

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Pattern, Union

from .catalog.normalize import validate_template
from .core.constants import CONCURRENT_REQUESTS, DEFAULT_DB_PATH, ENV_PREFIX
from .core.files import expand_path
from .errors import ConfigError

logger = logging.getLogger(__name__)


def _string_list(data: dict, key: str, site_name: str) -> List[str]:
    value = data.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"site {site_name!r}: {key} must be a list of strings")
    return list(value)


@dataclass
class Site:
    """A web site publishing cloud images."""
    name: str
    base_url: str
    version_list: List[str]
    image_name_filter: str
    destination: str
    after_version_url: List[str] = field(default_factory=list)
    image_name_cleanse: List[str] = field(default_factory=list)
    normalize: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Site":
        name = data.get("name", "")
        missing = [k for k in ("name", "base_url", "version_list", "image_name_filter", "destination") if not data.get(k)]
        if missing:
            raise ConfigError(f"site {name or '?'}: missing {', '.join(missing)}")
        versions = data["version_list"]
        if not isinstance(versions, list):
            versions = [versions]
        return cls(
            name=name,
            base_url=data["base_url"],
            version_list=[str(v) for v in versions],
            image_name_filter=data["image_name_filter"],
            destination=str(data["destination"]),
            after_version_url=_string_list(data, "after_version_url", name),
            image_name_cleanse=_string_list(data, "image_name_cleanse", name),
            normalize=data.get("normalize", "") or "",
        )

    def to_dict(self) -> dict:
        d = {
            "name": self.name,
            "base_url": self.base_url,
            "version_list": list(self.version_list),
            "image_name_filter": self.image_name_filter,
            "destination": self.destination,
        }
        if self.after_version_url:
            d["after_version_url"] = list(self.after_version_url)
        if self.image_name_cleanse:
            d["image_name_cleanse"] = list(self.image_name_cleanse)
        if self.normalize:
            d["normalize"] = self.normalize
        return d

    @cached_property
    def include_re(self) -> Pattern:
        return re.compile(self.image_name_filter)

    @cached_property
    def exclude_res(self) -> List[Pattern]:
        return [re.compile(pattern) for pattern in self.image_name_cleanse]

    @property
    def destination_path(self) -> Path:
        return expand_path(self.destination)

    def validate(self):
        """Compile filters and check the template (raises ConfigError)."""
        try:
            self.include_re
        except re.error as e:
            raise ConfigError(f"site {self.name!r}: bad image_name_filter {self.image_name_filter!r}: {e}") from e
        for pattern in self.image_name_cleanse:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"site {self.name!r}: bad image_name_cleanse {pattern!r}: {e}") from e
        try:
            validate_template(self.normalize)
        except ConfigError as e:
            raise ConfigError(f"site {self.name!r}: {e}") from e


@dataclass
class Proxies:
    """HTTP(S) proxies, from the config file or the http(s)_proxy variables."""
    http: Optional[str] = None
    https: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Proxies":
        return cls(http=data.get("http") or None, https=data.get("https") or None)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Proxies":
        """Read http_proxy/https_proxy, lower case first then upper case."""
        environ = os.environ if environ is None else environ

        def lookup(variable: str) -> Optional[str]:
            return environ.get(variable.lower()) or environ.get(variable.upper()) or None

        return cls(http=lookup("http_proxy"), https=lookup("https_proxy"))

    def as_dict(self) -> Dict[str, str]:
        """Proxies keyed by URL scheme, as requests expects them."""
        proxies = {}
        if self.http:
            proxies["http"] = self.http
        if self.https:
            proxies["https"] = self.https
        return proxies

    def for_url(self, url: str) -> Optional[str]:
        scheme = url.split(":", 1)[0].lower()
        return self.as_dict().get(scheme)

    def __bool__(self) -> bool:
        return bool(self.http or self.https)


@dataclass
class Settings:
    """Everything read from the configuration file and environment."""
    sites: List[Site] = field(default_factory=list)
    db_path: Optional[str] = None
    concurrent_downloads: Optional[int] = None
    proxy: Proxies = field(default_factory=Proxies)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        sites = data.get("sites", [])
        if not isinstance(sites, list):
            raise ConfigError("'sites' must be an array of tables ([[sites]])")
        return cls(
            sites=[Site.from_dict(site) for site in sites],
            db_path=data.get("db_path"),
            concurrent_downloads=data.get("concurrent_downloads"),
            proxy=Proxies.from_dict(data.get("proxy", {})),
        )

    @classmethod
    def load(cls, path: Union[str, Path], environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Load settings from a TOML file, then apply CID_* environment overrides.

        A missing file is not an error (everything may come from the
        environment); an unreadable or malformed one is.

        Raises:
            ConfigError: If the file cannot be parsed or is inconsistent
        """
        environ = os.environ if environ is None else environ
        config_path = expand_path(path)

        data = {}
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
            except (tomllib.TOMLDecodeError, OSError) as e:
                raise ConfigError(f"cannot read {config_path}: {e}") from e
        else:
            logger.warning("Configuration file %s not found", config_path)

        settings = cls.from_dict(data)
        settings.apply_environment(environ)
        if not settings.proxy:
            settings.proxy = Proxies.from_env(environ)
        return settings

    def apply_environment(self, environ: Mapping[str, str]):
        """Override file values with CID_* environment variables."""
        db_path = environ.get(f"{ENV_PREFIX}DB_PATH")
        if db_path:
            self.db_path = db_path

        concurrent = environ.get(f"{ENV_PREFIX}CONCURRENT_DOWNLOADS")
        if concurrent:
            try:
                self.concurrent_downloads = int(concurrent)
            except ValueError as e:
                raise ConfigError(f"{ENV_PREFIX}CONCURRENT_DOWNLOADS is not a number: {concurrent!r}") from e

    def validate(self):
        """Validate every site (raises ConfigError)."""
        names = set()
        for site in self.sites:
            if site.name in names:
                raise ConfigError(f"site {site.name!r} is defined twice")
            names.add(site.name)
            site.validate()


@dataclass
class RunOptions:
    """Per-run parameters handed to the sync engine."""
    db_path: str = DEFAULT_DB_PATH
    concurrent_downloads: int = CONCURRENT_REQUESTS
    verify_existing: bool = False
    proxies: Proxies = field(default_factory=Proxies)
    timeout: int = 60
    max_retries: int = 3

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        db_path: Optional[str] = None,
        concurrent_downloads: Optional[int] = None,
        verify_existing: bool = False,
    ) -> "RunOptions":
        """Merge settings with command line values (command line wins)."""
        concurrent = next(
            value for value in (concurrent_downloads, settings.concurrent_downloads, CONCURRENT_REQUESTS)
            if value is not None
        )
        if not isinstance(concurrent, int) or concurrent < 1:
            raise ConfigError(f"concurrent downloads must be at least 1, got {concurrent}")
        return cls(
            db_path=db_path or settings.db_path or DEFAULT_DB_PATH,
            concurrent_downloads=concurrent,
            verify_existing=verify_existing,
            proxies=settings.proxy,
        )
