"""
Tests for configuration loading and precedence.
"""

import pytest

from cloud_image_download.config import Proxies, RunOptions, Settings, Site
from cloud_image_download.core.constants import CONCURRENT_REQUESTS, DEFAULT_DB_PATH
from cloud_image_download.errors import ConfigError

CONFIG = """
db_path = "/var/lib/cid/history.sqlite"
concurrent_downloads = 3

[proxy]
https = "http://proxy.example.org:3128"

[[sites]]
name = "ubuntu"
base_url = "https://cloud-images.ubuntu.com/releases"
version_list = ["22.04", "24.04"]
after_version_url = ["release"]
image_name_filter = "^ubuntu-.*amd64\\\\.img$"
image_name_cleanse = ["beta"]
normalize = "{version}/{name}"
destination = "~/images/ubuntu"

[[sites]]
name = "centos"
base_url = "https://cloud.centos.org/centos"
version_list = [9]
image_name_filter = "GenericCloud"
destination = "/srv/images/centos"
"""


def write_config(temp_dir, text=CONFIG):
    path = temp_dir / "cid.toml"
    path.write_text(text)
    return path


class TestSettingsLoad:

    def test_load_file(self, temp_dir):
        settings = Settings.load(write_config(temp_dir), environ={})

        assert settings.db_path == "/var/lib/cid/history.sqlite"
        assert settings.concurrent_downloads == 3
        assert settings.proxy == Proxies(http=None, https="http://proxy.example.org:3128")
        ubuntu, centos = settings.sites
        assert ubuntu.version_list == ["22.04", "24.04"]
        assert ubuntu.after_version_url == ["release"]
        assert ubuntu.include_re.search("ubuntu-24.04-server-cloudimg-amd64.img")
        assert centos.version_list == ["9"]
        assert centos.normalize == ""
        settings.validate()

    def test_missing_file_is_empty_config(self, temp_dir):
        settings = Settings.load(temp_dir / "absent.toml", environ={})
        assert settings.sites == []
        assert settings.db_path is None

    def test_malformed_file(self, temp_dir):
        with pytest.raises(ConfigError):
            Settings.load(write_config(temp_dir, "[[sites]\nname = "), environ={})

    def test_environment_overrides_file(self, temp_dir):
        environ = {"CID_DB_PATH": "/tmp/env.sqlite", "CID_CONCURRENT_DOWNLOADS": "7"}
        settings = Settings.load(write_config(temp_dir), environ=environ)
        assert settings.db_path == "/tmp/env.sqlite"
        assert settings.concurrent_downloads == 7

    def test_bad_environment_number(self, temp_dir):
        with pytest.raises(ConfigError):
            Settings.load(write_config(temp_dir), environ={"CID_CONCURRENT_DOWNLOADS": "many"})

    def test_file_proxy_wins_over_environment(self, temp_dir):
        settings = Settings.load(write_config(temp_dir), environ={"https_proxy": "http://env:1"})
        assert settings.proxy.https == "http://proxy.example.org:3128"

    def test_environment_proxy_used_when_file_has_none(self, temp_dir):
        settings = Settings.load(temp_dir / "absent.toml", environ={"http_proxy": "http://env:1"})
        assert settings.proxy.http == "http://env:1"

    def test_duplicate_site_names(self):
        site = {"name": "a", "base_url": "http://h", "version_list": ["1"],
                "image_name_filter": "img", "destination": "/tmp"}
        settings = Settings.from_dict({"sites": [site, dict(site)]})
        with pytest.raises(ConfigError):
            settings.validate()


class TestSite:

    def test_missing_keys(self):
        with pytest.raises(ConfigError) as exc_info:
            Site.from_dict({"name": "x", "base_url": "http://h"})
        assert "image_name_filter" in str(exc_info.value)

    def test_bad_include_regex(self):
        site = Site("x", "http://h", ["1"], "([", "/tmp")
        with pytest.raises(ConfigError):
            site.validate()

    def test_bad_cleanse_regex(self):
        site = Site("x", "http://h", ["1"], "img", "/tmp", image_name_cleanse=["*beta"])
        with pytest.raises(ConfigError):
            site.validate()

    def test_destination_expanded(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/cid")
        site = Site("x", "http://h", ["1"], "img", "~/images")
        assert str(site.destination_path) == "/home/cid/images"

    def test_round_trip(self):
        data = {"name": "x", "base_url": "http://h", "version_list": ["1"], "image_name_filter": "img",
                "destination": "/tmp", "normalize": "{name}"}
        assert Site.from_dict(data).to_dict() == data


class TestProxies:

    def test_lowercase_before_uppercase(self):
        proxies = Proxies.from_env({"http_proxy": "http://lower:1", "HTTP_PROXY": "http://upper:1"})
        assert proxies.http == "http://lower:1"

    def test_uppercase_fallback(self):
        assert Proxies.from_env({"HTTPS_PROXY": "http://upper:1"}).https == "http://upper:1"

    def test_for_url(self):
        proxies = Proxies(http="http://p:1", https=None)
        assert proxies.for_url("http://mirror/x.img") == "http://p:1"
        assert proxies.for_url("https://mirror/x.img") is None
        assert proxies.as_dict() == {"http": "http://p:1"}


class TestRunOptions:

    def test_defaults(self):
        options = RunOptions.from_settings(Settings())
        assert options.db_path == DEFAULT_DB_PATH
        assert options.concurrent_downloads == CONCURRENT_REQUESTS
        assert not options.verify_existing

    def test_command_line_wins(self):
        settings = Settings(db_path="/from/file", concurrent_downloads=3)
        options = RunOptions.from_settings(settings, db_path="/from/cli", concurrent_downloads=8,
                                           verify_existing=True)
        assert options.db_path == "/from/cli"
        assert options.concurrent_downloads == 8
        assert options.verify_existing

    def test_settings_used_without_command_line(self):
        options = RunOptions.from_settings(Settings(db_path="/from/file", concurrent_downloads=3))
        assert options.db_path == "/from/file"
        assert options.concurrent_downloads == 3

    def test_parallelism_must_be_positive(self):
        with pytest.raises(ConfigError):
            RunOptions.from_settings(Settings(concurrent_downloads=-1))
        with pytest.raises(ConfigError):
            RunOptions.from_settings(Settings(), concurrent_downloads=0)
