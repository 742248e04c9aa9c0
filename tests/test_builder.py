"""
Tests for candidate filtering, destination naming and catalog building.
"""

import re
from datetime import date
from pathlib import Path

import pytest

from cloud_image_download.catalog.builder import ImageCatalogBuilder, matches_filters, name_date_key
from cloud_image_download.catalog.checksum_source import ChecksumSourceMode
from cloud_image_download.catalog.models import ImageStatus, VersionPointer
from cloud_image_download.catalog.normalize import render_destination, validate_template
from cloud_image_download.config import Site
from cloud_image_download.errors import ConfigError, ResolutionError

from conftest import FakeClient

DIR = "https://mirror.example.org/releases/22.04/release"
RUN_DATE = date(2024, 5, 1)


class TestMatchesFilters:

    def test_include_and_cleanse(self):
        include = re.compile(r"^ubuntu-.*\.qcow2$")
        excludes = [re.compile("beta")]
        assert not matches_filters("ubuntu-22.04-beta.qcow2", include, excludes)
        assert matches_filters("ubuntu-22.04.qcow2", include, excludes)

    def test_include_must_match(self):
        assert not matches_filters("debian-12.qcow2", re.compile("^ubuntu"), [])

    def test_search_not_fullmatch(self):
        assert matches_filters("noble-server-cloudimg-amd64.img", re.compile("amd64"), [])

    def test_checksum_files_excluded(self):
        include = re.compile("ubuntu")
        assert not matches_filters("ubuntu.img.sha256", include, [])
        assert not matches_filters("ubuntu-22.04.sha256sums", include, [])

    def test_any_exclude_drops(self):
        include = re.compile("img")
        excludes = [re.compile("beta"), re.compile("rc[0-9]")]
        assert not matches_filters("disk-rc1.img", include, excludes)


class TestNameDateKey:

    def test_newest_build_sorts_last(self):
        names = ["arch-20240501.qcow2", "disk.img", "arch-20240401.qcow2", "build.img"]
        assert sorted(names, key=name_date_key) == [
            "build.img", "disk.img", "arch-20240401.qcow2", "arch-20240501.qcow2",
        ]

    def test_date_wins_over_name(self):
        assert name_date_key("a-20240501.img") > name_date_key("z-20240401.img")


class TestRenderDestination:

    def test_all_placeholders(self):
        path = render_destination(
            "{version}/{after_version}/image-{date}.qcow2",
            version="22.04", run_date=RUN_DATE, after_version="x86_64",
        )
        assert path == Path("22.04/x86_64/image-2024-05-01.qcow2")

    def test_empty_after_version_collapses(self):
        path = render_destination("{version}/{after_version}/{name}", version="9", run_date=RUN_DATE, name="a.img")
        assert path == Path("9/a.img")

    def test_empty_template_keeps_name(self):
        assert render_destination("", version="9", run_date=RUN_DATE, name="a.img") == Path("a.img")

    def test_components_sanitized(self):
        path = render_destination("{version}/{name}", version="a:b", run_date=RUN_DATE, name="x?.img")
        assert path == Path("a-b/x.img")

    def test_escape_rejected(self):
        with pytest.raises(ConfigError):
            render_destination("../{name}", version="9", run_date=RUN_DATE, name="a.img")

    def test_absolute_template_stays_relative(self):
        assert render_destination("/{name}", version="9", run_date=RUN_DATE, name="a.img") == Path("a.img")

    def test_unknown_placeholder_rejected(self):
        with pytest.raises(ConfigError):
            validate_template("{arch}/{name}")

    def test_unbalanced_brace_rejected(self):
        with pytest.raises(ConfigError):
            validate_template("{version")


class TestImageCatalogBuilder:

    @pytest.fixture
    def site(self, temp_dir):
        return Site(
            name="ubuntu",
            base_url="https://mirror.example.org/releases",
            version_list=["22.04"],
            image_name_filter=r"^ubuntu-.*\.img$",
            destination=str(temp_dir),
            after_version_url=["release"],
            image_name_cleanse=["beta"],
            normalize="{version}/{name}",
        )

    @pytest.fixture
    def pointer(self):
        return VersionPointer(site="ubuntu", version="22.04", url=DIR, after_version="release")

    def test_build(self, site, pointer, temp_dir):
        client = FakeClient(listings={DIR: [
            ("ubuntu-22.04-amd64.img", False),
            ("ubuntu-22.04-beta-amd64.img", False),
            ("ubuntu-22.04-arm64.img", False),
            ("SHA256SUMS", False),
            ("unpacked", True),
        ]})
        images = ImageCatalogBuilder(client, run_date=RUN_DATE).build(site, pointer)

        assert [i.name for i in images] == ["ubuntu-22.04-amd64.img", "ubuntu-22.04-arm64.img"]
        first = images[0]
        assert first.url == f"{DIR}/ubuntu-22.04-amd64.img"
        assert first.destination == temp_dir / "22.04" / "ubuntu-22.04-amd64.img"
        assert first.status == ImageStatus.PENDING
        assert first.after_version == "release"
        assert first.checksum_source.mode == ChecksumSourceMode.ONE_FILE

    def test_no_checksum_published(self, site, pointer):
        client = FakeClient(listings={DIR: [("ubuntu-22.04-amd64.img", False)]})
        images = ImageCatalogBuilder(client, run_date=RUN_DATE).build(site, pointer)
        assert len(images) == 1
        assert images[0].checksum_source is None

    def test_nothing_wanted(self, site, pointer):
        client = FakeClient(listings={DIR: [("README", False)]})
        assert ImageCatalogBuilder(client).build(site, pointer) == []

    def test_unlistable_directory(self, site, pointer):
        with pytest.raises(ResolutionError):
            ImageCatalogBuilder(FakeClient()).build(site, pointer)


class TestDatedBuilds:

    ARCH_DIR = "https://mirror.example.org/arch/latest"

    def site(self, temp_dir, normalize):
        return Site(
            name="arch",
            base_url="https://mirror.example.org/arch",
            version_list=["latest"],
            image_name_filter=r"^arch-.*\.qcow2$",
            destination=str(temp_dir),
            normalize=normalize,
        )

    def build(self, site):
        client = FakeClient(listings={self.ARCH_DIR: [
            ("arch-20240401.qcow2", False),
            ("arch-20240501.qcow2", False),
            ("arch-20240301.qcow2", False),
            ("SHA256SUMS", False),
        ]})
        pointer = VersionPointer(site="arch", version="latest", url=self.ARCH_DIR)
        return ImageCatalogBuilder(client, run_date=RUN_DATE).build(site, pointer)

    def test_only_newest_build_for_shared_destination(self, temp_dir):
        images = self.build(self.site(temp_dir, "{version}/image-{date}.qcow2"))

        assert [i.name for i in images] == ["arch-20240501.qcow2"]
        assert images[0].destination == temp_dir / "latest" / "image-2024-05-01.qcow2"

    def test_named_destinations_keep_every_build(self, temp_dir):
        images = self.build(self.site(temp_dir, "{version}/{name}"))

        assert [i.name for i in images] == ["arch-20240401.qcow2", "arch-20240501.qcow2", "arch-20240301.qcow2"]
