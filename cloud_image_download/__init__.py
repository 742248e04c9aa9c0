"""
cid - Keep a local directory in sync with the latest published cloud images.

This package resolves the newest release directories of configured mirror
sites, downloads the images that are not already owned and records every
checksum-verified file in a local history database.

Import from submodules directly:
    from cloud_image_download.config import Settings
    from cloud_image_download.sync import run_sync, HistoryStore
    from cloud_image_download.catalog import VersionResolver, ImageCatalogBuilder
"""


def _get_version():
    """Read version from the VERSION file of a checkout, else from the installed metadata."""
    from importlib.metadata import PackageNotFoundError, version
    from pathlib import Path
    version_file = Path(__file__).parent.parent / "VERSION"
    if version_file.exists():
        return version_file.read_text().strip()
    try:
        return version("cloud-image-download")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _get_version()
