"""
Destination file naming for cid.

A site's `normalize` template decides where each image lands below the
site destination directory, e.g. "{version}/{after_version}/image-{date}.qcow2".

Placeholders:
    {version}        version token ("22.04")
    {date}           date of the run, YYYY-MM-DD
    {after_version}  after-version segment used, or ""
    {name}           remote file name
"""

import re
from datetime import date
from pathlib import Path

from ..core.formatting import sanitize_filename
from ..errors import ConfigError

PLACEHOLDERS = ("version", "date", "after_version", "name")

# An empty template keeps the remote file name
DEFAULT_TEMPLATE = "{name}"


def render_destination(
    template: str,
    *,
    version: str,
    run_date: date,
    after_version: str = "",
    name: str = "",
) -> Path:
    """
    Render a normalization template into a relative destination path.

    Empty path components (e.g. from an empty {after_version}) collapse,
    and every component is sanitized for cross-platform file names.

    Raises:
        ConfigError: If the template is invalid or escapes its directory
    """
    template = template or DEFAULT_TEMPLATE
    try:
        rendered = template.format(
            version=version,
            date=run_date.isoformat(),
            after_version=after_version,
            name=name,
        )
    except (AttributeError, KeyError, IndexError, ValueError) as e:
        raise ConfigError(f"invalid normalize template {template!r}: {e}") from e

    parts = [part for part in re.split(r"[\\/]+", rendered) if part not in ("", ".")]
    if ".." in parts:
        raise ConfigError(f"normalize template {template!r} escapes the destination directory")
    if not parts:
        raise ConfigError(f"normalize template {template!r} renders an empty file name")

    return Path(*[sanitize_filename(part) for part in parts])


def validate_template(template: str):
    """Check a template renders with sample values (raises ConfigError)."""
    render_destination(
        template,
        version="1.0",
        run_date=date(2000, 1, 1),
        after_version="arch",
        name="image.img",
    )
