"""
Shared constants for cid.
"""

import re

# Default location of the configuration file
DEFAULT_CONFIG_PATH = "/etc/cid.toml"

# Default history database (expanded at open time)
DEFAULT_DB_PATH = "~/.cache/cid.sqlite"

# Maximum simultaneous downloads when nothing else is configured
CONCURRENT_REQUESTS = 4

# Environment variables prefix for configuration overrides (CID_DB_PATH, ...)
ENV_PREFIX = "CID_"

# Streaming chunk size for image bodies
CHUNK_SIZE = 1024 * 1024

# Prefix of temporary files written next to their final destination
TEMP_PREFIX = "_download_"

# Aggregate checksum manifests, strongest first.
# SHA256SUMS / SHA512SUMS are used by Ubuntu and Debian, CHECKSUM by CentOS,
# <release>-CHECKSUM by Fedora.
MANIFEST_NAMES = ("SHA512SUMS", "SHA256SUMS", "CHECKSUM")
MANIFEST_SUFFIX_RE = re.compile(r"(-CHECKSUM|\.sha(256|512)sums?)$", re.IGNORECASE)

# Per-image checksum files: <image><suffix>, strongest first
SIDECAR_SUFFIXES = (".sha512", ".sha512sum", ".sha256", ".sha256sum")

# Anything that looks like a checksum or signature file is never an image
CHECKSUM_FILE_RE = re.compile(r"\.(md5|sha1|sha256|sha512)(sums?)?$", re.IGNORECASE)

# Build date embedded in an image file name (arch-20240501.qcow2)
NAME_DATE_RE = re.compile(r"2[0-9]{3}[01][0-9][0-3][0-9]")
