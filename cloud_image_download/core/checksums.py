"""
Checksums for cid.

Holds the Checksum value type (SHA-256 / SHA-512 digests) and the parser
for the checksum documents mirrors publish next to their images:

- GNU coreutils style:  <hex>  <name>   (or <hex> *<name> for binary mode)
- BSD / Fedora style:   SHA256 (<name>) = <hex>
- bare digest:          <hex>           (single image sidecar files)

Documents may be PGP clear-signed (Fedora CHECKSUM, Ubuntu SHA256SUMS.gpg
inlined); the armor is skipped.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from ..errors import ChecksumParseError

logger = logging.getLogger(__name__)

# Read buffer used when hashing local files
HASH_READ_SIZE = 16 * 1024 * 1024

HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
GNU_LINE_RE = re.compile(r"^(?P<digest>[0-9a-fA-F]{128}|[0-9a-fA-F]{64})\s+\*?(?P<name>\S.*?)\s*$")
BSD_LINE_RE = re.compile(
    r"^(?P<algo>SHA-?(?:256|512))\s*\((?P<name>.+)\)\s*=\s*(?P<digest>[0-9a-fA-F]+)\s*$",
    re.IGNORECASE,
)


class Algorithm(str, Enum):
    """Digest algorithms accepted for image verification."""
    SHA256 = "sha256"
    SHA512 = "sha512"

    @property
    def hex_length(self) -> int:
        return hashlib.new(self.value).digest_size * 2

    def new(self):
        """Return a fresh hashlib object for this algorithm."""
        return hashlib.new(self.value)

    @classmethod
    def from_hex_length(cls, length: int) -> Optional["Algorithm"]:
        for algorithm in cls:
            if algorithm.hex_length == length:
                return algorithm
        return None

    @classmethod
    def from_name(cls, name: str) -> Optional["Algorithm"]:
        """Map 'SHA256', 'sha-512', ... to an Algorithm."""
        key = name.strip().lower().replace("-", "")
        for algorithm in cls:
            if algorithm.value == key:
                return algorithm
        return None


@dataclass(frozen=True)
class Checksum:
    """An expected or computed digest. Digests are stored as lowercase hex."""
    algorithm: Algorithm
    digest: str

    def __post_init__(self):
        object.__setattr__(self, "digest", self.digest.lower())

    @classmethod
    def parse(cls, text: str, algorithm: Optional[Algorithm] = None) -> "Checksum":
        """
        Parse a hex digest.

        Args:
            text: Hex digest (case-insensitive, surrounding spaces ignored)
            algorithm: Expected algorithm; inferred from the digest length if None

        Raises:
            ChecksumParseError: If text is not a SHA-256 or SHA-512 hex digest
        """
        value = text.strip()
        if not value or not HEX_RE.match(value):
            raise ChecksumParseError(f"not a hex digest: {text!r}")

        inferred = Algorithm.from_hex_length(len(value))
        if inferred is None:
            raise ChecksumParseError(f"unsupported digest length {len(value)}: {text!r}")
        if algorithm is not None and algorithm != inferred:
            raise ChecksumParseError(f"digest length does not match {algorithm.value}: {text!r}")
        return cls(inferred, value)

    @classmethod
    def of_bytes(cls, data: bytes, algorithm: Algorithm = Algorithm.SHA256) -> "Checksum":
        hasher = algorithm.new()
        hasher.update(data)
        return cls(algorithm, hasher.hexdigest())

    def hasher(self):
        """Return a fresh hashlib object matching this checksum's algorithm."""
        return self.algorithm.new()

    def matches(self, hexdigest: str) -> bool:
        return self.digest == hexdigest.lower()

    def __str__(self) -> str:
        return f"{self.algorithm.value}:{self.digest}"


def hash_file(path: Path, algorithm: Algorithm) -> Checksum:
    """Compute the checksum of a local file."""
    hasher = algorithm.new()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(HASH_READ_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return Checksum(algorithm, hasher.hexdigest())


# ============================================================================
# Checksum documents
# ============================================================================

@dataclass
class ParsedChecksums:
    """Result of parsing a checksum document."""
    entries: Dict[str, Checksum] = field(default_factory=dict)
    bare: Optional[Checksum] = None  # digest published without a file name
    malformed: int = 0


def _entry_name(raw: str) -> str:
    """Bare file name of a manifest entry ('./x/img.qcow2' -> 'img.qcow2')."""
    return raw.strip().replace("\\", "/").split("/")[-1]


def parse_checksum_text(text: str) -> ParsedChecksums:
    """
    Parse a checksum manifest or sidecar.

    Blank lines, '#' comments and PGP armor are ignored. Lines that look like
    none of the supported formats are skipped and counted in `malformed`.

    Raises:
        ChecksumParseError: If the document holds no usable checksum at all
    """
    parsed = ParsedChecksums()
    in_signature = False

    for raw_line in text.splitlines():
        line = raw_line.strip()

        # PGP clear-signed documents
        if line.startswith("-----BEGIN PGP SIGNATURE"):
            in_signature = True
            continue
        if in_signature:
            if line.startswith("-----END PGP SIGNATURE"):
                in_signature = False
            continue
        if line.startswith("-----BEGIN PGP") or line.startswith("Hash:"):
            continue
        if line.startswith("- "):
            line = line[2:]

        if not line or line.startswith("#"):
            continue

        match = BSD_LINE_RE.match(line)
        if match:
            algorithm = Algorithm.from_name(match.group("algo"))
            try:
                checksum = Checksum.parse(match.group("digest"), algorithm)
            except ChecksumParseError:
                parsed.malformed += 1
                continue
            parsed.entries.setdefault(_entry_name(match.group("name")), checksum)
            continue

        match = GNU_LINE_RE.match(line)
        if match:
            checksum = Checksum.parse(match.group("digest"))
            parsed.entries.setdefault(_entry_name(match.group("name")), checksum)
            continue

        if HEX_RE.match(line) and Algorithm.from_hex_length(len(line)) and parsed.bare is None:
            parsed.bare = Checksum.parse(line)
            continue

        parsed.malformed += 1

    if parsed.malformed:
        logger.debug("Skipped %d malformed checksum line(s)", parsed.malformed)

    if not parsed.entries and parsed.bare is None:
        raise ChecksumParseError("no checksum found in document")

    return parsed
