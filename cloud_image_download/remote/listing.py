"""
Remote directory listings for cid.

Mirror sites expose their trees as auto-generated HTML indexes (Apache,
nginx autoindex, lighttpd, ...). Every <a> link pointing to a direct child
of the listed directory is a file, or a sub-directory when it ends with '/'.
"""

from dataclasses import dataclass
from html.parser import HTMLParser
from typing import List
from urllib.parse import quote, unquote, urljoin, urlsplit


@dataclass(frozen=True)
class RemoteEntry:
    """A file or sub-directory found in a remote listing."""
    name: str
    url: str
    is_dir: bool = False


class _LinkCollector(HTMLParser):
    """Collects href values of <a> tags, in document order."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.hrefs: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag != "a":
            return
        for key, value in attrs:
            if key == "href" and value:
                self.hrefs.append(value.strip())


def directory_url(url: str) -> str:
    """Return url with exactly one trailing slash."""
    return url.rstrip("/") + "/"


def join_url(base: str, *segments: str) -> str:
    """Append path segments to a directory url ('a/' + 'b' -> 'a/b')."""
    url = base.rstrip("/")
    for segment in segments:
        segment = segment.strip("/")
        if segment:
            url = f"{url}/{quote(segment, safe='/')}"
    return url


def parse_listing(html: str, base_url: str) -> List[RemoteEntry]:
    """
    Extract the direct children of a directory from its HTML index.

    Navigation links (parent directory, column sort links, anchors, links to
    other hosts or other directories) are dropped. Order is the order links
    appear in the page; duplicates keep their first occurrence.

    Args:
        html: Body of the index page
        base_url: URL of the listed directory (the final URL after redirects)

    Returns:
        List of RemoteEntry, files and directories mixed
    """
    base = directory_url(base_url)
    base_parts = urlsplit(base)

    collector = _LinkCollector()
    collector.feed(html)
    collector.close()

    entries = []
    seen = set()
    for href in collector.hrefs:
        if href.startswith(("?", "#", "mailto:", "javascript:")):
            continue

        parts = urlsplit(urljoin(base, href))
        if parts.scheme not in ("http", "https"):
            continue
        if (parts.scheme, parts.netloc) != (base_parts.scheme, base_parts.netloc):
            continue
        if not parts.path.startswith(base_parts.path):
            continue

        rest = parts.path[len(base_parts.path):]
        is_dir = rest.endswith("/")
        name = unquote(rest.rstrip("/"))
        # Parent, self, and grandchildren
        if not name or "/" in name or name in (".", ".."):
            continue
        if name in seen:
            continue
        seen.add(name)

        entries.append(RemoteEntry(name=name, url=join_url(base, name), is_dir=is_dir))

    return entries
