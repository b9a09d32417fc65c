"""
Content Repository Parsing Helpers

Pure functions that turn raw GitHub Contents API data into the values used by
the content client: decoded filenames, decoded file bodies, chapter display
names and ordering keys, frontmatter, cover lookup and commit date formatting.
"""

from __future__ import annotations

import base64
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union


CHAPTER_ORDER_DEFAULT = 999

_OCTAL_TRIPLET = re.compile(r"[0-7]{3}")
_SIMPLE_ESCAPES = {"\\": 0x5C, '"': 0x22, "t": 0x09, "n": 0x0A}
_LEADING_NUMBER = re.compile(r"^(\d+)")
_COVER_NAME = re.compile(r"^cover\.(png|jpe?g|webp|gif|svg)$", re.IGNORECASE)
_FRONTMATTER = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)
_WORD_START = re.compile(r"\b\w")

FrontmatterValue = Union[str, List[str]]


# ---------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------

def decode_git_quoted_name(name: str) -> str:
    """
    Decode a git-quoted path component.

    Git emits non-ASCII filenames as a double-quoted string of octal byte
    escapes, e.g. ``"\\355\\225\\234"``. The escapes are decoded byte by
    byte and the byte string is then decoded as UTF-8. Names that are not
    quoted are returned unchanged.
    """
    if len(name) < 2 or not (name.startswith('"') and name.endswith('"')):
        return name

    inner = name[1:-1]
    out = bytearray()
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\" and i + 3 < len(inner) and _OCTAL_TRIPLET.fullmatch(inner[i + 1:i + 4]):
            out.append(int(inner[i + 1:i + 4], 8))
            i += 4
            continue
        if ch == "\\" and i + 1 < len(inner) and inner[i + 1] in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[inner[i + 1]])
            i += 2
            continue
        out.extend(ch.encode("utf-8"))
        i += 1

    return out.decode("utf-8", errors="replace")


def format_chapter_name(filename: str) -> str:
    """
    Derive a display title from a chapter filename.

    ``"02-clean_functions.md"`` becomes ``"Clean Functions"``.
    """
    name = re.sub(r"\.md$", "", filename)
    name = re.sub(r"^\d+-?", "", name)
    name = re.sub(r"[_-]", " ", name)
    name = _WORD_START.sub(lambda m: m.group(0).upper(), name)
    return name or filename


def format_folder_label(folder_name: str) -> str:
    label = re.sub(r"[-_]", " ", folder_name)
    return _WORD_START.sub(lambda m: m.group(0).upper(), label)


def chapter_order(filename: str) -> int:
    """Leading numeric prefix of a filename, or 999 when there is none."""
    match = _LEADING_NUMBER.match(filename)
    return int(match.group(1)) if match else CHAPTER_ORDER_DEFAULT


def slug_to_title(slug: str) -> str:
    return re.sub(r"[-_]", " ", slug)


def strip_md_extension(filename: str) -> str:
    return re.sub(r"\.md$", "", filename)


# ---------------------------------------------------------------------
# File bodies
# ---------------------------------------------------------------------

def decode_base64_content(encoded: str) -> str:
    """Decode a base64 Contents API payload (newline-wrapped) as UTF-8."""
    cleaned = encoded.replace("\n", "")
    return base64.b64decode(cleaned).decode("utf-8")


def parse_frontmatter(content: str) -> Tuple[Dict[str, FrontmatterValue], str]:
    """
    Split a ``---`` delimited YAML-like header from a markdown document.

    Only flat ``key: value`` lines are understood. Quoted values are
    unquoted and ``[a, "b"]`` values become lists.

    Returns
    -------
    (meta, body)
        ``meta`` is empty and ``body`` is the whole document when no header
        is present.
    """
    match = _FRONTMATTER.match(content)
    if not match:
        return {}, content

    yaml_block, body = match.group(1), match.group(2)
    meta: Dict[str, FrontmatterValue] = {}

    for line in yaml_block.split("\n"):
        key, sep, raw_value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value: FrontmatterValue = raw_value.strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        if value.startswith("[") and value.endswith("]"):
            items = [
                re.sub(r"""^["']|["']$""", "", part.strip())
                for part in value[1:-1].split(",")
            ]
            value = [item for item in items if item]

        meta[key] = value

    return meta, body


# ---------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------

def find_cover(entries: List[Dict[str, Any]]) -> str:
    """Return the download URL of a ``cover.<image>`` file, or ``""``."""
    for entry in entries:
        if entry.get("type") == "file" and _COVER_NAME.match(entry.get("name", "")):
            return entry.get("download_url") or ""
    return ""


def find_markdown(entries: List[Dict[str, Any]], prefer: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Return the first markdown file entry in a listing.

    When ``prefer`` names a markdown file present in the listing, that entry
    wins over listing order.
    """
    markdown = [
        e for e in entries
        if e.get("type") == "file" and e.get("name", "").endswith(".md")
    ]
    if prefer:
        for entry in markdown:
            if entry["name"] == prefer:
                return entry
    return markdown[0] if markdown else None


def format_commit_date(iso_string: str) -> str:
    """``2024-03-05T10:00:00Z`` → ``2024/03/05``; empty input stays empty."""
    if not iso_string:
        return ""
    parsed = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return parsed.strftime("%Y/%m/%d")
