"""Utility functions for Treepress.

This module contains small helpers used throughout the Treepress codebase:
string normalisation, value parsing, hashing and atomic file output.

Key functions:
    slugify: Convert free text to an ASCII, URL-safe slug.
    titleize: Convert a directory name to a human-readable title.
    parse_bool: Interpret a configuration flag.
    parse_timestamp: Interpret a configuration date as epoch seconds.
    hash_bytes / hash_text / hash_file: Content digests used for staleness.
    atomic_write_bytes / atomic_write_text: Write-to-temp-then-rename output.
    write_if_changed: Atomic write that leaves identical files untouched.
    remove_tree: Delete a directory tree if it exists.

Note:
    HTML-related utilities (escape_html, rewrite_links, join_url) live in
    html_utils.py.
"""

from __future__ import annotations

import contextlib
import hashlib
import os
import re
import shutil
import tempfile
import unicodedata
from datetime import date, datetime, timezone
from pathlib import Path

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]+")
_TEMPLATE_DELIMITERS = str.maketrans("", "", "{}")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "y"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", "n", ""})

PUBLIC_FILE_MODE = 0o644


def slugify(text: str) -> str:
    """Convert free text to a slug.

    Transliterates to ASCII, strips template delimiters, collapses every run of
    non-alphanumeric characters to a single ``-``, trims dashes and lowercases.

    Args:
        text: Free text, for example a tag line.

    Returns:
        The slug, possibly empty when the text has no ASCII letters or digits.

    Examples:
        >>> slugify("My Tag!")
        'my-tag'

        >>> slugify("Café")
        'cafe'
    """
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    folded = folded.translate(_TEMPLATE_DELIMITERS)
    return _NON_ALNUM_RE.sub("-", folded).strip("-").lower()


def titleize(name: str) -> str:
    """Convert a directory name to a title.

    Underscores become spaces and the first letter is capitalised; the rest of
    the name is kept as written.

    Examples:
        >>> titleize("my_first_post")
        'My first post'
    """
    words = name.replace("_", " ").strip()
    return words[:1].upper() + words[1:]


def parse_bool(value: object) -> bool:
    """Interpret a configuration flag such as ``feed=1``.

    Raises:
        ValueError: If the value is not a recognised boolean spelling.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean value: {value!r}")


def parse_timestamp(value: object) -> int:
    """Interpret a date value as integer epoch seconds (UTC).

    Accepts epoch seconds, ``YYYY-MM-DD`` dates, ISO-8601 datetimes and
    ``date``/``datetime`` objects. Naive values are taken to be UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    else:
        text = str(value).strip()
        if re.fullmatch(r"-?\d+", text):
            return int(text)
        try:
            moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"not a date: {value!r}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def format_timestamp(timestamp: int, pattern: str) -> str:
    """Format epoch seconds in UTC with a strftime pattern."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(pattern)


def isoformat_timestamp(timestamp: int) -> str:
    """Format epoch seconds as strict ISO-8601 / RFC 3339 in UTC."""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: Path) -> str:
    return hash_bytes(path.read_bytes())


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes so that readers only ever see the old or the new file.

    The data goes to a temporary file in the destination directory which is
    then renamed over the target. An interrupted write leaves the previous
    file (or no file) in place.

    Args:
        path: Destination file.
        data: Complete file contents.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, PUBLIC_FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def write_if_changed(path: Path, data: bytes | str) -> bool:
    """Atomically write ``data`` unless the file already holds exactly it.

    Unchanged files keep their modification time.

    Returns:
        True if the file was written, False if it was already identical.
    """
    payload = data.encode("utf-8") if isinstance(data, str) else data
    if path.is_file() and path.read_bytes() == payload:
        return False
    atomic_write_bytes(path, payload)
    return True


def remove_tree(path: Path) -> bool:
    """Remove a directory tree if it exists.

    Returns:
        True if something was removed.
    """
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True
