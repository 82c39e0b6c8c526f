"""Artifact storage and staleness tracking for Treepress.

Every intermediate file the build produces is an artifact owned by one page
(or tag) directory in the build area. Next to the artifacts each directory
holds a ``.state.json`` file recording, per artifact, the fingerprint of the
inputs it was last produced from and the digest of the bytes produced.

An artifact is current when its recorded input fingerprint equals the
fingerprint of its present inputs and the file still holds the recorded
bytes. Fingerprints hash input *contents* and
tracked values, never modification times, so:

- a rebuilt artifact whose bytes did not change leaves its dependants'
  fingerprints unchanged and the rebuild stops propagating;
- unchanged artifacts are never rewritten and keep their timestamps.

Writes go through a temporary file and a rename, and the state is only
updated after the artifact is in place. A build interrupted before its state
is flushed leaves artifacts whose bytes no longer match the recorded digest;
those are rebuilt by the next run.

Key classes:
- Fingerprint: Accumulates a digest over an artifact's inputs.
- ArtifactStore: Reads, writes and tracks artifacts per owner directory.
- ArtifactRules: Base for the components that produce artifacts.
- BuildStats: Counts rebuilt and skipped artifacts.
- BuildError: Failure of one artifact of one page.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import atomic_write_text, hash_file, hash_text, write_if_changed

logger = logging.getLogger(__name__)

STATE_FILENAME = ".state.json"

MD_PREFIX = "md/"
CONTENT_ARTIFACT = "content.html"
HEAD_ARTIFACT = "head.html"
BREADCRUMBS_ARTIFACT = "breadcrumbs.html"
DECLARED_TAGS_ARTIFACT = "tags.json"
BADGES_ARTIFACT = "tags.html"
LISTING_ARTIFACT = "pages.html"
DOCUMENT_ARTIFACT = "index.html"
FEED_ARTIFACT = "feed.atom"
_MISSING = "<missing>"


class BuildError(Exception):
    """Error while producing an artifact, with page context.

    Attributes:
        page_path: Site path of the page (or tag index) being built.
        artifact: Name of the artifact that failed.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        page_path: str,
        artifact: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.page_path = page_path
        self.artifact = artifact
        self.message = message
        self.original_error = original_error
        super().__init__(f"{page_path} [{artifact}]: {message}")


class Fingerprint:
    """Digest over the inputs of one artifact.

    Every piece is labelled so that moving a value between inputs changes the
    digest.
    """

    def __init__(self, rule: str):
        self._digest = hashlib.sha256()
        self.add_value("rule", rule)

    def _update(self, label: str, payload: bytes) -> None:
        self._digest.update(label.encode("utf-8"))
        self._digest.update(b"\0")
        self._digest.update(str(len(payload)).encode("ascii"))
        self._digest.update(b"\0")
        self._digest.update(payload)

    def add_value(self, label: str, value: Any) -> Fingerprint:
        """Add a JSON-serialisable tracked value."""
        encoded = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
        self._update(label, encoded.encode("utf-8"))
        return self

    def add_text(self, label: str, text: str) -> Fingerprint:
        self._update(label, text.encode("utf-8"))
        return self

    def add_file(self, label: str, path: Path | None) -> Fingerprint:
        """Add a file's contents; a missing file contributes a sentinel."""
        if path is None or not path.is_file():
            self._update(label, _MISSING.encode("ascii"))
        else:
            self._update(label, path.read_bytes())
        return self

    def hexdigest(self) -> str:
        return self._digest.hexdigest()


@dataclass
class BuildStats:
    """Counts of rebuilt and skipped artifacts.

    Attributes:
        rebuilt: ``owner:artifact`` names that were recomputed.
        skipped: Number of artifacts that were already current.
        written: Number of recomputed artifacts whose bytes changed.
    """

    rebuilt: list[str] = field(default_factory=list)
    skipped: int = 0
    written: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, owner: str, artifact: str, rebuilt: bool, changed: bool = False) -> None:
        with self._lock:
            if rebuilt:
                self.rebuilt.append(f"{owner}:{artifact}")
                if changed:
                    self.written += 1
            else:
                self.skipped += 1

    def was_rebuilt(self, owner: str, artifact: str) -> bool:
        return f"{owner}:{artifact}" in self.rebuilt


class ArtifactStore:
    """Artifact files and their recorded fingerprints.

    Artifacts are addressed by an owner key (the page's relative build
    directory, ``""`` for the root) and an artifact name, which may contain
    a subdirectory (``md/index.md.html``).

    Attributes:
        build_dir: Root of the build area.
    """

    def __init__(self, build_dir: Path):
        self.build_dir = build_dir
        self._states: dict[str, dict[str, dict[str, str]]] = {}
        self._dirty: set[str] = set()
        self._lock = threading.Lock()

    def dir_for(self, key: str) -> Path:
        return self.build_dir / key if key else self.build_dir

    def path_for(self, key: str, name: str) -> Path:
        return self.dir_for(key) / name

    def _state(self, key: str) -> dict[str, dict[str, str]]:
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = self._load_state(key)
                self._states[key] = state
            return state

    def _load_state(self, key: str) -> dict[str, dict[str, str]]:
        path = self.dir_for(key) / STATE_FILENAME
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = None
        if not isinstance(data, dict):
            logger.warning("Discarding unreadable build state %s", path)
            return {}
        return {
            str(name): {"inputs": str(entry["inputs"]), "output": str(entry["output"])}
            for name, entry in data.items()
            if isinstance(entry, dict) and "inputs" in entry and "output" in entry
        }

    def is_current(self, key: str, name: str, fingerprint: str) -> bool:
        entry = self._state(key).get(name)
        if entry is None or entry["inputs"] != fingerprint:
            return False
        path = self.path_for(key, name)
        return path.is_file() and hash_file(path) == entry["output"]

    def read(self, key: str, name: str) -> str:
        return self.path_for(key, name).read_text(encoding="utf-8")

    def commit(self, key: str, name: str, text: str, fingerprint: str) -> bool:
        """Store an artifact and record the fingerprint it was produced from.

        The file is only rewritten when its content differs.

        Returns:
            True if the artifact's bytes changed.
        """
        changed = write_if_changed(self.path_for(key, name), text)
        state = self._state(key)
        with self._lock:
            state[name] = {"inputs": fingerprint, "output": hash_text(text)}
            self._dirty.add(key)
        return changed

    def discard(self, key: str, name: str) -> bool:
        """Delete an artifact that its owner no longer produces.

        Returns:
            True if a file was removed.
        """
        path = self.path_for(key, name)
        state = self._state(key)
        with self._lock:
            if state.pop(name, None) is not None:
                self._dirty.add(key)
        if path.is_file():
            path.unlink()
            return True
        return False

    def names(self, key: str, prefix: str = "") -> list[str]:
        """Recorded artifact names of an owner, optionally under a prefix."""
        return sorted(name for name in self._state(key) if name.startswith(prefix))

    def prune(self, key: str, prefix: str, keep: Iterable[str]) -> list[str]:
        """Discard every recorded artifact under ``prefix`` not in ``keep``."""
        keep_set = set(keep)
        removed = [name for name in self.names(key, prefix) if name not in keep_set]
        for name in removed:
            self.discard(key, name)
        return removed

    def flush(self, key: str) -> None:
        """Persist the owner's state file if it changed."""
        with self._lock:
            if key not in self._dirty:
                return
            self._dirty.discard(key)
            payload = json.dumps(self._states[key], sort_keys=True, indent=2) + "\n"
        atomic_write_text(self.dir_for(key) / STATE_FILENAME, payload)


class ArtifactRules:
    """Base for components that produce artifacts.

    Provides the produce-if-stale step and the translation of failures into
    BuildError with the owner and artifact named.

    Attributes:
        store: Artifact storage.
        stats: Shared build statistics.
    """

    def __init__(self, store: ArtifactStore, stats: BuildStats | None = None):
        self.store = store
        self.stats = stats or BuildStats()

    @contextmanager
    def failure_context(self, owner: str, artifact: str) -> Iterator[None]:
        """Turn any failure inside the block into a BuildError for ``artifact``."""
        try:
            yield
        except BuildError:
            raise
        except Exception as exc:
            raise BuildError(owner, artifact, _format_error_message(exc), exc) from exc

    def produce(
        self,
        key: str,
        owner: str,
        name: str,
        fingerprint: Fingerprint,
        render: Callable[[], str],
    ) -> str:
        """Return the artifact text, recomputing it only if its inputs changed.

        Args:
            key: Owner key in the store.
            owner: Owner label for logs and errors (a site path).
            name: Artifact name.
            fingerprint: Fingerprint of the artifact's present inputs.
            render: Computes the artifact text.

        Returns:
            The current artifact text.
        """
        digest = fingerprint.hexdigest()
        if self.store.is_current(key, name, digest):
            logger.debug("%s %s is current", owner, name)
            self.stats.record(owner, name, rebuilt=False)
            return self.store.read(key, name)
        with self.failure_context(owner, name):
            text = render()
            changed = self.store.commit(key, name, text, digest)
        logger.debug("%s %s %s", owner, name, "updated" if changed else "rebuilt, unchanged")
        self.stats.record(owner, name, rebuilt=True, changed=changed)
        return text


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)
    if error_type in ("TemplateNotFoundError", "ConverterError", "ConfigError"):
        return error_msg
    if error_type == "FileNotFoundError":
        return f"Missing file: {error_msg}"
    return f"{error_type}: {error_msg}"
