"""Metadata records for Treepress.

A metadata record is the small summary of a page that its ancestors (and tag
indexes) need: title, date, description, path, breadcrumb HTML and cover HTML.
It is computed once per page build and stored as ``metadata.json`` in the
page's build directory, so parents never look at a child's full content.

Key classes:
- MetadataRecord: The cached summary of one page.
- MetadataStore: Reads and locates records in the build area.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

METADATA_ARTIFACT = "metadata.json"


@dataclass(frozen=True)
class MetadataRecord:
    """Cached summary of a page.

    Attributes:
        title: Plain-text title.
        timestamp: Page date as epoch seconds (UTC).
        description: Plain-text description.
        path: Site path of the page (without the base path), e.g. ``/blog/``.
        breadcrumbs: Breadcrumb HTML of the page.
        cover: Cover ``<img>`` HTML, or ``""``.
    """

    title: str
    timestamp: int
    description: str
    path: str
    breadcrumbs: str = ""
    cover: str = ""

    def to_json(self) -> str:
        """Serialise deterministically (sorted keys, trailing newline)."""
        return json.dumps(asdict(self), sort_keys=True, indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_json(cls, text: str) -> MetadataRecord:
        data = json.loads(text)
        return cls(
            title=str(data["title"]),
            timestamp=int(data["timestamp"]),
            description=str(data.get("description", "")),
            path=str(data["path"]),
            breadcrumbs=str(data.get("breadcrumbs", "")),
            cover=str(data.get("cover", "")),
        )


class MetadataStore:
    """Locates and reads metadata records in the build area.

    Attributes:
        build_dir: Root of the build area.
    """

    def __init__(self, build_dir: Path):
        self.build_dir = build_dir

    def path_for(self, build_key: str) -> Path:
        return self.build_dir / build_key / METADATA_ARTIFACT

    def read_text(self, build_key: str) -> str:
        return self.path_for(build_key).read_text(encoding="utf-8")

    def read(self, build_key: str) -> MetadataRecord:
        """Read the record of the page with the given build key.

        Raises:
            FileNotFoundError: If the page has not been built.
        """
        return MetadataRecord.from_json(self.read_text(build_key))
