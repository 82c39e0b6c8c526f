from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from .config import SortSpec
from .metadata import MetadataRecord


class RecordCollection(Sequence[MetadataRecord]):
    """Lightweight helper for working with lists of metadata records."""

    def __init__(self, records: Iterable[MetadataRecord]):
        self._records = list(records)

    def __iter__(self) -> Iterator[MetadataRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, item):
        return self._records[item]

    def sorted_by(self, spec: SortSpec) -> RecordCollection:
        """Sort records by title or date, ascending or descending.

        Titles compare case-insensitively. Ties are broken by path so the order
        never depends on discovery order; the tie-break follows the same
        direction as the main key.

        Args:
            spec: Field and order to sort by.

        Returns:
            A new RecordCollection with sorted records.
        """
        if spec.field == "title":

            def sort_key(r: MetadataRecord):
                return (r.title.casefold(), r.title, r.path)

        else:

            def sort_key(r: MetadataRecord):
                return (r.timestamp, r.path)

        return RecordCollection(sorted(self._records, key=sort_key, reverse=spec.reverse))

    def latest(self, count: int | None = None) -> RecordCollection:
        """Most recent records first, optionally limited to ``count``."""
        ordered = self.sorted_by(SortSpec("date", "desc"))
        return RecordCollection(ordered[:count] if count is not None else ordered)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"RecordCollection({len(self._records)} records)"


@dataclass
class Tag:
    """A tag grouping: the pages that declared one slug.

    Attributes:
        slug: Normalised identifier, also the URL segment under ``/tags/``.
        label: Display name (the first spelling seen).
        records: Metadata records of the declaring pages.
    """

    slug: str
    label: str
    records: list[MetadataRecord] = field(default_factory=list)

    @property
    def path(self) -> str:
        return f"/tags/{self.slug}/"

    @property
    def pages(self) -> RecordCollection:
        return RecordCollection(self.records)


class TagCollection(Mapping[str, Tag]):
    """Mapping of tag slug to Tag, iterated in slug order."""

    def __init__(self, tags: Iterable[Tag]):
        self._mapping = {tag.slug: tag for tag in sorted(tags, key=lambda t: t.slug)}

    def __getitem__(self, key: str) -> Tag:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagCollection({len(self._mapping)} tags)"
