"""Protocol definitions for Treepress.

This module defines the small interfaces the build engine depends on, so the
markdown converter and feed generators can be swapped (for example by tests)
without touching the engine.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class MarkdownConverter(Protocol):
    """Converts markdown text to HTML.

    Implementations may run in-process or invoke an external program.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier of the converter; part of artifact fingerprints."""
        ...

    @abstractmethod
    def convert(self, text: str, source: Path) -> str:
        """Convert markdown text to HTML.

        Args:
            text: Markdown source.
            source: File the text was read from (for error messages).

        Returns:
            Rendered HTML.

        Raises:
            ConverterError: If the conversion fails.
        """
        ...
