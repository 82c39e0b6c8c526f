"""Treepress static site generator.

This package turns a directory tree of content pages into a tree of published
HTML and Atom documents. Every directory under the content root is a page; its
published URL is its path in the tree.

Builds are incremental: each page owns a set of intermediate artifacts in the
build area, and an artifact is only recomputed when the fingerprint of its
inputs changes. Parents aggregate their children through small cached metadata
records, never through the children's full output.

The main entry point is the CLI module, which provides commands for scaffolding
new projects, building, watching, serving and deploying sites.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
