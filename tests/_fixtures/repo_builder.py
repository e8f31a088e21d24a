"""Helper utilities for constructing temporary source trees in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import List, Mapping, Sequence

from routescan.analyzers.declarations import DeclarationExtractor
from routescan.models import RouteInfo, SourceFile
from routescan.scanner import ProjectScanner


class RepoBuilder:
    """Utility for writing files into a throwaway project and rescanning it."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "repo"
        self.root.mkdir()
        self._extractor = DeclarationExtractor()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the project."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def file(self, relative: str) -> Path:
        return (self.root / relative).resolve()

    def source(self, relative: str) -> SourceFile:
        """Extract declarations and imports of one written file."""
        path = self.file(relative)
        return self._extractor.extract(path, path.read_text(encoding="utf-8"))

    def scan(self, paths: Sequence[str] | None = None, **scanner_options) -> List[RouteInfo]:
        """Scan the whole project, or the given project-relative paths."""
        targets = [str(self.root / item) for item in paths] if paths else [str(self.root)]
        return ProjectScanner(**scanner_options).scan(targets)

    def path(self) -> Path:
        """Return the project root path."""
        return self.root


__all__ = ["RepoBuilder"]
