"""Project scanning: file enumeration, route detection and schema resolution."""

from __future__ import annotations

import glob
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional, Sequence

from .analyzers.endpoints import DetectorRegistry, RouteDetector, discover_detectors, normalize_path
from .analyzers.resolver import SourceCache, SymbolResolver
from .analyzers.tree_sitter import SOURCE_SUFFIXES
from .logging import get_logger
from .models import ObjectSchema, RouteDescriptor, RouteInfo, SchemaRef

if TYPE_CHECKING:
    from .config import ScanConfig

LOGGER = get_logger("scanner")

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "dist",
    "build",
    "coverage",
    ".next",
    "out",
}

_GLOB_CHARS = set("*?[")


@dataclass(frozen=True)
class IgnoreRule:
    """One gitignore-style pattern from ``.gitignore`` or ``exclude_paths``.

    A pattern containing an inner slash is anchored at the scan root; any
    other pattern may match at any depth. ``**/`` in front only removes the
    anchoring. A rule that matches a directory also covers everything below it.
    """

    pattern: str
    directory_only: bool = False
    anchored: bool = False
    negate: bool = False

    @classmethod
    def parse(cls, line: str) -> Optional["IgnoreRule"]:
        text = line.strip()
        if not text or text.startswith("#"):
            return None
        negate = text.startswith("!")
        if negate:
            text = text[1:]
        directory_only = text.endswith("/")
        text = text.rstrip("/")
        if text.startswith("**/"):
            text, anchored = text[3:], False
        else:
            anchored = "/" in text
            text = text.lstrip("/")
        if not text:
            return None
        return cls(text, directory_only=directory_only, anchored=anchored, negate=negate)

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        parts = rel_path.split("/")
        for end in range(len(parts), 0, -1):
            if self.directory_only and end == len(parts) and not is_dir:
                continue
            starts = (0,) if self.anchored else range(end)
            if any(fnmatchcase("/".join(parts[start:end]), self.pattern) for start in starts):
                return True
        return False


class IgnoreRules:
    """Ordered rules where the last matching rule decides, as in git."""

    def __init__(self, rules: Iterable[IgnoreRule] = ()) -> None:
        self._rules = list(rules)

    @classmethod
    def from_patterns(cls, patterns: Iterable[str]) -> "IgnoreRules":
        return cls(rule for rule in map(IgnoreRule.parse, patterns) if rule is not None)

    @classmethod
    def from_gitignore(cls, path: Path) -> "IgnoreRules":
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cls()
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable %s: %s", path, exc)
            return cls()
        return cls.from_patterns(text.splitlines())

    def __add__(self, other: "IgnoreRules") -> "IgnoreRules":
        return IgnoreRules(self._rules + other._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def ignored(self, rel_path: str, is_dir: bool) -> bool:
        verdict = False
        for rule in self._rules:
            if rule.matches(rel_path, is_dir):
                verdict = not rule.negate
        return verdict


def _is_source(path: Path) -> bool:
    return path.suffix.lower() in SOURCE_SUFFIXES


def _glob_base(pattern: str) -> Path:
    """Longest leading directory of ``pattern`` without wildcards."""
    parts: List[str] = []
    for part in Path(pattern).parts:
        if _GLOB_CHARS & set(part):
            break
        parts.append(part)
    return Path(*parts) if parts else Path(".")


def _read_source(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Skipping unreadable file %s: %s", path, exc)
        return None


class ProjectScanner:
    """Turns a set of scan paths into fully resolved routes.

    Every :meth:`scan` call owns its own :class:`SourceCache` and
    :class:`SymbolResolver`, so concurrent scans never share state.
    """

    def __init__(
        self,
        detectors: Sequence[RouteDetector] | None = None,
        *,
        exclude_paths: Iterable[str] = (),
        max_workers: int | None = None,
    ) -> None:
        self._detectors = list(detectors) if detectors is not None else discover_detectors()
        self._excludes = IgnoreRules.from_patterns(exclude_paths)
        self._max_workers = max_workers

    @classmethod
    def from_config(cls, config: "ScanConfig", *, max_workers: int | None = None) -> "ProjectScanner":
        return cls(
            discover_detectors(config.detectors),
            exclude_paths=config.exclude_paths,
            max_workers=max_workers,
        )

    def scan(self, scan_paths: Sequence[str | Path]) -> List[RouteInfo]:
        """Return every route found under ``scan_paths`` in enumeration order."""
        files = self.iter_source_files(scan_paths)
        cache = SourceCache()
        resolver = SymbolResolver(cache)
        registry = DetectorRegistry(self._detectors)

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            texts = list(pool.map(_read_source, files))

        routes: List[RouteInfo] = []
        for path, text in zip(files, texts):
            if text is None:
                continue
            source = cache.get(path) or cache.add(path, text)
            for descriptor in registry.run(source):
                routes.append(_resolve_route(descriptor, resolver))

        LOGGER.info("Discovered %d route(s) in %d file(s)", len(routes), len(files))
        return routes

    def iter_source_files(self, scan_paths: Sequence[str | Path]) -> List[Path]:
        """Expand scan paths into an ordered, duplicate-free list of source files."""
        seen = set()
        ordered: List[Path] = []
        for scan_path in scan_paths:
            for path in self._expand(str(scan_path)):
                key = path.resolve()
                if key in seen:
                    continue
                seen.add(key)
                ordered.append(key)
        return ordered

    def _expand(self, scan_path: str) -> Iterator[Path]:
        if _GLOB_CHARS & set(scan_path):
            pattern = os.path.expanduser(scan_path)
            base = _glob_base(pattern)
            for match in sorted(glob.glob(pattern, recursive=True)):
                path = Path(match)
                if path.is_file() and _is_source(path) and not self._excluded_match(path, base):
                    yield path
            return

        path = Path(scan_path).expanduser()
        if path.is_file():
            if _is_source(path):
                yield path
            return
        if path.is_dir():
            yield from self._walk(path)
            return
        LOGGER.warning("Scan path not found: %s", scan_path)

    def _excluded_match(self, path: Path, base: Path) -> bool:
        try:
            relative = path.relative_to(base)
        except ValueError:
            relative = path
        if any(part in _EXCLUDED_DIRS for part in relative.parts[:-1]):
            return True
        return self._excludes.ignored(relative.as_posix(), False)

    def _walk(self, root: Path) -> Iterator[Path]:
        rules = IgnoreRules.from_gitignore(root / ".gitignore") + self._excludes
        for dirpath, dirnames, filenames in os.walk(root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

            kept = []
            for name in sorted(dirnames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if name in _EXCLUDED_DIRS or rules.ignored(rel_path, True):
                    continue
                kept.append(name)
            dirnames[:] = kept

            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if rules.ignored(rel_path, False):
                    continue
                path = current_dir / filename
                if _is_source(path):
                    yield path


def _resolve_route(descriptor: RouteDescriptor, resolver: SymbolResolver) -> RouteInfo:
    def _schema(ref: Optional[SchemaRef]) -> Optional[ObjectSchema]:
        if ref is None:
            return None
        return resolver.resolve(ref.identifier, ref.file)

    responses = {}
    for status, ref in descriptor.responses.items():
        schema = _schema(ref)
        if schema is not None:
            responses[status] = schema

    return RouteInfo(
        method=descriptor.method,
        path=normalize_path(descriptor.raw_path),
        raw_path=descriptor.raw_path,
        file=descriptor.file,
        line=descriptor.line,
        framework=descriptor.framework,
        handler=descriptor.handler,
        body=_schema(descriptor.body),
        query=_schema(descriptor.query),
        params=_schema(descriptor.params),
        headers=_schema(descriptor.headers),
        responses=responses,
    )


__all__ = ["IgnoreRule", "IgnoreRules", "ProjectScanner"]
