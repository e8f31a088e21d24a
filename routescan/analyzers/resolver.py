"""Cross-file symbol resolution backed by a per-scan source cache."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..logging import get_logger
from ..models import Declaration, ObjectSchema, SourceFile
from .declarations import DeclarationExtractor
from .dialects import normalize

LOGGER = get_logger("resolver")

_MODULE_SUFFIXES = (".ts", ".tsx", ".js", ".mts", ".cts", ".mjs", ".cjs", ".d.ts")
# ESM sources written in TypeScript import their siblings with runtime suffixes.
_RUNTIME_SUFFIXES = {".js": (".ts", ".tsx"), ".mjs": (".mts",), ".cjs": (".cts",), ".jsx": (".tsx",)}

_Guard = Set[Tuple[Path, str]]


def _key(path: Path) -> Path:
    return Path(path).resolve()


def resolve_module_path(declared_in: Path, specifier: str) -> Optional[Path]:
    """Map a relative import specifier to an existing source file.

    Bare package specifiers (``zod``, ``@nestjs/common``) are never followed.
    """
    if not specifier.startswith("."):
        return None
    base = Path(declared_in).parent / specifier
    candidates: List[Path] = [base]
    candidates.extend(base.with_name(base.name + suffix) for suffix in _MODULE_SUFFIXES)
    for replacement in _RUNTIME_SUFFIXES.get(base.suffix, ()):
        candidates.append(base.with_suffix(replacement))
    candidates.extend(base / f"index{suffix}" for suffix in _MODULE_SUFFIXES)
    for candidate in candidates:
        if candidate.is_file():
            return _key(candidate)
    return None


class SourceCache:
    """Parsed source files for one scan, keyed by resolved path."""

    def __init__(self, extractor: DeclarationExtractor | None = None) -> None:
        self._extractor = extractor or DeclarationExtractor()
        self._files: Dict[Path, Optional[SourceFile]] = {}
        self._lock = threading.RLock()

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return _key(path) in self._files

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def add(self, path: Path, text: str) -> SourceFile:
        key = _key(path)
        with self._lock:
            source = self._extractor.extract(key, text)
            self._files[key] = source
            return source

    def get(self, path: Path) -> Optional[SourceFile]:
        with self._lock:
            return self._files.get(_key(path))

    def load(self, path: Path) -> Optional[SourceFile]:
        """Return the cached file, reading and extracting it on first use."""
        key = _key(path)
        with self._lock:
            if key in self._files:
                return self._files[key]
            try:
                text = key.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Skipping unreadable file %s: %s", key, exc)
                self._files[key] = None
                return None
            return self.add(key, text)


def candidate_names(identifier: str) -> List[str]:
    """Return ``identifier`` followed by its naming-convention fallbacks."""
    derived: List[str] = []
    if len(identifier) > 1 and identifier[0] in "TI" and identifier[1].isupper():
        derived.append(identifier[1:] + "Schema")
    elif not identifier.endswith("Schema"):
        derived.append(identifier + "Schema")

    names: List[str] = [identifier]
    for name in derived:
        names.append(name)
        names.append(name[:1].lower() + name[1:])
    return list(dict.fromkeys(names))


class SymbolResolver:
    """Resolves schema identifiers to normalized schemas across files."""

    def __init__(self, cache: SourceCache) -> None:
        self._cache = cache
        self._resolved: Dict[Tuple[Path, str], Optional[ObjectSchema]] = {}
        self._normalized: Dict[Tuple[Path, str], ObjectSchema] = {}
        self._lock = threading.RLock()

    def resolve(self, identifier: str, origin: Path) -> Optional[ObjectSchema]:
        """Return the schema ``identifier`` denotes when seen from ``origin``.

        Returns ``None`` when neither the name nor any fallback can be found.
        """
        if not identifier:
            return None
        key = (_key(origin), identifier)
        with self._lock:
            if key in self._resolved:
                return self._resolved[key]

            guard: _Guard = set()
            schema: Optional[ObjectSchema] = None
            for candidate in candidate_names(identifier):
                found = self.find_declaration(candidate, origin, guard=guard)
                if found is None:
                    continue
                source, declaration = found
                if candidate != identifier:
                    LOGGER.debug("Resolved %s via fallback %s in %s", identifier, candidate, source.path)
                schema = self._normalize(source, declaration)
                break
            else:
                LOGGER.debug("Unresolved schema reference %s from %s", identifier, origin)

            self._resolved[key] = schema
            return schema

    def find_declaration(
        self, identifier: str, origin: Path, *, guard: Optional[_Guard] = None
    ) -> Optional[Tuple[SourceFile, Declaration]]:
        """Locate the declaration bound to ``identifier`` in ``origin``'s scope."""
        source = self._cache.load(origin)
        if source is None:
            return None
        return self._lookup(source, identifier, guard if guard is not None else set())

    def _lookup(
        self, source: SourceFile, identifier: str, guard: _Guard
    ) -> Optional[Tuple[SourceFile, Declaration]]:
        marker = (source.path, identifier)
        if marker in guard:
            return None
        guard.add(marker)

        declaration = source.declarations.get(identifier)
        if declaration is not None:
            return source, declaration

        edge = source.imports.get(identifier)
        if edge is not None and edge.imported_name != "*":
            target = self._load_module(source.path, edge.source)
            if target is not None:
                # Default imports are matched by their local name.
                name = identifier if edge.imported_name == "default" else edge.imported_name
                found = self._lookup(target, name, guard)
                if found is not None:
                    return found

        for target in self._star_targets(source):
            found = self._lookup(target, identifier, guard)
            if found is not None:
                return found
        return None

    def _star_targets(self, source: SourceFile) -> Iterable[SourceFile]:
        for specifier in source.star_exports:
            target = self._load_module(source.path, specifier)
            if target is not None:
                yield target

    def _load_module(self, declared_in: Path, specifier: str) -> Optional[SourceFile]:
        path = resolve_module_path(declared_in, specifier)
        if path is None:
            return None
        return self._cache.load(path)

    def _normalize(
        self, source: SourceFile, declaration: Declaration, active: Optional[_Guard] = None
    ) -> ObjectSchema:
        key = (source.path, declaration.name)
        schema = self._normalized.get(key)
        if schema is not None:
            return schema
        active = set() if active is None else active
        active.add(key)
        schema = normalize(declaration, self._base_schema(source, declaration, active))
        self._normalized[key] = schema
        return schema

    def _base_schema(
        self, source: SourceFile, declaration: Declaration, active: _Guard
    ) -> Optional[ObjectSchema]:
        """Normalize the binding a derived declaration builds on, if reachable."""
        if not declaration.base:
            return None
        found = self._lookup(source, declaration.base, set())
        if found is None:
            LOGGER.debug("Unresolved base %s of %s in %s", declaration.base, declaration.name, source.path)
            return None
        base_source, base_declaration = found
        if (base_source.path, base_declaration.name) in active:
            return None
        return self._normalize(base_source, base_declaration, active)


__all__ = [
    "SourceCache",
    "SymbolResolver",
    "candidate_names",
    "resolve_module_path",
]
