"""Shared route detection helpers."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from ...models import RouteDescriptor, SourceFile

HTTP_VERBS = ("get", "post", "put", "delete", "patch", "options", "head")

_COLON_PARAM = re.compile(r"(^|/):([A-Za-z_$][A-Za-z0-9_$]*)")


class RouteDetector(Protocol):
    """Contract for detectors that emit route descriptors from a parsed file."""

    name: str

    def supports(self, source: SourceFile) -> bool:
        ...

    def extract(self, source: SourceFile) -> Iterable[RouteDescriptor]:
        ...


def normalize_path(path: str) -> str:
    """Rewrite ``:name`` segments as ``{name}``; any other text is kept as is."""
    return _COLON_PARAM.sub(r"\1{\2}", path)


def join_paths(prefix: str, route: str) -> str:
    """Combine class-level and method-level paths with exactly one separator."""
    prefix = (prefix or "").strip()
    route = (route or "").strip()
    if not prefix:
        combined = route
    elif not route or route == "/":
        combined = prefix
    else:
        combined = f"{prefix.rstrip('/')}/{route.lstrip('/')}"
    if not combined.startswith("/"):
        combined = "/" + combined
    return combined


def method_upper(value: str) -> str:
    """Normalize HTTP verbs to uppercase."""
    return (value or "").strip().upper()


def pick_higher_confidence(existing: RouteDescriptor, new: RouteDescriptor) -> RouteDescriptor:
    """Choose the descriptor with higher confidence, preferring the one with more refs when equal."""
    if new.confidence > existing.confidence:
        return new
    if new.confidence < existing.confidence:
        return existing
    return new if _ref_count(new) > _ref_count(existing) else existing


def _ref_count(route: RouteDescriptor) -> int:
    slots = (route.body, route.query, route.params, route.headers)
    return sum(1 for slot in slots if slot is not None) + len(route.responses)


class DetectorRegistry:
    """Executes route detectors over one file and orders their output."""

    def __init__(self, detectors: Sequence[RouteDetector]) -> None:
        self._detectors = list(detectors)

    @property
    def detectors(self) -> List[RouteDetector]:
        return list(self._detectors)

    def run(self, source: SourceFile) -> List[RouteDescriptor]:
        results: Dict[Tuple[int, str, str], RouteDescriptor] = {}
        for detector in self._detectors:
            if not detector.supports(source):
                continue
            for route in detector.extract(source):
                route.method = method_upper(route.method)
                key = (route.offset, route.method, route.raw_path)
                if key in results:
                    results[key] = pick_higher_confidence(results[key], route)
                else:
                    results[key] = route
        return sorted(results.values(), key=lambda route: route.offset)


__all__ = [
    "DetectorRegistry",
    "HTTP_VERBS",
    "RouteDetector",
    "join_paths",
    "method_upper",
    "normalize_path",
    "pick_higher_confidence",
]
