"""Route detectors and plugin discovery.

Third-party packages can contribute detectors through the
``routescan.detectors`` entry point group. An entry point may name a
detector class, a ready instance, or a zero-argument factory.
"""

from __future__ import annotations

from functools import partial
from importlib import metadata
from typing import Callable, Dict, Iterator, List, Sequence, Set, Tuple

from ...logging import get_logger
from .core import (
    DetectorRegistry,
    RouteDetector,
    join_paths,
    method_upper,
    normalize_path,
    pick_higher_confidence,
)
from .detectors import ControllerDetector, ExpressDetector, FastifyDetector

LOGGER = get_logger("detectors")

ENTRY_POINT_GROUP = "routescan.detectors"

BUILTIN_DETECTORS: Dict[str, Callable[[], object]] = {
    "express": ExpressDetector,
    "fastify": FastifyDetector,
    "controller": ControllerDetector,
}


def discover_detectors(enabled: Sequence[str] | None = None) -> List[RouteDetector]:
    """Instantiate built-in and plugin detectors, optionally restricted to ``enabled``.

    Names compare case-insensitively. Built-ins come first and win over a
    plugin registered under the same name. Plugins are only imported when
    they are selected. Unknown names in ``enabled`` raise ``ValueError``.
    """
    wanted: Set[str] | None = None
    if enabled is not None:
        wanted = {name.strip().lower() for name in enabled if name.strip()}

    detectors: List[RouteDetector] = []
    seen: Set[str] = set()
    for name, factory in _candidates():
        key = name.lower()
        if key in seen:
            LOGGER.debug("Ignoring duplicate detector registration '%s'", name)
            continue
        if wanted is not None and key not in wanted:
            continue
        detectors.append(_coerce_detector(factory(), name))
        seen.add(key)

    if wanted is not None and wanted - seen:
        missing = ", ".join(sorted(wanted - seen))
        raise ValueError(f"Unknown detectors requested: {missing}")
    return detectors


def _candidates() -> Iterator[Tuple[str, Callable[[], object]]]:
    yield from BUILTIN_DETECTORS.items()
    for entry in metadata.entry_points().select(group=ENTRY_POINT_GROUP):
        yield entry.name, partial(_load_entry_point, entry)


def _load_entry_point(entry: metadata.EntryPoint) -> object:
    try:
        target = entry.load()
    except Exception as exc:  # pragma: no cover - depends on installed plugins
        raise RuntimeError(f"Failed to load detector entry point '{entry.name}': {exc}") from exc
    if isinstance(target, type) or (callable(target) and not hasattr(target, "extract")):
        return target()
    return target


def _coerce_detector(candidate: object, name: str) -> RouteDetector:
    if not callable(getattr(candidate, "extract", None)) or not callable(getattr(candidate, "supports", None)):
        raise TypeError(f"Detector '{name}' must provide supports() and extract()")
    return candidate  # type: ignore[return-value]


__all__ = [
    "BUILTIN_DETECTORS",
    "ControllerDetector",
    "DetectorRegistry",
    "ENTRY_POINT_GROUP",
    "ExpressDetector",
    "FastifyDetector",
    "RouteDetector",
    "discover_detectors",
    "join_paths",
    "method_upper",
    "normalize_path",
    "pick_higher_confidence",
]
