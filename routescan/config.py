"""Configuration loading for routescan (.routescan.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".routescan.yml"

DEFAULT_SCAN_PATHS = ("src",)
DEFAULT_OUTPUT = "openapi.json"
DEFAULT_OPENAPI_VERSION = "3.0.0"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ScanConfig:
    """Represents the settings defined in .routescan.yml."""

    root: Path
    scan_paths: List[str] = field(default_factory=lambda: list(DEFAULT_SCAN_PATHS))
    title: str = "API"
    version: str = "1.0.0"
    description: Optional[str] = None
    base_url: Optional[str] = None
    output_path: str = DEFAULT_OUTPUT
    openapi_version: str = DEFAULT_OPENAPI_VERSION
    exclude_paths: List[str] = field(default_factory=list)
    detectors: Optional[List[str]] = None

    def resolved_scan_paths(self) -> List[str]:
        """Scan paths anchored at the config root unless already absolute."""
        return [_anchor(self.root, value) for value in self.scan_paths]

    def resolved_output_path(self) -> Path:
        return Path(_anchor(self.root, self.output_path))


def _anchor(root: Path, value: str) -> str:
    path = Path(value).expanduser()
    if path.is_absolute():
        return str(path)
    return str(root / value)


def load_config(config_path: Path) -> ScanConfig:
    """Load configuration from disk; a missing file yields the defaults."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ScanConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    openapi_version = _as_str(_first(data, "openapi_version", "openApiVersion")) or DEFAULT_OPENAPI_VERSION
    if not openapi_version.startswith("3."):
        raise ConfigError(f"Unsupported openapi_version '{openapi_version}'; expected 3.x")

    info = _as_dict(data.get("info"))
    detectors_value = data.get("detectors")

    return ScanConfig(
        root=root,
        scan_paths=_as_str_list(_first(data, "scan_paths", "scanPaths")) or list(DEFAULT_SCAN_PATHS),
        title=_as_str(data.get("title")) or _as_str(info.get("title")) or "API",
        version=_as_str(data.get("version")) or _as_str(info.get("version")) or "1.0.0",
        description=_as_str(data.get("description")) or _as_str(info.get("description")),
        base_url=_as_str(_first(data, "base_url", "baseUrl")),
        output_path=_as_str(_first(data, "output_path", "outputPath")) or DEFAULT_OUTPUT,
        openapi_version=openapi_version,
        exclude_paths=_as_str_list(_first(data, "exclude_paths", "excludePaths")),
        detectors=_as_str_list(detectors_value) if detectors_value is not None else None,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = ["CONFIG_FILENAME", "ConfigError", "ScanConfig", "load_config"]
