"""Tests for routescan.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from routescan.config import ConfigError, ScanConfig, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, ScanConfig)
    assert config.root == tmp_path.resolve()
    assert config.scan_paths == ["src"]
    assert config.title == "API"
    assert config.version == "1.0.0"
    assert config.description is None
    assert config.base_url is None
    assert config.output_path == "openapi.json"
    assert config.openapi_version == "3.0.0"
    assert config.exclude_paths == []
    assert config.detectors is None
    assert config.resolved_scan_paths() == [str(tmp_path.resolve() / "src")]
    assert config.resolved_output_path() == tmp_path.resolve() / "openapi.json"


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".routescan.yml"
    config_file.write_text(
        """
scan_paths:
  - src/routes
  - "packages/*/src"
title: "Orders API"
version: 2
description: Internal order service
base_url: https://api.example.com
output_path: docs/openapi.yaml
openapi_version: "3.1.0"
exclude_paths:
  - "**/*.spec.ts"
detectors: [express, controller]
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.scan_paths == ["src/routes", "packages/*/src"]
    assert config.title == "Orders API"
    assert config.version == "2"
    assert config.description == "Internal order service"
    assert config.base_url == "https://api.example.com"
    assert config.openapi_version == "3.1.0"
    assert config.exclude_paths == ["**/*.spec.ts"]
    assert config.detectors == ["express", "controller"]
    assert config.resolved_output_path() == tmp_path.resolve() / "docs" / "openapi.yaml"


def test_load_config_accepts_camel_case_and_info_block(tmp_path: Path) -> None:
    (tmp_path / ".routescan.yml").write_text(
        """
scanPaths: lib
baseUrl: http://localhost:3000
outputPath: out.json
info:
  title: Legacy API
  version: 0.9.1
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.scan_paths == ["lib"]
    assert config.base_url == "http://localhost:3000"
    assert config.output_path == "out.json"
    assert config.title == "Legacy API"
    assert config.version == "0.9.1"


def test_absolute_scan_paths_are_kept(tmp_path: Path) -> None:
    elsewhere = tmp_path / "elsewhere"
    (tmp_path / ".routescan.yml").write_text(f"scan_paths: ['{elsewhere.as_posix()}']\n", encoding="utf-8")

    assert load_config(tmp_path).resolved_scan_paths() == [str(elsewhere)]


def test_empty_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / ".routescan.yml").write_text("\n", encoding="utf-8")

    assert load_config(tmp_path).scan_paths == ["src"]


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("- just\n- a list\n", "mapping"),
        ("title: [unclosed\n", "Failed to parse"),
        ("openapi_version: '2.0'\n", "expected 3.x"),
    ],
)
def test_load_config_rejects_invalid_files(tmp_path: Path, content: str, message: str) -> None:
    (tmp_path / ".routescan.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)
