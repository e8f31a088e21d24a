from __future__ import annotations

import logging
import textwrap
from pathlib import Path
from typing import Callable, Iterator

import pytest

from routescan.analyzers.declarations import DeclarationExtractor
from routescan.models import SourceFile
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture(scope="session")
def extractor() -> DeclarationExtractor:
    return DeclarationExtractor()


@pytest.fixture
def parse_source(extractor: DeclarationExtractor) -> Callable[..., SourceFile]:
    """Extract an in-memory snippet; the file is never written."""

    def _parse(text: str, filename: str = "module.ts") -> SourceFile:
        return extractor.extract(Path("/virtual") / filename, textwrap.dedent(text).lstrip("\n"))

    return _parse


@pytest.fixture(autouse=True)
def _reset_routescan_logger() -> Iterator[None]:
    """Undo configure_logging() calls made by CLI tests so caplog keeps working."""
    yield
    logger = logging.getLogger("routescan")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
