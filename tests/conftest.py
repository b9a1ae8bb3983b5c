from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from mcpextract.references import ReferenceLocator
from tests._fixtures.assembly_builder import McpServerBuilder, write_core_library


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo configure_logging between tests so caplog keeps seeing records."""
    yield
    logger = logging.getLogger("mcpextract")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def server_builder() -> McpServerBuilder:
    """Provide a fresh MCP server assembly builder."""
    return McpServerBuilder()


@pytest.fixture
def isolated_locator() -> ReferenceLocator:
    """A locator that sees no .NET installation at all."""
    return ReferenceLocator(environ={}, platform="linux", which=lambda _name: None, pack_roots=[])


@pytest.fixture
def dotnet_root(tmp_path: Path) -> Path:
    """A fake .NET installation with a net8.0 reference pack holding a core library."""
    root = tmp_path / "dotnet"
    ref_dir = root / "packs" / "Microsoft.NETCore.App.Ref" / "8.0.4" / "ref" / "net8.0"
    write_core_library(ref_dir)
    return root
