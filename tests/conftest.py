from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.packages import PackageTreeBuilder


@pytest.fixture
def tree_builder(tmp_path: Path) -> PackageTreeBuilder:
    """Provide a workspace with an empty node_modules tree rooted at tmp_path."""
    return PackageTreeBuilder(tmp_path / "workspace")
