"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

# Ensure tests run from the project root so config.default.yaml is found
PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def _set_project_root(monkeypatch, tmp_path):
    """Point HUBCONTEXT_ROOT at the project root and use tmp_path for data."""
    monkeypatch.setenv("HUBCONTEXT_ROOT", str(PROJECT_ROOT))
    monkeypatch.setenv("HUBCONTEXT_QDRANT__PATH", str(tmp_path / "qdrant"))
    monkeypatch.setenv("HUBCONTEXT_STORE__PATH", str(tmp_path / "hubcontext.db"))

    # Reset settings cache between tests
    from hubcontext.config import reset_settings
    reset_settings()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def docstore(db_path):
    from hubcontext.stores.docstore import DocStore

    store = DocStore(db_path)
    yield store
    store.close()
