"""Pytest fixtures shared across all test modules."""

import pytest

from nbcards import CardIds, MessageAggregator


@pytest.fixture(autouse=True)
def nbcards_home(tmp_path_factory, monkeypatch):
    """Keep saved sessions out of the real home directory."""
    home = tmp_path_factory.mktemp("nbcards_home")
    monkeypatch.setenv("NBCARDS_HOME", str(home))
    monkeypatch.delenv("NBCARDS_WORKSPACE", raising=False)
    return home


@pytest.fixture
def ids():
    return CardIds()


@pytest.fixture
def aggregator(ids):
    return MessageAggregator(ids=ids)
