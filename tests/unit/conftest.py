"""Unit-test fixtures for the chain fetcher and sync jobs."""

from __future__ import annotations

import pytest

from spyglass.chain.fetcher import RawRecordFetcher
from tests.helpers.chain_fakes import FakeChainClient


@pytest.fixture
def chain_client() -> FakeChainClient:
    """Return an empty in-memory chain node."""
    return FakeChainClient()


@pytest.fixture
def fetcher(chain_client: FakeChainClient) -> RawRecordFetcher:
    """Return a fetcher reading from the fake chain node."""
    return RawRecordFetcher(chain_client)
