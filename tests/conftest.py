"""Shared fixtures for kubevent tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from kubevent.clock import FakeClock
from kubevent.observability.metrics import MetricsStore
from tests.helpers import NOW, FakeFeed


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def metrics() -> Iterator[MetricsStore]:
    store = MetricsStore(prefix="test_")
    yield store
    store.destroy()


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()
