import gc

import pytest

from lifecycle import LifecycleManager


@pytest.fixture
def sink():
    """collects (exception, identity, class) triples reported by finalizers"""
    return []


@pytest.fixture
def manager(sink):
    """a fresh lifecycle manager that reports finalizer failures into `sink`"""
    return LifecycleManager(error_sink=lambda exc, identity, cls: sink.append((exc, identity, cls)))


@pytest.fixture
def collect():
    """force a collection so unreachable objects are finalized"""
    def _collect():
        gc.collect()
    return _collect
