"""Shared test fixtures."""

from __future__ import annotations

import pytest
from fakes import FakeChannelFactory, FakeClock


@pytest.fixture()
def channels() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
