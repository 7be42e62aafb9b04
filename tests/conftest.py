import logging

import pytest

from tests.fakes import FakeClock

logging.getLogger("fhevm").setLevel(logging.DEBUG)


@pytest.fixture
def clock():
    return FakeClock()
