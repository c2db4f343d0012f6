import pytest

from tests.fakes import FakeServer, make_subject


@pytest.fixture
def subject():
    return make_subject(specimens=2, observations=3)


@pytest.fixture
def server():
    return FakeServer()
