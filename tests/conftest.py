import pytest

from tests.fakes import FakeStackClient, make_provider


@pytest.fixture
def fake_client():
    """CloudFormation fake whose stacks settle immediately."""
    return FakeStackClient()


@pytest.fixture
def slow_fake_client():
    """CloudFormation fake whose stacks stay in progress until told otherwise."""
    return FakeStackClient(auto_complete=False)


@pytest.fixture
def provider(fake_client):
    return make_provider(fake_client)
