from unittest.mock import Mock

import pytest

from tests.fakes import FakeGateway, FakeModel, InMemoryStore
from tiaen.services.pipeline import PipelineCoordinator


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def coordinator(store, model, gateway):
    return PipelineCoordinator(
        store,
        model,
        gateway,
        system_prompt="You are a helpful assistant.",
        default_instance="main",
    )
