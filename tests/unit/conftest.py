import pytest

from networks import radiator_network, two_node_network


@pytest.fixture
def two_node():
    return two_node_network()


@pytest.fixture
def radiator():
    return radiator_network()
