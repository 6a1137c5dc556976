import pytest

from fakes import FakeSession

from vmomi_exporter.counter import CounterInfo
from vmomi_exporter.entity import Entity, ManagedEntityType


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def cpu_usage():
    return CounterInfo(id=1,
                       group="cpu",
                       name="usage",
                       name_summary="CPU usage as a percentage during the interval",
                       rollup="average",
                       stats="rate",
                       unit="percent")


@pytest.fixture
def host():
    return Entity(id="host-1", name="h1", type=ManagedEntityType.HOST_SYSTEM)


@pytest.fixture
def vm():
    return Entity(id="vm-1", name="web01", type=ManagedEntityType.VIRTUAL_MACHINE)
