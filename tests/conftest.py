import pytest

from clients.device_storage import DeviceStorage
from fakes import FakeBackend
from services.participation import ParticipationStore


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def storage(tmp_path):
    return DeviceStorage(tmp_path / "device")


@pytest.fixture
def participation(storage):
    return ParticipationStore(storage)
