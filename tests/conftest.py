import pytest

import syncbroker


@pytest.fixture
def transport() -> syncbroker.LocalTransport:
    return syncbroker.LocalTransport()


@pytest.fixture
def dispatcher(transport: syncbroker.LocalTransport) -> syncbroker.Dispatcher:
    return syncbroker.Dispatcher(syncbroker.Registry(), transport)


@pytest.fixture(autouse=True)
def clear_collected_exceptions() -> None:
    syncbroker.handlers.exceptions_caught.clear()
