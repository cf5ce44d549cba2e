import logging

import pytest

from fakes import FakePeerConnection
from realtime_session.engine.transport import TransportSession


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture
def peer_connection():
    return FakePeerConnection()


@pytest.fixture
def transport(peer_connection):
    return TransportSession(peer_connection)
