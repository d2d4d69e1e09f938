import socket
from unittest.mock import patch

import pytest

from tests.doubles import InMemoryRepository

UNIT_MARKER = 'unit'
INTEGRATION_MARKER = 'integration'


@pytest.fixture(autouse=True)
def check_test_marks_compatibility(request):
    all_test_markers = {x.name for x in request.node.iter_markers()}

    if not all_test_markers:
        pytest.fail('Test must be marked.')

    elif {UNIT_MARKER, INTEGRATION_MARKER} <= all_test_markers:
        pytest.fail('Test can not be both unit and integration at the same time.')


@pytest.fixture(autouse=True)
def configure_unit_tests(request):
    if request.node.get_closest_marker(UNIT_MARKER):

        def blocked_connect(*args, **kwargs):
            msg = (
                'Network access deprecated in unit test! '
                'Use mocks instead of real network calls. '
                f'Attempted connection: args={args}, kwargs={kwargs}'
            )
            pytest.fail(msg)

        with patch.object(socket.socket, 'connect', blocked_connect):
            yield
    else:
        yield


@pytest.fixture()
def repository() -> InMemoryRepository:
    return InMemoryRepository()
