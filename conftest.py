# Make `import web_relay` work when pytest is run from the repository root
# without installing the package first.
import os
import sys

import pytest
from fastapi.testclient import TestClient

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from web_relay.relay.engine import RelayEngine, RelaySettings  # noqa: E402
from web_relay.utils_tests.mock_transport import RecordingTransport  # noqa: E402


@pytest.fixture
def relay_client(monkeypatch):
    """
    Factory returning a TestClient for the real application whose relay
    engine talks to ``transport`` instead of the network.
    """
    from web_relay.server import app

    def _create(transport: RecordingTransport, settings=None):
        engine = RelayEngine(settings or RelaySettings(), transport=transport)
        monkeypatch.setattr(app.state, "relay_engine", engine)
        return TestClient(app, raise_server_exceptions=False)

    return _create
