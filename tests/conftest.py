# tests/conftest.py
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.config import DeployConfig  # noqa: E402


# ---------------------------------------------------------------------------
# Patch docker for all tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def patch_docker_client():
    """
    Prevent docker.from_env() from contacting the host.
    """
    fake_client = MagicMock()
    fake_client.containers = MagicMock()
    fake_client.images = MagicMock()

    with patch("docker.from_env", return_value=fake_client):
        yield fake_client


@pytest.fixture
def deploy_config():
    return DeployConfig(branch="main", verify=False)


@pytest.fixture
def fake_engine():
    """ContainerEngine stand-in whose happy path deploys cleanly."""
    engine = MagicMock()
    engine.list_containers.return_value = []
    engine.image_exists.return_value = True
    engine.pull_image.return_value = True
    engine.is_running.return_value = True
    engine.describe.return_value = []

    container = MagicMock()
    container.id = "0123456789abcdef"
    engine.run_container.return_value = container
    return engine


@pytest.fixture
def fake_ports():
    ports = MagicMock()
    ports.is_port_free.return_value = True
    return ports
