"""Tests for the deployment sequencer."""
from unittest.mock import MagicMock, call, patch

import docker.errors
import pytest
import requests

from core.config import DeployConfig
from core.deployer import Deployer
from core.engine import ContainerEngine
from core.exceptions import ContainerStartError, PortUnavailableError
from core.images import resolve_image
from core.schemas import DeploymentState


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def deployer(deploy_config, fake_engine, fake_ports, sleep):
    return Deployer(deploy_config, engine=fake_engine, port_manager=fake_ports, sleep=sleep)


class TestHappyPath:
    def test_deploy_success(self, deployer, fake_engine):
        result = deployer.deploy()

        assert result.ok
        assert result.state == DeploymentState.DONE
        assert result.container_id == "0123456789abcdef"
        assert result.request.image == "naveenkumar492/prod:prod"
        assert result.request.port == 8080
        assert result.request.container_name == "project1-container"
        assert result.restart_policy == "unless-stopped"
        assert result.url == "http://localhost:8080"
        fake_engine.run_container.assert_called_once_with(
            "naveenkumar492/prod:prod",
            name="project1-container",
            host_port=8080,
            container_port=80,
            restart_policy="unless-stopped",
        )

    def test_registry_image_is_pulled(self, deployer, fake_engine):
        deployer.deploy()
        fake_engine.pull_image.assert_called_once_with("naveenkumar492/prod:prod")

    def test_pull_failure_is_not_fatal(self, deployer, fake_engine):
        fake_engine.pull_image.return_value = False
        assert deployer.deploy().ok
        fake_engine.run_container.assert_called_once()

    def test_local_fallback_image_is_not_pulled(self, fake_engine, fake_ports, sleep):
        fake_engine.image_exists.return_value = False
        config = DeployConfig(branch="feature/login", verify=False)

        result = Deployer(config, fake_engine, fake_ports, sleep=sleep).deploy()

        assert result.request.image == "project1:latest"
        fake_engine.pull_image.assert_not_called()


class TestCleanup:
    def test_existing_container_removed_before_create(self, deploy_config, fake_ports, sleep):
        engine = MagicMock()
        existing = MagicMock(status="running", id="old0123456789")
        engine.list_containers.return_value = [existing]
        engine.is_running.return_value = True
        engine.describe.return_value = []
        engine.run_container.return_value = MagicMock(id="newcontainer1234")

        result = Deployer(deploy_config, engine, fake_ports, sleep=sleep).deploy()

        assert result.ok
        names = [c[0] for c in engine.mock_calls]
        assert names.index("stop_container") < names.index("remove_container")
        assert names.index("remove_container") < names.index("run_container")
        engine.stop_container.assert_called_once_with("old0123456789", timeout=10)
        engine.remove_container.assert_called_once_with("old0123456789", force=True)
        engine.list_containers.assert_called_once_with("project1-container", all=True)

    def test_stopped_container_only_removed(self, deployer, fake_engine):
        fake_engine.list_containers.return_value = [MagicMock(status="exited", id="old1")]

        deployer.deploy()

        fake_engine.stop_container.assert_not_called()
        fake_engine.remove_container.assert_called_once_with("old1", force=True)

    def test_stop_errors_are_ignored(self, deployer, fake_engine):
        fake_engine.list_containers.return_value = [MagicMock(status="running", id="old1")]
        fake_engine.stop_container.side_effect = docker.errors.APIError("cannot stop")

        assert deployer.deploy().ok
        fake_engine.remove_container.assert_called_once_with("old1", force=True)

    def test_prune_runs_and_errors_are_ignored(self, deployer, fake_engine):
        fake_engine.prune_containers.side_effect = docker.errors.APIError("prune in progress")
        assert deployer.deploy().ok
        fake_engine.prune_containers.assert_called_once()


class TestDockerErrors:
    def test_unreadable_branch_tag_falls_back_to_latest(self):
        client = MagicMock()
        client.images.get.side_effect = docker.errors.APIError("invalid reference format")
        engine = ContainerEngine(client=client)
        config = DeployConfig(branch="-x", verify=False)

        assert resolve_image(config.branch, config, engine.image_exists) == "project1:latest"

    def test_docker_error_ends_in_failed_state(self, deployer, fake_engine):
        fake_engine.image_exists.side_effect = docker.errors.APIError("daemon busy")
        deployer.config = DeployConfig(branch="feature/x", verify=False)

        result = deployer.deploy()

        assert result.status == "failed"
        assert result.state == DeploymentState.FAILED
        assert "daemon busy" in result.error
        fake_engine.run_container.assert_not_called()

    def test_cleanup_listing_error_ends_in_failed_state(self, deployer, fake_engine):
        fake_engine.list_containers.side_effect = docker.errors.APIError("socket closed")

        result = deployer.deploy()

        assert result.status == "failed"
        assert result.state == DeploymentState.FAILED


class TestPortResolution:
    def test_alternative_port(self, deployer, fake_ports, fake_engine):
        fake_ports.is_port_free.return_value = False
        fake_ports.find_available_port.return_value = 8083

        result = deployer.deploy()

        assert result.request.port == 8083
        fake_ports.find_available_port.assert_called_once_with(8080, 20)
        assert fake_engine.run_container.call_args.kwargs["host_port"] == 8083

    def test_exhausted_without_eviction_fails(self, deployer, fake_ports, fake_engine):
        fake_ports.is_port_free.return_value = False
        fake_ports.find_available_port.side_effect = PortUnavailableError(8080, 20)

        result = deployer.deploy()

        assert result.status == "failed"
        assert result.state == DeploymentState.FAILED
        fake_ports.evict.assert_not_called()
        fake_engine.run_container.assert_not_called()

    def test_forced_eviction_frees_requested_port(self, fake_engine, fake_ports, sleep):
        config = DeployConfig(branch="main", verify=False, force_evict=True)
        fake_ports.is_port_free.side_effect = [False, True]
        fake_ports.find_available_port.side_effect = PortUnavailableError(8080, 20)
        fake_ports.evict.return_value = ["abc"]

        result = Deployer(config, fake_engine, fake_ports, sleep=sleep).deploy()

        assert result.ok
        assert result.request.port == 8080
        fake_ports.evict.assert_called_once_with(8080, timeout=10)
        sleep.assert_any_call(3)

    def test_forced_eviction_still_busy_fails(self, fake_engine, fake_ports, sleep):
        config = DeployConfig(branch="main", verify=False, force_evict=True)
        fake_ports.is_port_free.return_value = False
        fake_ports.find_available_port.side_effect = PortUnavailableError(8080, 20)
        fake_ports.evict.return_value = ["abc"]

        result = Deployer(config, fake_engine, fake_ports, sleep=sleep).deploy()

        assert result.status == "failed"
        fake_engine.run_container.assert_not_called()

    def test_forced_eviction_without_container_conflict_fails(self, fake_engine, fake_ports, sleep):
        config = DeployConfig(branch="main", verify=False, force_evict=True)
        fake_ports.is_port_free.return_value = False
        fake_ports.find_available_port.side_effect = PortUnavailableError(8080, 20)
        fake_ports.evict.return_value = []

        result = Deployer(config, fake_engine, fake_ports, sleep=sleep).deploy()

        assert result.status == "failed"
        assert "8080" in result.error


class TestStartFailure:
    def test_start_failure_skips_wait_and_verify(self, fake_engine, fake_ports, sleep):
        config = DeployConfig(branch="main", verify=True)
        fake_engine.run_container.side_effect = ContainerStartError("port is already allocated")

        with patch("core.deployer.requests") as mock_requests:
            result = Deployer(config, fake_engine, fake_ports, sleep=sleep).deploy()

        assert result.status == "failed"
        assert result.state == DeploymentState.FAILED
        assert "already allocated" in result.error
        fake_engine.is_running.assert_not_called()
        mock_requests.get.assert_not_called()


class TestHealthWait:
    def test_timeout_after_configured_attempts(self, deployer, fake_engine, sleep):
        fake_engine.is_running.return_value = False
        fake_engine.container_logs.return_value = "crash loop"
        fake_engine.container_state.return_value = "exited: boom"

        result = deployer.deploy()

        assert result.status == "failed"
        assert result.state == DeploymentState.FAILED
        assert fake_engine.is_running.call_count == 30
        assert sleep.call_args_list == [call(2.0)] * 29
        fake_engine.container_logs.assert_called_once_with("project1-container", tail=50)
        fake_engine.container_state.assert_called_once_with("project1-container")

    def test_becomes_running_after_retries(self, deployer, fake_engine, sleep):
        fake_engine.is_running.side_effect = [False, False, True]

        assert deployer.deploy().ok
        assert fake_engine.is_running.call_count == 3

    def test_status_errors_count_as_not_running(self, deployer, fake_engine):
        fake_engine.is_running.side_effect = [docker.errors.APIError("busy"), True]
        assert deployer.deploy().ok

    def test_diagnostics_tolerate_missing_container(self, deployer, fake_engine):
        fake_engine.is_running.return_value = False
        fake_engine.container_logs.side_effect = docker.errors.NotFound("gone")
        fake_engine.container_state.side_effect = docker.errors.NotFound("gone")

        assert deployer.deploy().status == "failed"


class TestVerify:
    @pytest.fixture
    def verifying(self, fake_engine, fake_ports, sleep):
        config = DeployConfig(branch="main")
        return Deployer(config, fake_engine, fake_ports, sleep=sleep)

    def test_verify_ok(self, verifying, sleep):
        with patch("core.deployer.requests") as mock_requests:
            mock_requests.get.return_value = MagicMock(status_code=200)
            result = verifying.deploy()

        assert result.ok
        assert result.verified is True
        mock_requests.get.assert_called_once_with("http://localhost:8080", timeout=10.0)
        sleep.assert_any_call(5.0)

    def test_verify_non_200_is_warning_only(self, verifying):
        with patch("core.deployer.requests") as mock_requests:
            mock_requests.get.return_value = MagicMock(status_code=502)
            result = verifying.deploy()

        assert result.ok
        assert result.verified is False

    def test_verify_connection_refused_is_warning_only(self, verifying):
        with patch("core.deployer.requests") as mock_requests:
            mock_requests.get.side_effect = requests.ConnectionError("refused")
            result = verifying.deploy()

        assert result.ok
        assert result.verified is False

    def test_verify_disabled(self, deployer):
        with patch("core.deployer.requests") as mock_requests:
            result = deployer.deploy()

        assert result.verified is None
        mock_requests.get.assert_not_called()
