# core/deployer.py
"""Single-run container replacement for a branch build.

The run is a linear sequence of states (see ``DeploymentState``). Fallbacks
(missing feature image, failed pull, busy preferred port) are logged and the
run continues; a ``DeployerError`` or an unhandled docker error ends it in
FAILED.
"""
import time
from typing import Callable, Optional

import docker.errors
import requests
from loguru import logger
from requests.exceptions import RequestException

from core.config import DeployConfig
from core.engine import ContainerEngine
from core.exceptions import DeployerError, HealthWaitTimeout, PortUnavailableError
from core.images import is_registry_image, resolve_image
from core.metrics import DEPLOYMENT_COUNTER, PORT_EVICTION_COUNTER
from core.network import PortManager
from core.retry import poll
from core.schemas import DeploymentRequest, DeploymentResult, DeploymentState

EVICTION_SETTLE_SECONDS = 3
DIAGNOSTIC_LOG_LINES = 50


class Deployer:
    def __init__(
        self,
        config: DeployConfig,
        engine: Optional[ContainerEngine] = None,
        port_manager: Optional[PortManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.engine = engine or ContainerEngine()
        self.ports = port_manager or PortManager(self.engine)
        self.sleep = sleep
        self.state = DeploymentState.CLEANING_UP

    def _enter(self, state: DeploymentState):
        logger.debug(f"Deployment state: {self.state.value} -> {state.value}")
        self.state = state

    def deploy(self) -> DeploymentResult:
        cfg = self.config
        request = None
        container_id = None
        logger.info("🚀 Starting deployment process...")
        logger.info(f"Current branch: {cfg.branch}")

        try:
            self._enter(DeploymentState.CLEANING_UP)
            self.cleanup()

            self._enter(DeploymentState.PORT_RESOLVING)
            port = self.resolve_port()

            self._enter(DeploymentState.IMAGE_RESOLVING)
            image = resolve_image(cfg.branch, cfg, self.engine.image_exists)
            request = DeploymentRequest(
                branch=cfg.branch,
                port=port,
                container_name=cfg.container_name,
                image=image,
            )
            logger.info(f"📦 Deploying image: {image}")

            if is_registry_image(image, cfg.registry_namespace):
                self._enter(DeploymentState.PULLING)
                self.pull(image)

            self._enter(DeploymentState.STARTING)
            container = self.engine.run_container(
                image,
                name=cfg.container_name,
                host_port=port,
                container_port=cfg.container_port,
                restart_policy=cfg.restart_policy,
            )
            container_id = getattr(container, "id", None)
            logger.success(f"Container started with ID: {str(container_id)[:12]}")

            self._enter(DeploymentState.HEALTH_WAITING)
            self.wait_until_running()
        except HealthWaitTimeout as e:
            self._enter(DeploymentState.FAILED)
            logger.error(f"❌ Deployment failed: {e}")
            self.dump_diagnostics()
            return self._finish("failed", request, container_id, error=str(e))
        except DeployerError as e:
            self._enter(DeploymentState.FAILED)
            logger.error(f"❌ Deployment failed: {e}")
            return self._finish("failed", request, container_id, error=str(e))
        except docker.errors.DockerException as e:
            failed_in = self.state.value
            self._enter(DeploymentState.FAILED)
            logger.error(f"❌ Docker error while {failed_in}: {e}")
            return self._finish("failed", request, container_id, error=str(e))

        logger.success("Container deployed successfully!")
        verified = None
        if cfg.verify:
            self._enter(DeploymentState.VERIFYING)
            verified = self.verify(request.port)

        self._enter(DeploymentState.DONE)
        result = self._finish("ok", request, container_id, verified=verified)
        self.log_summary(result)
        return result

    def _finish(self, status, request, container_id, verified=None, error=None):
        DEPLOYMENT_COUNTER.labels(status=status).inc()
        return DeploymentResult(
            status=status,
            state=self.state,
            branch=self.config.branch,
            request=request,
            container_id=container_id,
            restart_policy=self.config.restart_policy if request else None,
            verified=verified,
            error=error,
        )

    def cleanup(self):
        """Stop and remove every container that already carries the target name."""
        name = self.config.container_name
        logger.info("🛑 Cleaning up existing deployment...")
        for container in self.engine.list_containers(name, all=True):
            if getattr(container, "status", None) == "running":
                logger.info("Stopping existing container...")
                try:
                    self.engine.stop_container(container.id, timeout=self.config.stop_timeout)
                except docker.errors.APIError as e:
                    logger.warning(f"Stop of {name} failed, removing anyway: {e}")
            logger.info("Removing existing container...")
            try:
                self.engine.remove_container(container.id, force=True)
            except docker.errors.NotFound:
                logger.debug(f"{name} already removed")
            except docker.errors.APIError as e:
                logger.warning(f"Removal of {name} failed: {e}")

        try:
            self.engine.prune_containers()
        except docker.errors.APIError as e:
            logger.debug(f"Container prune skipped: {e}")

    def resolve_port(self) -> int:
        cfg = self.config
        preferred = cfg.port
        logger.info("🔍 Checking port availability...")
        if self.ports.is_port_free(preferred):
            logger.success(f"Port {preferred} is available")
            return preferred

        logger.warning(f"Port {preferred} is already in use, trying to find an alternative...")
        try:
            port = self.ports.find_available_port(preferred, cfg.port_scan_attempts)
            logger.success(f"Using alternative port: {port}")
            return port
        except PortUnavailableError:
            if not cfg.force_evict:
                logger.error(
                    f"Could not find an available port. Free port {preferred}, "
                    "set DEPLOY_PORT, or enable DEPLOY_FORCE_EVICT."
                )
                raise

        logger.warning(f"Could not find available port. Trying to force cleanup of port {preferred}...")
        evicted = self.ports.evict(preferred, timeout=cfg.stop_timeout)
        if not evicted:
            logger.error(
                f"Port {preferred} is not available and no Docker container conflict detected."
            )
            raise PortUnavailableError(preferred)

        PORT_EVICTION_COUNTER.inc(len(evicted))
        self.sleep(EVICTION_SETTLE_SECONDS)
        if self.ports.is_port_free(preferred):
            logger.success(f"Port {preferred} is now available")
            return preferred
        logger.error(f"Port {preferred} is still not available. Please manually check what's using it.")
        raise PortUnavailableError(preferred)

    def pull(self, image: str):
        logger.info("📥 Pulling latest image...")
        if self.engine.pull_image(image):
            logger.success(f"Pulled {image}")
        else:
            logger.warning("Could not pull image, using local version")

    def wait_until_running(self):
        name = self.config.container_name
        total = self.config.health_wait_attempts
        attempt = 0

        def _check() -> bool:
            nonlocal attempt
            attempt += 1
            try:
                running = self.engine.is_running(name)
            except docker.errors.APIError as e:
                logger.debug(f"Status check failed: {e}")
                running = False
            if running:
                logger.success(f"Container is running (attempt {attempt}/{total})")
            else:
                logger.info(f"🔄 Waiting... (attempt {attempt}/{total})")
            return running

        logger.info("⏳ Waiting for container to be ready...")
        result = poll(_check, total, self.config.health_wait_interval, sleep=self.sleep)
        if not result.succeeded:
            raise HealthWaitTimeout(name, result.attempts)

    def dump_diagnostics(self):
        name = self.config.container_name
        try:
            logs = self.engine.container_logs(name, tail=DIAGNOSTIC_LOG_LINES)
        except docker.errors.DockerException:
            logs = "No logs available"
        logger.error(f"🔍 Container logs:\n{logs}")

        try:
            state = self.engine.container_state(name)
        except docker.errors.DockerException:
            state = "Container not found"
        logger.error(f"🔍 Container state: {state}")

    def verify(self, port: int) -> bool:
        """HTTP check of the published port. Never fails the deployment."""
        url = f"http://localhost:{port}"
        logger.info("🧪 Testing application response...")
        self.sleep(self.config.verify_delay)
        try:
            response = requests.get(url, timeout=self.config.verify_timeout)
        except RequestException as e:
            logger.warning(f"Could not connect to application: {e}")
            return False
        if response.status_code == 200:
            logger.success("Application is responding successfully!")
            return True
        logger.warning(f"Application returned HTTP status: {response.status_code}")
        return False

    def log_summary(self, result: DeploymentResult):
        req = result.request
        logger.info("📋 Deployment Summary:")
        logger.info(f"  🌟 Branch: {req.branch}")
        logger.info(f"  📦 Image: {req.image}")
        logger.info(f"  🐳 Container: {req.container_name}")
        logger.info(f"  🌐 URL: {result.url}")
        logger.info(f"  🔄 Restart Policy: {result.restart_policy}")
        try:
            for app in self.engine.describe(req.container_name):
                logger.info(f"📊 {app['name']}\t{app['status']}\t{app['ports']}")
        except docker.errors.APIError as e:
            logger.debug(f"Status listing failed: {e}")
