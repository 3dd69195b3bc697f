# core/engine.py
from typing import Any, List, Optional

import docker.errors
from loguru import logger

from core.exceptions import ContainerStartError
from core.network import parse_docker_port_mapping


class ContainerEngine:
    def __init__(self, client: Optional[Any] = None):
        self._client = client

    def _ensure_client(self):
        if self._client is None:
            import docker

            self._client = docker.from_env()
        return self._client

    @property
    def client(self):
        return self._ensure_client()

    @client.setter
    def client(self, value):
        self._client = value

    def list_containers(self, name: str, all: bool = True) -> List[Any]:
        # the engine's name filter is a substring match, keep exact names only
        containers = self.client.containers.list(all=all, filters={"name": name})
        return [c for c in containers if getattr(c, "name", None) == name]

    def is_running(self, name: str) -> bool:
        containers = self.client.containers.list(
            filters={"name": name, "status": "running"}
        )
        return any(getattr(c, "name", None) == name for c in containers)

    def containers_publishing(self, port: int) -> List[Any]:
        containers = self.client.containers.list(filters={"publish": str(port)})
        matching = []
        for c in containers:
            ports = getattr(c, "ports", None)
            # unknown mapping: trust the engine-side filter
            if not isinstance(ports, dict) or not ports:
                matching.append(c)
                continue
            for bindings in ports.values():
                if parse_docker_port_mapping(bindings) == port:
                    matching.append(c)
                    break
        return matching

    def stop_container(self, container_id: str, timeout: int = 10):
        c = self.client.containers.get(container_id)
        c.stop(timeout=timeout)

    def remove_container(self, container_id: str, force: bool = False):
        c = self.client.containers.get(container_id)
        c.remove(force=force)

    def prune_containers(self) -> dict:
        return self.client.containers.prune()

    def image_exists(self, image: str) -> bool:
        try:
            self.client.images.get(image)
            return True
        except docker.errors.ImageNotFound:
            return False
        except docker.errors.APIError as e:
            # e.g. "invalid reference format" for odd branch tags
            logger.debug(f"Lookup of {image} failed: {e}")
            return False

    def pull_image(self, image: str) -> bool:
        repository, _, tag = image.rpartition(":")
        if not repository or "/" in tag:
            repository, tag = image, "latest"
        try:
            self.client.images.pull(repository, tag=tag)
            return True
        except docker.errors.APIError as e:
            logger.warning(f"Pull of {image} failed: {e}")
            return False

    def run_container(
        self,
        image: str,
        name: str,
        host_port: int,
        container_port: int = 80,
        restart_policy: str = "unless-stopped",
    ):
        try:
            return self.client.containers.run(
                image,
                name=name,
                detach=True,
                ports={f"{container_port}/tcp": host_port},
                restart_policy={"Name": restart_policy},
            )
        except docker.errors.DockerException as e:
            raise ContainerStartError(f"Failed to start {name} from {image}: {e}") from e

    def container_logs(self, name: str, tail: int = 50) -> str:
        c = self.client.containers.get(name)
        logs = c.logs(tail=tail)
        if isinstance(logs, bytes):
            return logs.decode("utf-8", errors="replace")
        return str(logs)

    def container_state(self, name: str) -> str:
        c = self.client.containers.get(name)
        state = c.attrs.get("State", {})
        return f"{state.get('Status', 'unknown')}: {state.get('Error', '')}"

    def describe(self, name: str) -> List[dict]:
        apps = []
        for c in self.list_containers(name, all=False):
            apps.append(
                {
                    "name": getattr(c, "name", None),
                    "status": getattr(c, "status", None),
                    "ports": getattr(c, "ports", None),
                }
            )
        return apps
