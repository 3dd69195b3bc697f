import errno
import socket
from contextlib import closing
from typing import Any, List, Optional

import docker.errors
from loguru import logger

from core.exceptions import PortUnavailableError


def validate_port(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    if 1 <= value <= 65535:
        return value
    return None


def parse_docker_port_mapping(ports: Any) -> Optional[int]:
    """
    Pull the first host port out of whatever the docker SDK reports:
    a plain port, a list of bindings, or a {"80/tcp": [bindings]} dict.
    """
    if ports is None:
        return None
    if isinstance(ports, (int, str)):
        return validate_port(ports)
    if isinstance(ports, list):
        for binding in ports:
            if isinstance(binding, dict) and "HostPort" in binding:
                port = validate_port(binding["HostPort"])
                if port is not None:
                    return port
        return None
    if isinstance(ports, dict):
        for bindings in ports.values():
            port = parse_docker_port_mapping(bindings) if isinstance(bindings, list) else None
            if port is not None:
                return port
    return None


class PortManager:
    def __init__(self, engine: Any, host: str = "127.0.0.1"):
        self.engine = engine
        self.host = host

    def is_port_open(self, host: str, port: int) -> bool:
        try:
            with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
                sock.settimeout(1)
                return sock.connect_ex((host, port)) == 0
        except (OSError, OverflowError):
            return False

    def can_bind(self, port: int) -> bool:
        """
        Whether the engine could publish ``port`` on every address. A listener on
        any local address (not just loopback) makes the wildcard bind fail.
        """
        families = [(socket.AF_INET, "")]
        if socket.has_ipv6:
            families.append((socket.AF_INET6, "::"))

        for family, address in families:
            try:
                sock = socket.socket(family, socket.SOCK_STREAM)
            except OSError:
                continue
            with closing(sock):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                if family == socket.AF_INET6:
                    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                try:
                    sock.bind((address, port))
                except OSError as e:
                    if e.errno == errno.EADDRINUSE:
                        return False
        return True

    def is_port_free(self, port: int) -> bool:
        # fresh probe every call, never cached
        if self.is_port_open(self.host, port):
            return False
        if not self.can_bind(port):
            return False
        if self.engine.containers_publishing(port):
            return False
        return True

    def find_available_port(self, start_port: int, max_attempts: int = 20) -> int:
        for port in range(start_port, start_port + max_attempts):
            if port > 65535:
                break
            if self.is_port_free(port):
                return port
        raise PortUnavailableError(start_port, max_attempts)

    def evict(self, port: int, timeout: int = 10) -> List[str]:
        """Stop and remove every container publishing ``port``."""
        evicted = []
        for c in self.engine.containers_publishing(port):
            cid = getattr(c, "id", None) or getattr(c, "name", "")
            logger.warning(f"Force stopping container {str(cid)[:12]} using port {port}")
            try:
                self.engine.stop_container(cid, timeout=timeout)
            except docker.errors.APIError as e:
                logger.warning(f"Stop of {str(cid)[:12]} failed: {e}")
            try:
                self.engine.remove_container(cid, force=True)
            except docker.errors.APIError as e:
                logger.warning(f"Removal of {str(cid)[:12]} failed: {e}")
            evicted.append(cid)
        return evicted
