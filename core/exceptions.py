# core/exceptions.py
"""Exception hierarchy for the deployer.

Only fatal conditions are raised. Recoverable fallbacks (missing feature
image, failed pull, busy preferred port) are logged where they happen.
"""


class DeployerError(Exception):
    """Base class for every fatal deployment error."""


class ConfigurationError(DeployerError):
    """Environment could not be turned into a valid configuration."""


class PortUnavailableError(DeployerError):
    """No free host port could be found for the container."""

    def __init__(self, port: int, attempts: int = 1):
        self.port = port
        self.attempts = attempts
        if attempts > 1:
            msg = f"No free port in range {port}-{port + attempts - 1}"
        else:
            msg = f"Port {port} is not available"
        super().__init__(msg)


class ContainerStartError(DeployerError):
    """The container engine refused to create or start the container."""


class HealthWaitTimeout(DeployerError):
    """Container never reached the running state."""

    def __init__(self, container_name: str, attempts: int):
        self.container_name = container_name
        self.attempts = attempts
        super().__init__(
            f"Container {container_name} not running after {attempts} checks"
        )
