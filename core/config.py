# core/config.py
"""Runtime configuration, built once from the environment at startup.

Entry points load ``.env`` (python-dotenv) before building these, so values
from the file and from the process environment are read the same way.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError

DEFAULT_NAMESPACE = "naveenkumar492"
DEFAULT_ALERT_MESSAGE = "🚨 React Application is DOWN!"


class DeployConfig(BaseSettings):
    """Deployer settings.

    Env vars use the ``DEPLOY_`` prefix::

        export DEPLOY_PORT=9090
        export DEPLOY_FORCE_EVICT=true

    ``branch`` is resolved separately (see ``GitManager.resolve_branch``) and
    passed in by the caller.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_", env_ignore_empty=True, frozen=True
    )

    branch: str
    port: int = Field(default=8080, ge=1, le=65535)
    container_name: str = "project1-container"
    image_name: str = "project1"
    registry_namespace: str = DEFAULT_NAMESPACE
    container_port: int = Field(default=80, ge=1, le=65535)
    restart_policy: str = "unless-stopped"
    port_scan_attempts: int = Field(default=20, ge=1)
    health_wait_attempts: int = Field(default=30, ge=1)
    health_wait_interval: float = Field(default=2.0, ge=0)
    force_evict: bool = False
    verify: bool = True
    verify_delay: float = Field(default=5.0, ge=0)
    verify_timeout: float = Field(default=10.0, gt=0)
    stop_timeout: int = Field(default=10, ge=0)
    pushgateway_url: Optional[str] = None

    @classmethod
    def from_env(cls, branch: str) -> "DeployConfig":
        try:
            config = cls(branch=branch)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid deploy configuration: {e}") from e
        logger.debug(f"Loaded deploy config: {config}")
        return config


class MonitorConfig(BaseSettings):
    """Health monitor settings, read from ``WEBHOOK_URL``, ``APP_URL`` and friends."""

    model_config = SettingsConfigDict(env_ignore_empty=True, frozen=True)

    webhook_url: str = Field(min_length=1)
    app_url: str = "http://localhost:80"
    check_interval: float = Field(default=60.0, ge=0)
    probe_timeout: float = Field(default=10.0, gt=0)
    alert_message: str = DEFAULT_ALERT_MESSAGE
    metrics_port: Optional[int] = Field(default=None, ge=1, le=65535)

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid monitor configuration: {e}") from e
