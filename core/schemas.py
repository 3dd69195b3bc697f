from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class DeploymentState(str, Enum):
    """Deployment sequencer states."""

    CLEANING_UP = "cleaning_up"
    PORT_RESOLVING = "port_resolving"
    IMAGE_RESOLVING = "image_resolving"
    PULLING = "pulling"
    STARTING = "starting"
    HEALTH_WAITING = "health_waiting"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


class DeploymentRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    branch: str
    port: int
    container_name: str
    image: str


class DeploymentResult(BaseModel):
    status: str
    state: DeploymentState
    branch: str
    request: Optional[DeploymentRequest] = None
    container_id: Optional[str] = None
    restart_policy: Optional[str] = None
    verified: Optional[bool] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def url(self) -> Optional[str]:
        if self.request is None:
            return None
        return f"http://localhost:{self.request.port}"
