# core/images.py
"""Branch name to image reference mapping."""
import re
from typing import Callable

from loguru import logger

from core.config import DeployConfig

_UNSAFE_TAG_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

PROD_BRANCHES = ("master", "main")
DEV_BRANCH = "dev"


def sanitize_branch(branch: str) -> str:
    return _UNSAFE_TAG_CHARS.sub("-", branch)


def is_registry_image(image: str, namespace: str) -> bool:
    return image.startswith(f"{namespace}/")


def resolve_image(
    branch: str, config: DeployConfig, image_exists: Callable[[str], bool]
) -> str:
    """
    Pick the image for ``branch``.

    dev deploys the dev tag, master/main the prod tag. Any other branch gets its
    own sanitized tag when that image is present locally, otherwise the local
    ``<image_name>:latest``. Unknown branches never raise.
    """
    ns = config.registry_namespace
    if branch == DEV_BRANCH:
        logger.info("Deploying dev version...")
        return f"{ns}/dev:dev"
    if branch in PROD_BRANCHES:
        logger.info("Deploying production version...")
        return f"{ns}/prod:prod"

    logger.info("Deploying feature branch version...")
    image = f"{ns}/dev:{sanitize_branch(branch)}"
    if not image_exists(image):
        logger.warning(f"Feature branch image {image} not found, using local latest image")
        image = f"{config.image_name}:latest"
    return image
