import os
import sys

from dotenv import load_dotenv
from loguru import logger

from core.config import DeployConfig
from core.deployer import Deployer
from core.exceptions import ConfigurationError
from core.git_manager import GitManager
from core.log import configure_logging
from core.metrics import push_deploy_metrics


def main():
    # .env from the working directory; real environment variables win
    load_dotenv(".env")
    configure_logging()

    try:
        branch = GitManager(os.getenv("REPO_PATH", ".")).resolve_branch(os.environ)
        config = DeployConfig.from_env(branch)
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    try:
        result = Deployer(config).deploy()
    except Exception as e:
        logger.exception(f"Fatal error during execution: {e}")
        sys.exit(1)
    finally:
        if config.pushgateway_url:
            push_deploy_metrics(config.pushgateway_url)

    if not result.ok:
        logger.critical(f"Deployment Failed: {result.error}")
        sys.exit(1)

    logger.success("🎉 Deployment completed successfully!")
    logger.success(f"🌐 Access your application at: {result.url}")


if __name__ == "__main__":
    main()
