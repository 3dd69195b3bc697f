"""Poll the application URL forever and post a webhook alert on every failure."""
import sys

from dotenv import load_dotenv
from loguru import logger
from prometheus_client import start_http_server

from core.config import MonitorConfig
from core.exceptions import ConfigurationError
from core.log import configure_logging
from core.monitor import HealthMonitor


def main():
    load_dotenv(".env")
    configure_logging()

    try:
        config = MonitorConfig.from_env()
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    if config.metrics_port:
        start_http_server(config.metrics_port)
        logger.info(f"Metrics exposed on :{config.metrics_port}/metrics")

    try:
        HealthMonitor(config).run()
    except KeyboardInterrupt:
        logger.info("Health monitor stopped")


if __name__ == "__main__":
    main()
