import time
from typing import Callable, Optional

import requests
from loguru import logger
from requests.exceptions import RequestException

from core.config import MonitorConfig
from core.metrics import ALERT_COUNTER, PROBE_FAILURE_COUNTER


class HealthMonitor:
    def __init__(
        self,
        config: MonitorConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.sleep = sleep

    def run(self, max_cycles: Optional[int] = None):
        logger.info(
            f"Health monitor started. Watching {self.config.app_url} "
            f"every {self.config.check_interval:g}s"
        )
        cycle = 0
        while max_cycles is None or cycle < max_cycles:
            self.check_once()
            cycle += 1
            if max_cycles is None or cycle < max_cycles:
                self.sleep(self.config.check_interval)

    def check_once(self) -> bool:
        if self.probe():
            return True
        PROBE_FAILURE_COUNTER.inc()
        logger.error("Application is down! Sending alert...")
        self.send_alert()
        return False

    def probe(self) -> bool:
        try:
            response = requests.get(self.config.app_url, timeout=self.config.probe_timeout)
        except RequestException as e:
            logger.debug(f"Probe of {self.config.app_url} failed: {e}")
            return False
        # same rule as `curl -f`: 4xx and 5xx are failures
        if response.status_code >= 400:
            logger.debug(f"Probe of {self.config.app_url} returned {response.status_code}")
            return False
        return True

    def send_alert(self) -> bool:
        try:
            response = requests.post(
                self.config.webhook_url,
                json={"text": self.config.alert_message},
                timeout=self.config.probe_timeout,
            )
            response.raise_for_status()
        except RequestException as e:
            logger.warning(f"Alert delivery to webhook failed: {e}")
            ALERT_COUNTER.labels(delivered="false").inc()
            return False
        ALERT_COUNTER.labels(delivered="true").inc()
        return True
