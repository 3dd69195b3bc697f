from loguru import logger
from prometheus_client import CollectorRegistry, Counter, push_to_gateway

# deploy runs are short-lived, their counters are pushed rather than scraped
DEPLOY_REGISTRY = CollectorRegistry()

DEPLOYMENT_COUNTER = Counter(
    'deployer_deployments_total',
    'Total number of deployment runs by outcome',
    ['status'],
    registry=DEPLOY_REGISTRY,
)

PORT_EVICTION_COUNTER = Counter(
    'deployer_port_evictions_total',
    'Total number of containers force-stopped to free a port',
    registry=DEPLOY_REGISTRY,
)

PROBE_FAILURE_COUNTER = Counter(
    'monitor_probe_failures_total',
    'Total number of failed application health probes'
)

ALERT_COUNTER = Counter(
    'monitor_alerts_total',
    'Total number of alert webhooks sent, by delivery result',
    ['delivered'],
)


def push_deploy_metrics(gateway: str, job: str = "deployer") -> bool:
    try:
        push_to_gateway(gateway, job=job, registry=DEPLOY_REGISTRY)
        return True
    except OSError as e:
        logger.warning(f"Could not push metrics to {gateway}: {e}")
        return False
