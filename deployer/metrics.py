# deployer/metrics.py
from prometheus_client import REGISTRY, Counter, write_to_textfile

DEPLOYMENT_COUNTER = Counter(
    'robust_deploy_deployments_total',
    'Deployment runs by terminal status',
    ['status'],
)

ROLLBACK_COUNTER = Counter(
    'robust_deploy_rollbacks_total',
    'Rollback attempts by outcome',
    ['outcome'],
)

HEALTH_PROBE_COUNTER = Counter(
    'robust_deploy_health_probes_total',
    'Health probe attempts against freshly started containers',
)


def write_metrics(path: str, registry=REGISTRY) -> None:
    """Dump the registry in node-exporter textfile format."""
    write_to_textfile(path, registry)
