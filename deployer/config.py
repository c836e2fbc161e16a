"""Deployment configuration.

Values are resolved in order: built-in defaults, ``DEPLOY_*`` environment
variables (a local ``.env`` is loaded first), then ``--flag value`` pairs from
the command line. The resulting config is frozen for the rest of the run.
"""
from __future__ import annotations

import os
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Sequence

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

ENV_PREFIX = "DEPLOY_"

# Generated per run, never taken from the outside.
_NOT_OVERRIDABLE = {"deployment_id"}


def new_deployment_id(clock: Callable[[], float] = time.time) -> str:
    return f"deploy-{int(clock() * 1000)}"


class DeploymentConfig(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    image_name: str = "app"
    container_prefix: str = "app-service"
    port: int = Field(default=8080, gt=0, lt=65536)
    internal_port: int = Field(default=3000, gt=0, lt=65536)
    health_path: str = "/health"
    health_retries: int = Field(default=30, ge=1)
    health_interval_seconds: float = Field(default=2.0, ge=0)
    health_timeout_seconds: float = Field(default=10.0, gt=0)
    max_memory: str = "512m"
    max_cpu: float = Field(default=0.5, gt=0)
    environment: str = "production"
    deployment_id: str = Field(default_factory=new_deployment_id)

    build_context: str = "."
    build_target: Optional[str] = "production"
    volume: Optional[str] = "app-data:/app/data"
    lint_command: str = "npm run early-check"
    build_command: str = "npm run build"
    security_scan_command: str = "npm run security:scan"
    smoke_max_latency_ms: float = Field(default=5000.0, gt=0)
    image_prune_age: str = "24h"
    logs_dir: str = "logs"
    mode: Literal["robust", "local"] = "robust"
    runtime: Literal["sdk", "cli"] = "sdk"
    deadline_seconds: Optional[float] = Field(default=None, gt=0)
    metrics_file: Optional[str] = None

    @property
    def image_tag(self) -> str:
        return f"{self.image_name}:{self.deployment_id}"

    @property
    def container_name(self) -> str:
        return f"{self.container_prefix}-{self.deployment_id}"

    @property
    def health_url(self) -> str:
        path = self.health_path if self.health_path.startswith("/") else f"/{self.health_path}"
        return f"http://localhost:{self.port}{path}"

    @property
    def log_file(self) -> Path:
        return Path(self.logs_dir) / f"deployment-{self.deployment_id}.log"

    @property
    def report_file(self) -> Path:
        return Path(self.logs_dir) / f"deployment-report-{self.deployment_id}.json"


def _field_names() -> Dict[str, str]:
    """Map every accepted spelling (field name and alias) to the field name."""
    lookup = {}
    for name, field in DeploymentConfig.model_fields.items():
        if name in _NOT_OVERRIDABLE:
            continue
        lookup[name] = name
        if field.alias:
            lookup[field.alias] = name
    return lookup


def normalize_key(key: str) -> str:
    """``--image-name``, ``imageName`` and ``image_name`` all become ``image_name``."""
    key = key.lstrip("-").replace("-", "_")
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key).lower()


def cli_overrides(argv: Sequence[str]) -> Dict[str, str]:
    """Collect ``--flag value`` pairs. Unknown flags and dangling flags are ignored."""
    known = _field_names()
    overrides: Dict[str, str] = {}
    for i in range(0, len(argv), 2):
        key = argv[i]
        if not key.startswith("--") or i + 1 >= len(argv):
            continue
        name = known.get(normalize_key(key))
        if name is not None:
            overrides[name] = argv[i + 1]
    return overrides


def env_overrides(environ: Mapping[str, str]) -> Dict[str, str]:
    overrides = {}
    for name in _field_names().values():
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value != "":
            overrides[name] = value
    return overrides


def build_config(overrides: Dict[str, Any], deployment_id: str) -> DeploymentConfig:
    """Build a config, dropping (with a warning) overrides that fail validation."""
    try:
        return DeploymentConfig(deployment_id=deployment_id, **overrides)
    except ValidationError as e:
        known = _field_names()
        rejected = set()
        for err in e.errors():
            if err.get("loc"):
                name = known.get(str(err["loc"][0]))
                if name:
                    rejected.add(name)
        for name in sorted(rejected):
            logger.warning(
                f"Ignoring invalid value for '{name}': {overrides.get(name)!r}"
            )
        kept = {k: v for k, v in overrides.items() if k not in rejected}
        return DeploymentConfig(deployment_id=deployment_id, **kept)


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    clock: Callable[[], float] = time.time,
) -> DeploymentConfig:
    if environ is None:
        load_dotenv(Path(".env"))
        environ = os.environ

    overrides: Dict[str, Any] = {}
    overrides.update(env_overrides(environ))
    overrides.update(cli_overrides(list(argv or [])))
    return build_config(overrides, new_deployment_id(clock))
