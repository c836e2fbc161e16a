# deployer/report.py
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ContainerPair(BaseModel):
    current: Optional[str] = None
    previous: Optional[str] = None


class DeploymentReport(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    deployment_id: str
    timestamp: str
    config: Dict[str, Any]
    containers: ContainerPair
    log_file: Optional[str] = None
    status: Literal["success", "failed"]
    error: Optional[str] = None
    rollback_success: Optional[bool] = None
    duration_ms: Optional[int] = None

    @classmethod
    def build(
        cls,
        config,
        current: Optional[str],
        previous: Optional[str],
        status: str,
        log_file: Optional[Path] = None,
        error: Optional[str] = None,
        rollback_success: Optional[bool] = None,
        duration_ms: Optional[int] = None,
    ) -> "DeploymentReport":
        return cls(
            deployment_id=config.deployment_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            config=config.model_dump(mode="json", by_alias=True),
            containers=ContainerPair(current=current, previous=previous),
            log_file=str(log_file) if log_file is not None else None,
            status=status,
            error=error,
            rollback_success=rollback_success,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # current/previous are always present, even when unknown
        data["containers"] = self.containers.model_dump(mode="json")
        return data


def write_report(report: DeploymentReport, path: Path, logger) -> Optional[Path]:
    """Write the report as JSON. Failures are logged, never raised."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report.to_dict(), f, indent=2)
            f.write("\n")
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write deployment report: {e}")
        return None
    logger.info(f"Deployment report saved: {path}")
    return path
