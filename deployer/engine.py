# deployer/engine.py
"""Container runtime access.

``ContainerRuntime`` is the narrow surface the pipeline talks to. Two
implementations ship: ``DockerEngine`` over the docker SDK and
``DockerCliEngine`` over the ``docker`` command line.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .errors import CommandError
from .shell import run_command

MANAGED_BY = "robust-deploy"


@dataclass
class ContainerSpec:
    host_port: int
    container_port: int
    environment: Dict[str, str] = field(default_factory=dict)
    memory: str = "512m"
    cpus: float = 0.5
    read_only: bool = True
    tmpfs: Dict[str, str] = field(
        default_factory=lambda: {"/tmp": "noexec,nosuid,size=100m"}
    )
    security_opt: List[str] = field(
        default_factory=lambda: ["no-new-privileges:true"]
    )
    restart_policy: str = "unless-stopped"
    volumes: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config) -> "ContainerSpec":
        return cls(
            host_port=config.port,
            container_port=config.internal_port,
            environment={
                "APP_ENV": config.environment,
                "PORT": str(config.internal_port),
            },
            memory=config.max_memory,
            cpus=config.max_cpu,
            volumes=[config.volume] if config.volume else [],
            labels={
                "managed_by": MANAGED_BY,
                "deployment_id": config.deployment_id,
            },
        )


def _sort_newest_first(containers: List[Dict]) -> List[Dict]:
    # ISO-8601 timestamps from the daemon compare correctly as strings
    return sorted(containers, key=lambda c: c.get("started_at") or "", reverse=True)


def _format_bytes(value: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}GiB"


class ContainerRuntime:
    """Operations the deployment pipeline needs from a container runtime."""

    def build(
        self,
        path: str,
        tag: str,
        target: Optional[str] = None,
        extra_tags: Sequence[str] = (),
    ) -> str:
        raise NotImplementedError

    def run(self, name: str, image: str, spec: ContainerSpec) -> str:
        raise NotImplementedError

    def start(self, name: str) -> None:
        raise NotImplementedError

    def stop(self, name: str, timeout: int = 10) -> bool:
        raise NotImplementedError

    def remove(self, name: str, force: bool = True) -> bool:
        raise NotImplementedError

    def list(self, prefix: str, all: bool = False) -> List[Dict]:
        raise NotImplementedError

    def is_running(self, name: str) -> bool:
        raise NotImplementedError

    def logs(self, name: str, tail: int = 50) -> str:
        raise NotImplementedError

    def stats(self, name: str) -> Dict[str, Any]:
        raise NotImplementedError

    def prune_images(self, until: str = "24h") -> None:
        raise NotImplementedError


class DockerEngine(ContainerRuntime):
    def __init__(self, client: Optional[Any] = None):
        self._client = client

    def _ensure_client(self):
        if self._client is None:
            import docker

            self._client = docker.from_env()
        return self._client

    @property
    def client(self):
        return self._ensure_client()

    @client.setter
    def client(self, value):
        self._client = value

    def _get(self, name: str):
        """Return the container or None when it does not exist."""
        from docker.errors import NotFound

        try:
            return self.client.containers.get(name)
        except NotFound:
            return None

    def build(self, path, tag, target=None, extra_tags=()):
        kwargs = {"path": path, "tag": tag, "rm": True}
        if target:
            kwargs["target"] = target
        image, _ = self.client.images.build(**kwargs)
        for extra in extra_tags:
            repository, _, version = extra.partition(":")
            image.tag(repository, tag=version or "latest")
        return tag

    def run(self, name, image, spec):
        container = self.client.containers.run(
            image,
            name=name,
            detach=True,
            ports={f"{spec.container_port}/tcp": spec.host_port},
            environment=spec.environment,
            mem_limit=spec.memory,
            nano_cpus=int(spec.cpus * 1_000_000_000),
            read_only=spec.read_only,
            tmpfs=spec.tmpfs,
            security_opt=spec.security_opt,
            restart_policy={"Name": spec.restart_policy},
            volumes=spec.volumes,
            labels=spec.labels,
        )
        return getattr(container, "name", None) or name

    def start(self, name):
        self.client.containers.get(name).start()

    def stop(self, name, timeout=10):
        container = self._get(name)
        if container is None:
            return False
        container.stop(timeout=timeout)
        return True

    def remove(self, name, force=True):
        from docker.errors import NotFound

        container = self._get(name)
        if container is None:
            return False
        try:
            container.remove(force=force)
        except NotFound:
            return False
        return True

    def list(self, prefix, all=False):
        containers = self.client.containers.list(all=all, filters={"name": prefix})
        found = []
        for c in containers:
            name = getattr(c, "name", None)
            if not isinstance(name, str) or not name.startswith(prefix):
                continue
            attrs = getattr(c, "attrs", None) or {}
            found.append(
                {
                    "name": name,
                    "status": getattr(c, "status", None),
                    "started_at": (attrs.get("State") or {}).get("StartedAt"),
                }
            )
        return _sort_newest_first(found)

    def is_running(self, name):
        container = self._get(name)
        if container is None:
            return False
        container.reload()
        return container.status == "running"

    def logs(self, name, tail=50):
        output = self.client.containers.get(name).logs(tail=tail)
        if isinstance(output, bytes):
            return output.decode("utf-8", errors="replace")
        return str(output)

    def stats(self, name):
        raw = self.client.containers.get(name).stats(stream=False)
        cpu = raw.get("cpu_stats", {})
        precpu = raw.get("precpu_stats", {})
        cpu_delta = cpu.get("cpu_usage", {}).get("total_usage", 0) - precpu.get(
            "cpu_usage", {}
        ).get("total_usage", 0)
        system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
        online = cpu.get("online_cpus") or 1
        cpu_percent = 0.0
        if cpu_delta > 0 and system_delta > 0:
            cpu_percent = round(cpu_delta / system_delta * online * 100.0, 2)

        memory = raw.get("memory_stats", {})
        usage = memory.get("usage", 0)
        limit = memory.get("limit", 0)
        return {
            "cpu_percent": cpu_percent,
            "memory": f"{_format_bytes(usage)} / {_format_bytes(limit)}",
        }

    def prune_images(self, until="24h"):
        self.client.images.prune(filters={"until": until})


class DockerCliEngine(ContainerRuntime):
    """Runtime that drives the ``docker`` executable."""

    def __init__(self, docker: str = "docker", timeout: int = 600, runner=run_command):
        self.docker = docker
        self.timeout = timeout
        self._run = runner

    def _cmd(self, *args, timeout: Optional[int] = None, check: bool = True):
        return self._run(
            [self.docker, *args], timeout=timeout or self.timeout, check=check
        )

    @staticmethod
    def _missing(error: CommandError) -> bool:
        return "no such container" in (error.stderr or "").lower()

    def build(self, path, tag, target=None, extra_tags=()):
        args = ["build", "-t", tag]
        if target:
            args += ["--target", target]
        self._cmd(*args, path)
        for extra in extra_tags:
            self._cmd("tag", tag, extra, timeout=30)
        return tag

    def run(self, name, image, spec):
        args = [
            "run",
            "-d",
            "--name",
            name,
            "--restart",
            spec.restart_policy,
            f"--memory={spec.memory}",
            f"--cpus={spec.cpus}",
        ]
        for opt in spec.security_opt:
            args += ["--security-opt", opt]
        if spec.read_only:
            args.append("--read-only")
        for mount, options in spec.tmpfs.items():
            args += ["--tmpfs", f"{mount}:{options}" if options else mount]
        args += ["-p", f"{spec.host_port}:{spec.container_port}"]
        for key, value in spec.environment.items():
            args += ["-e", f"{key}={value}"]
        for volume in spec.volumes:
            args += ["-v", volume]
        for key, value in spec.labels.items():
            args += ["--label", f"{key}={value}"]
        args.append(image)
        self._cmd(*args, timeout=120)
        return name

    def start(self, name):
        self._cmd("start", name, timeout=60)

    def stop(self, name, timeout=10):
        try:
            self._cmd("stop", "-t", str(timeout), name, timeout=timeout + 30)
        except CommandError as e:
            if self._missing(e):
                return False
            raise
        return True

    def remove(self, name, force=True):
        args = ["rm", name]
        if force:
            args.insert(1, "-f")
        try:
            self._cmd(*args, timeout=60)
        except CommandError as e:
            if self._missing(e):
                return False
            raise
        return True

    def list(self, prefix, all=False):
        args = ["ps", "--filter", f"name={prefix}", "--format", "{{.Names}}"]
        if all:
            args.insert(1, "-a")
        result = self._cmd(*args, timeout=30)
        names = [
            line.strip()
            for line in result.stdout.splitlines()
            if line.strip().startswith(prefix)
        ]
        if not names:
            return []

        # A container can vanish between ps and inspect; keep whatever inspect returns.
        inspected = self._cmd(
            "inspect",
            "--format",
            "{{.Name}} {{.State.Status}} {{.State.StartedAt}}",
            *names,
            timeout=30,
            check=False,
        )
        found = []
        for line in (inspected.stdout or "").splitlines():
            parts = line.strip().split()
            if len(parts) < 3:
                continue
            found.append(
                {
                    "name": parts[0].lstrip("/"),
                    "status": parts[1],
                    "started_at": parts[2],
                }
            )
        return _sort_newest_first(found)

    def is_running(self, name):
        result = self._cmd(
            "inspect", "--format", "{{.State.Running}}", name, timeout=30, check=False
        )
        return result.returncode == 0 and result.stdout.strip() == "true"

    def logs(self, name, tail=50):
        result = self._cmd("logs", "--tail", str(tail), name, timeout=30)
        return (result.stdout or "") + (result.stderr or "")

    def stats(self, name):
        result = self._cmd(
            "stats", name, "--no-stream", "--format", "{{json .}}", timeout=60
        )
        line = result.stdout.strip().splitlines()[0] if result.stdout.strip() else "{}"
        raw = json.loads(line)
        cpu = str(raw.get("CPUPerc", "0")).rstrip("%") or "0"
        return {
            "cpu_percent": float(cpu),
            "memory": raw.get("MemUsage", ""),
        }

    def prune_images(self, until="24h"):
        self._cmd("image", "prune", "-f", "--filter", f"until={until}", timeout=300)


def create_runtime(kind: str = "sdk") -> ContainerRuntime:
    if kind == "cli":
        return DockerCliEngine()
    return DockerEngine()
