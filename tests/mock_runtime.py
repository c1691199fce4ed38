"""
Mock implementations of the external collaborators for testing
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from localnet.core.exceptions import RuntimeFailure
from localnet.keys import LocalKeyGenerator
from localnet.runtime import ComposeProject, ContainerInfo, ContainerRuntime


class FakeRuntime(ContainerRuntime):
    """
    In-memory container runtime.
    Records every call and keeps a set of running services per project.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, str]] = []
        self.running: Dict[str, Set[str]] = {}
        self.fail_on: Set[Tuple[str, str]] = set()
        self.log_output: Dict[str, str] = {}
        self.exec_output: Dict[str, str] = {}
        self.commands: List[Tuple[str, str, List[str], Optional[str]]] = []

    def _call(self, action: str, project: ComposeProject, service: str = "") -> None:
        self.calls.append((action, project.name, service))
        if (action, service) in self.fail_on:
            raise RuntimeFailure(f"{action} {service} failed", command=["docker", "compose", action],
                                 returncode=1, stderr="simulated failure")

    def start(self, project: ComposeProject, service: str) -> None:
        self._call("start", project, service)
        self.running.setdefault(project.name, set()).add(service)

    def stop(self, project: ComposeProject, service: str) -> None:
        self._call("stop", project, service)
        self.running.setdefault(project.name, set()).discard(service)

    def ps(self, project: ComposeProject) -> List[ContainerInfo]:
        self._call("ps", project)
        return [
            ContainerInfo(name=f"{service}-{project.name}", service=service,
                          state="running", status="Up 5 seconds")
            for service in sorted(self.running.get(project.name, set()))
        ]

    def down(self, project: ComposeProject) -> None:
        self._call("down", project)
        self.running.pop(project.name, None)

    def logs(self, project: ComposeProject, service: str) -> str:
        self._call("logs", project, service)
        return self.log_output.get(service, "")

    def exec(self, project: ComposeProject, service: str, command: Sequence[str]) -> str:
        self._call("exec", project, service)
        self.commands.append(("exec", service, list(command), None))
        return self.exec_output.get(service, "")

    def run(self, project: ComposeProject, service: str, command: Sequence[str],
            entrypoint: Optional[str] = None) -> str:
        self._call("run", project, service)
        self.commands.append(("run", service, list(command), entrypoint))
        return ""

    def services(self, action: str, network: str) -> List[str]:
        """Services passed to an action, in call order."""
        return [service for called, name, service in self.calls
                if called == action and name == network]


class FailingKeyGenerator(LocalKeyGenerator):
    """Generates keys until the given number of keypairs has been written."""

    def __init__(self, fail_after: int = 0):
        super().__init__()
        self.fail_after = fail_after
        self.generated = 0

    def _count(self):
        if self.generated >= self.fail_after:
            raise RuntimeFailure("keypair generation failed", returncode=125,
                                 stderr="Unable to find image")
        self.generated += 1

    def generate_keypair(self, network_dir: Path, relative_path: str) -> str:
        self._count()
        return super().generate_keypair(network_dir, relative_path)

    def generate_peer_keypair(self, network_dir: Path, relative_path: str) -> str:
        self._count()
        return super().generate_peer_keypair(network_dir, relative_path)


class SteppingClock:
    """Clock advancing one minute per reading."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=1)))

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


__all__ = ['FakeRuntime', 'FailingKeyGenerator', 'SteppingClock']
