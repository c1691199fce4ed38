"""
Container runtime collaborator
------------------------------
Starts and stops compose services. Calls are synchronous: each method
returns only once docker has reported the outcome, and raises
RuntimeFailure with docker's message otherwise.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .utils import run_command

logger = structlog.get_logger()


class ComposeProject(NamedTuple):
    """A compose project: the network name and its compose file."""
    name: str
    compose_file: Path


class ContainerInfo(BaseModel):
    """One row of `docker compose ps`."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(alias="Name")
    service: str = Field(alias="Service")
    state: str = Field(default="unknown", alias="State")
    status: str = Field(default="", alias="Status")
    image: str = Field(default="", alias="Image")

    @property
    def running(self) -> bool:
        return self.state == "running"


class ContainerRuntime(ABC):
    """Interface to whatever actually runs the node processes."""

    @abstractmethod
    def start(self, project: ComposeProject, service: str) -> None:
        """Bring a service up, creating its container if needed."""

    @abstractmethod
    def stop(self, project: ComposeProject, service: str) -> None:
        """Stop a running service."""

    @abstractmethod
    def ps(self, project: ComposeProject) -> List[ContainerInfo]:
        """Report every container of the project."""

    @abstractmethod
    def down(self, project: ComposeProject) -> None:
        """Remove the project's containers and volumes."""

    @abstractmethod
    def logs(self, project: ComposeProject, service: str) -> str:
        """Dump a service's logs."""

    @abstractmethod
    def exec(self, project: ComposeProject, service: str, command: Sequence[str]) -> str:
        """Run a command inside a service's running container and return its stdout."""

    @abstractmethod
    def run(self, project: ComposeProject, service: str, command: Sequence[str],
            entrypoint: Optional[str] = None) -> str:
        """Run a command in a one-off container of a service and return its stdout."""


class DockerComposeRuntime(ContainerRuntime):
    """Runtime backed by the `docker compose` CLI."""

    def __init__(self, docker: str = "docker"):
        self.docker = docker

    def _compose(self, project: ComposeProject, *args: str):
        command = [self.docker, "compose", "-p", project.name, "-f", str(project.compose_file), *args]
        return run_command(command, cwd=project.compose_file.parent)

    def start(self, project: ComposeProject, service: str) -> None:
        logger.info("starting_service", network=project.name, service=service)
        self._compose(project, "up", "-d", "--no-deps", service)

    def stop(self, project: ComposeProject, service: str) -> None:
        logger.info("stopping_service", network=project.name, service=service)
        self._compose(project, "stop", service)

    def ps(self, project: ComposeProject) -> List[ContainerInfo]:
        result = self._compose(project, "ps", "-a", "--format", "json")
        return parse_ps_output(result.stdout)

    def down(self, project: ComposeProject) -> None:
        if not project.compose_file.is_file():
            logger.warning("compose_file_missing", network=project.name,
                           path=str(project.compose_file))
            return
        logger.info("removing_containers", network=project.name)
        self._compose(project, "down", "--volumes", "--remove-orphans")

    def logs(self, project: ComposeProject, service: str) -> str:
        result = self._compose(project, "logs", "--no-color", "--no-log-prefix", service)
        return result.stdout

    def exec(self, project: ComposeProject, service: str, command: Sequence[str]) -> str:
        logger.info("exec_in_service", network=project.name, service=service, command=command[0])
        result = self._compose(project, "exec", "-T", service, *command)
        return result.stdout

    def run(self, project: ComposeProject, service: str, command: Sequence[str],
            entrypoint: Optional[str] = None) -> str:
        logger.info("run_one_off", network=project.name, service=service, entrypoint=entrypoint)
        args = ["run", "--rm", "--no-deps", "-T"]
        if entrypoint is not None:
            args += ["--entrypoint", entrypoint]
        result = self._compose(project, *args, service, *command)
        return result.stdout


def parse_ps_output(output: str) -> List[ContainerInfo]:
    """Parse `docker compose ps --format json`.

    Older compose releases print one JSON array, newer ones one object per line.
    """
    output = output.strip()
    if not output:
        return []
    if output.startswith("["):
        rows = json.loads(output)
    else:
        rows = [json.loads(line) for line in output.splitlines() if line.strip()]
    return [ContainerInfo.model_validate(row) for row in rows]
