"""
Docker Compose document
-----------------------
Typed model of the container-orchestration document. Every value comes from
the NetworkRecord, so the services can't drift from the resolved nodes.
"""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from .. import constants
from ..config.base import NetworkDefaults
from ..core.types import NetworkRecord, NodeIdentity, NodeRole
from .commands import (
    ARCHIVE_SERVICE, POSTGRES_SERVICE, PROXY_SERVICE,
    archive_service_command, auxiliary_container, build_command,
)


class ComposeService(BaseModel):
    """One service of the compose document."""
    container_name: str
    image: str
    entrypoint: Optional[List[str]] = None
    command: Optional[List[str]] = None
    environment: Optional[Dict[str, str]] = None
    ports: Optional[List[str]] = None
    volumes: Optional[List[str]] = None
    depends_on: Optional[List[str]] = None


class ComposeDocument(BaseModel):
    """The whole compose file of a network."""
    name: str
    services: Dict[str, ComposeService] = Field(default_factory=dict)
    volumes: Dict[str, Dict] = Field(default_factory=dict)

    def to_dict(self) -> Dict:
        return self.model_dump(exclude_none=True)

    def render(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


def daemon_environment(defaults: NetworkDefaults) -> Dict[str, str]:
    return {
        "MINA_PRIVKEY_PASS": defaults.privkey_pass,
        "MINA_LIBP2P_PASS": defaults.libp2p_pass,
        "MINA_CLIENT_TRUSTLIST": defaults.client_trustlist,
    }


def published_ports(node: NodeIdentity) -> List[str]:
    """Publish the node's whole block on the same host ports."""
    block = f"{node.client_port}-{node.last_port}"
    return [f"{block}:{block}"]


def node_service(node: NodeIdentity, record: NetworkRecord, defaults: NetworkDefaults,
                 network_dir: Path) -> ComposeService:
    depends_on = list(node.requires)
    if node.role == NodeRole.ARCHIVE:
        depends_on.append(ARCHIVE_SERVICE)
    return ComposeService(
        container_name=node.container_name(record.name),
        image=node.docker_image or defaults.daemon_image,
        entrypoint=["mina"],
        command=build_command(node, record, defaults),
        environment=daemon_environment(defaults),
        ports=published_ports(node) if node.role.runs_daemon else None,
        volumes=[
            f"{network_dir}:{constants.CONTAINER_NETWORK_DIR}",
            f"{config_volume(node)}:{constants.CONTAINER_CONFIG_DIR}",
        ],
        depends_on=depends_on or None,
    )


def config_volume(node: NodeIdentity) -> str:
    return f"{node.id}-config"


def build_compose(record: NetworkRecord, network_dir: Path,
                  defaults: Optional[NetworkDefaults] = None) -> ComposeDocument:
    """Build the compose document of a network.

    Args:
        record: Resolved network
        network_dir: Host directory mounted into every daemon
        defaults: Role defaults, the record's snapshot when omitted

    Returns:
        ComposeDocument: One service per node plus auxiliary services
    """
    defaults = defaults or NetworkDefaults.model_validate(record.defaults)
    document = ComposeDocument(name=record.name)

    for node in record.topology:
        document.services[node.id] = node_service(node, record, defaults, network_dir)
        document.volumes[config_volume(node)] = {}

    if record.nodes_with_role(NodeRole.ARCHIVE):
        archive_depends = None
        if not defaults.pg_host:
            document.services[POSTGRES_SERVICE] = ComposeService(
                container_name=auxiliary_container(POSTGRES_SERVICE, record.name),
                image=defaults.postgres_image,
                environment={
                    "POSTGRES_USER": defaults.pg_user,
                    "POSTGRES_PASSWORD": defaults.pg_password,
                    "POSTGRES_DB": defaults.pg_db,
                },
                volumes=["postgres-data:/var/lib/postgresql/data"],
            )
            document.volumes["postgres-data"] = {}
            archive_depends = [POSTGRES_SERVICE]
        document.services[ARCHIVE_SERVICE] = ComposeService(
            container_name=auxiliary_container(ARCHIVE_SERVICE, record.name),
            image=defaults.archive_image,
            command=archive_service_command(record, defaults),
            volumes=[f"{network_dir}:{constants.CONTAINER_NETWORK_DIR}"],
            depends_on=archive_depends,
        )

    if record.routing:
        document.services[PROXY_SERVICE] = ComposeService(
            container_name=auxiliary_container(PROXY_SERVICE, record.name),
            image=defaults.proxy_image,
            ports=[f"{defaults.proxy_port}:80"],
            volumes=[f"{network_dir / constants.PROXY_FILE}:/etc/nginx/nginx.conf:ro"],
        )

    return document


def auxiliary_services(record: NetworkRecord, node: NodeIdentity,
                       defaults: Optional[NetworkDefaults] = None) -> List[str]:
    """Services that must be up before a node, besides other nodes."""
    if node.role != NodeRole.ARCHIVE:
        return []
    defaults = defaults or NetworkDefaults.model_validate(record.defaults)
    services = [] if defaults.pg_host else [POSTGRES_SERVICE]
    return services + [ARCHIVE_SERVICE]
