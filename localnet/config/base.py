"""Network-wide defaults keyed by role."""

from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .. import constants
from ..core.types import NodeRole


class StakeConfig(BaseModel):
    """Balances of the two block-producer stake tiers."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    whale_balance: Decimal = Field(default=Decimal(constants.WHALE_BALANCE))
    fish_balance: Decimal = Field(default=Decimal(constants.FISH_BALANCE))
    minimum_stake: Decimal = Field(default=Decimal(constants.MINIMUM_STAKE))

    @model_validator(mode="after")
    def check_tiers(self) -> "StakeConfig":
        if self.fish_balance <= self.minimum_stake:
            raise ValueError("fish balance must exceed the minimum stake")
        if self.whale_balance <= self.fish_balance:
            raise ValueError("whale balance must exceed the fish balance")
        return self

    def balance_for(self, role: NodeRole) -> Decimal:
        if role == NodeRole.WHALE:
            return self.whale_balance
        if role == NodeRole.FISH:
            return self.fish_balance
        raise ValueError(f"Role {role.value} has no stake tier")


class NetworkDefaults(BaseModel):
    """Immutable role-default table passed into the allocator and resolver."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Base ports per role
    seed_start_port: int = Field(default=constants.SEED_START_PORT)
    whale_start_port: int = Field(default=constants.WHALE_START_PORT)
    fish_start_port: int = Field(default=constants.FISH_START_PORT)
    node_start_port: int = Field(default=constants.NODE_START_PORT)
    snark_coordinator_start_port: int = Field(default=constants.SNARK_COORDINATOR_START_PORT)
    snark_worker_start_port: int = Field(default=constants.SNARK_WORKER_START_PORT)
    archive_start_port: int = Field(default=constants.ARCHIVE_START_PORT)
    archive_server_port: int = Field(default=constants.ARCHIVE_SERVER_PORT)
    proxy_port: int = Field(default=constants.PROXY_PORT)

    # Stake tiers
    stake: StakeConfig = Field(default_factory=StakeConfig)

    # Images
    daemon_image: str = Field(default=constants.DAEMON_IMAGE)
    archive_image: str = Field(default=constants.ARCHIVE_IMAGE)
    postgres_image: str = Field(default=constants.POSTGRES_IMAGE)
    proxy_image: str = Field(default=constants.PROXY_IMAGE)

    # Daemon flags
    privkey_pass: str = Field(default=constants.PRIVKEY_PASS)
    libp2p_pass: str = Field(default=constants.LIBP2P_PASS)
    client_trustlist: str = Field(default=constants.CLIENT_TRUSTLIST)
    log_level: str = Field(default="Trace")
    file_log_level: str = Field(default="Trace")
    proof_level: str = Field(default="full")
    snark_worker_fee: str = Field(default="0.001")

    # Archive database
    pg_host: Optional[str] = Field(default=None, description="External postgres host")
    pg_port: int = Field(default=constants.POSTGRES_PORT)
    pg_user: str = Field(default="postgres")
    pg_password: str = Field(default="postgres")
    pg_db: str = Field(default="archive")

    def base_port_for(self, role: NodeRole) -> int:
        """Get the first base port of a role."""
        return {
            NodeRole.SEED: self.seed_start_port,
            NodeRole.WHALE: self.whale_start_port,
            NodeRole.FISH: self.fish_start_port,
            NodeRole.NODE: self.node_start_port,
            NodeRole.SNARK_COORDINATOR: self.snark_coordinator_start_port,
            NodeRole.SNARK_WORKER: self.snark_worker_start_port,
            NodeRole.ARCHIVE: self.archive_start_port,
        }[role]

    def reserved_ports(self) -> Dict[str, int]:
        """Host ports published by auxiliary services."""
        return {"proxy": self.proxy_port}

    def with_port_bases(self, bases: Dict[NodeRole, int]) -> "NetworkDefaults":
        """Return a copy with some role base ports replaced."""
        if not bases:
            return self
        update = {f"{role.value}_start_port": port for role, port in bases.items()}
        return self.model_copy(update=update)
