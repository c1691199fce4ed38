"""
Network State Store
-------------------
Persists NetworkRecords under <home>/<network>/ and serializes access to
them with per-network advisory file locks. Every file is written atomically.
"""

import fcntl
import json
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

import structlog
from pydantic import ValidationError

from . import constants
from .core.exceptions import LocalnetError, NotFound
from .core.types import NetworkRecord, utc_now
from .deploy import render
from .genesis import GenesisLedgerBuilder
from .utils import atomic_write, validate_network_name

logger = structlog.get_logger()


class CorruptRecord(LocalnetError):
    """A persisted record can't be parsed."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        super().__init__(f"Corrupt network record {self.path}: {reason}")


class NetworkStateStore:
    """File-backed store of network records."""

    def __init__(self, home: Path):
        self.home = Path(home)

    # Paths

    def network_path(self, name: str) -> Path:
        return self.home / validate_network_name(name)

    def record_path(self, name: str) -> Path:
        return self.network_path(name) / constants.RECORD_FILE

    def genesis_path(self, name: str) -> Path:
        return self.network_path(name) / constants.GENESIS_FILE

    def compose_path(self, name: str) -> Path:
        return self.network_path(name) / constants.COMPOSE_FILE

    def proxy_path(self, name: str) -> Path:
        return self.network_path(name) / constants.PROXY_FILE

    def replayer_input_path(self, name: str) -> Path:
        return self.network_path(name) / constants.REPLAYER_INPUT_FILE

    def lock_path(self, name: str) -> Path:
        # Outside the network directory so it survives delete
        return self.home / constants.LOCKS_DIR / f"{validate_network_name(name)}.lock"

    # Locking

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        """Hold an exclusive advisory lock on a network for the block's duration."""
        path = self.lock_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            logger.debug("network_locked", network=name, pid=os.getpid())
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
                logger.debug("network_unlocked", network=name)

    # Records

    def exists(self, name: str) -> bool:
        return self.record_path(name).is_file()

    def load(self, name: str) -> NetworkRecord:
        """Read a network record.

        Raises:
            NotFound: If no record exists under that name
        """
        path = self.record_path(name)
        if not path.is_file():
            raise NotFound(name)
        try:
            return NetworkRecord.model_validate_json(path.read_text())
        except ValidationError as e:
            raise CorruptRecord(path, str(e)) from e

    def save(self, record: NetworkRecord) -> NetworkRecord:
        """Durably commit a record, replacing the previous version atomically."""
        record.updated_at = utc_now()
        atomic_write(self.record_path(record.name), record.model_dump_json(indent=2) + "\n")
        logger.debug("network_record_saved", network=record.name, state=record.state.value)
        return record

    def write_genesis(self, record: NetworkRecord) -> Path:
        return GenesisLedgerBuilder.write(record.genesis, self.genesis_path(record.name))

    def write_replayer_input(self, record: NetworkRecord, start_slot_since_genesis: int) -> Path:
        """Write the replayer input: the genesis ledger and the slot to replay from."""
        document = {
            "start_slot_since_genesis": start_slot_since_genesis,
            "genesis_ledger": record.genesis.ledger_section(),
        }
        path = self.replayer_input_path(record.name)
        atomic_write(path, json.dumps(document, indent=2) + "\n")
        return path

    def write_deployment(self, record: NetworkRecord) -> None:
        """Render and write the compose and proxy documents of a record."""
        compose, routing = render(record, self.network_path(record.name))
        atomic_write(self.compose_path(record.name), compose)
        atomic_write(self.proxy_path(record.name), routing)
        logger.info("deployment_written", network=record.name,
                    services=len(record.topology), routes=len(record.routing))

    def remove(self, name: str) -> None:
        """Delete the whole network directory, record included."""
        path = self.network_path(name)
        if path.exists():
            shutil.rmtree(path)
            logger.info("network_directory_removed", network=name, path=str(path))

    def list(self) -> List[str]:
        """Names of every network with a persisted record."""
        if not self.home.is_dir():
            return []
        names = []
        for entry in sorted(self.home.iterdir()):
            if entry.is_dir() and (entry / constants.RECORD_FILE).is_file():
                names.append(entry.name)
        return names
