"""
Genesis Ledger Builder
----------------------
Builds the genesis ledger from the block producers' signing keys and the
stake tier balances, and maintains the rendered daemon config afterwards.
"""

import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

import structlog
from pydantic import ValidationError

from .config.base import StakeConfig
from .core.exceptions import ConfigNotFound, InvalidGenesis, InvalidTopology
from .core.types import Account, GenesisLedger, NodeIdentity
from .keys import NodeKeys
from .utils import atomic_write

logger = structlog.get_logger()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def local_now() -> datetime:
    return datetime.now().astimezone()


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with a numeric offset, e.g. 2024-03-01T12:00:00+0100."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.strftime(TIMESTAMP_FORMAT)


def format_balance(amount: Decimal) -> str:
    return f"{Decimal(amount):.9f}"


class GenesisLedgerBuilder:
    """Builds and refreshes genesis ledgers."""

    def __init__(self, stake: Optional[StakeConfig] = None,
                 clock: Callable[[], datetime] = local_now):
        self.stake = stake or StakeConfig()
        self.clock = clock

    def timestamp(self) -> str:
        return format_timestamp(self.clock())

    def build(self, topology: Iterable[NodeIdentity], key_refs: Dict[str, NodeKeys],
              stake_config: Optional[StakeConfig] = None,
              base: Optional[GenesisLedger] = None) -> GenesisLedger:
        """Create a ledger with one account per block producer.

        Args:
            topology: Resolved nodes
            key_refs: Provisioned keys by node id
            stake_config: Tier balances, defaults to the builder's
            base: User supplied ledger whose accounts and sections are kept

        Returns:
            GenesisLedger: Ledger stamped with the current time
        """
        stake = stake_config or self.stake
        accounts = list(base.accounts) if base else []
        known = {account.public_key for account in accounts}

        for node in topology:
            if not node.role.is_block_producer:
                continue
            keys = key_refs.get(node.id)
            if keys is None or keys.signing is None or not keys.signing.public_key:
                raise InvalidTopology(f"block producer '{node.id}' has no signing key")
            public_key = keys.signing.public_key
            if public_key in known:
                logger.warning("genesis_account_exists", node=node.id)
                continue
            accounts.append(Account(
                public_key=public_key,
                secret_key=None,
                balance=format_balance(stake.balance_for(node.role)),
                delegate=None,
            ))
            known.add(public_key)

        ledger = GenesisLedger(
            state_timestamp=self.timestamp(),
            accounts=accounts,
            name=base.name if base else None,
            ledger_extra=dict(base.ledger_extra) if base else {},
            runtime_config=dict(base.runtime_config) if base else {},
        )
        logger.info("genesis_ledger_built", accounts=len(accounts),
                    timestamp=ledger.state_timestamp)
        return ledger

    def reset(self, ledger: GenesisLedger) -> GenesisLedger:
        """Keep the accounts verbatim under a fresh genesis timestamp."""
        fresh = ledger.model_copy(update={"state_timestamp": self.timestamp()}, deep=True)
        logger.info("genesis_ledger_reset", timestamp=fresh.state_timestamp)
        return fresh

    def touch_timestamp(self, existing_config: Path) -> str:
        """Update only the genesis timestamp of a rendered daemon config in place.

        Raises:
            ConfigNotFound: If the config file doesn't exist
            InvalidGenesis: If it isn't a JSON object
        """
        existing_config = Path(existing_config)
        if not existing_config.is_file():
            raise ConfigNotFound(existing_config)
        config = read_json(existing_config)
        timestamp = self.timestamp()
        genesis = config.setdefault("genesis", {})
        if not isinstance(genesis, dict):
            raise InvalidGenesis(existing_config, "the genesis section must be an object")
        genesis["genesis_state_timestamp"] = timestamp
        atomic_write(existing_config, json.dumps(config, indent=2) + "\n")
        logger.info("genesis_timestamp_updated", path=str(existing_config), timestamp=timestamp)
        return timestamp

    @staticmethod
    def write(ledger: GenesisLedger, path: Path) -> Path:
        """Render the ledger as a daemon config file."""
        return atomic_write(Path(path), json.dumps(ledger.to_daemon_config(), indent=2) + "\n")

    @staticmethod
    def load(path: Path) -> GenesisLedger:
        """Read a daemon config or bare ledger document.

        Raises:
            ConfigNotFound: If the file doesn't exist
            InvalidGenesis: If it isn't a readable ledger
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigNotFound(path)
        document = read_json(path)
        if "ledger" not in document and "accounts" in document:
            document = {"ledger": document}
        for section in ("ledger", "genesis"):
            if not isinstance(document.get(section, {}), dict):
                raise InvalidGenesis(path, f"the {section} section must be an object")
        if not isinstance(document.get("ledger", {}).get("accounts", []), list):
            raise InvalidGenesis(path, "the ledger accounts must be a list")
        try:
            return GenesisLedger.from_daemon_config(document)
        except ValidationError as e:
            raise InvalidGenesis(path, str(e)) from e


def read_json(path: Path) -> dict:
    """Read a JSON object from a genesis or daemon config file.

    Raises:
        InvalidGenesis: If the file isn't a JSON object
    """
    try:
        with open(path, "r") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidGenesis(path, f"not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise InvalidGenesis(path, "expected a JSON object")
    return document
