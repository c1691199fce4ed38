"""
Key Material Manager
--------------------
Creates per-node signing keypairs and network-identity (libp2p) keypairs
under a network-scoped directory tree.

Key generation itself is delegated to a KeyGenerator: the docker one runs
the daemon image's own keypair commands, the local one writes Ed25519 keys
with the cryptography library for offline use and tests.
"""

import base64
import hashlib
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, NamedTuple, Optional

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from . import constants
from .core.exceptions import RuntimeFailure
from .core.types import KeyRef, NodeIdentity
from .utils import atomic_write, current_user, run_command

logger = structlog.get_logger()

PRIVATE_DIR_MODE = 0o700
PRIVATE_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644

PUBLIC_KEY_SUFFIX = ".pub"
PEER_ID_SUFFIX = ".peerid"


class NodeKeys(NamedTuple):
    """Key references provisioned for one node."""
    signing: Optional[KeyRef]
    peer: Optional[KeyRef]


class KeyGenerator(ABC):
    """Opaque keypair generation collaborator."""

    @abstractmethod
    def generate_keypair(self, network_dir: Path, relative_path: str) -> str:
        """Write a signing keypair at relative_path and return its public key."""

    @abstractmethod
    def generate_peer_keypair(self, network_dir: Path, relative_path: str) -> str:
        """Write a network-identity keypair at relative_path and return its peer id."""


class DockerKeyGenerator(KeyGenerator):
    """Generate keys with the daemon image's `advanced generate-keypair` and
    `libp2p generate-keypair` commands, mounting the network directory."""

    def __init__(self, docker_image: str, privkey_pass: str = constants.PRIVKEY_PASS,
                 libp2p_pass: str = constants.LIBP2P_PASS, docker: str = "docker"):
        self.docker_image = docker_image
        self.privkey_pass = privkey_pass
        self.libp2p_pass = libp2p_pass
        self.docker = docker

    def _run(self, network_dir: Path, env: str, command: Iterable[str]):
        args = [
            self.docker, "run", "--rm",
            "--user", current_user(),
            "--env", env,
            "--entrypoint", "mina",
            "-v", f"{network_dir}:{constants.CONTAINER_NETWORK_DIR}",
            self.docker_image,
            *command,
        ]
        return run_command(args)

    def generate_keypair(self, network_dir: Path, relative_path: str) -> str:
        container_path = f"{constants.CONTAINER_NETWORK_DIR}/{relative_path}"
        result = self._run(
            network_dir,
            f"MINA_PRIVKEY_PASS={self.privkey_pass}",
            ["advanced", "generate-keypair", "-privkey-path", container_path],
        )
        for line in result.stdout.splitlines():
            if "Public key: " in line:
                return line.split(": ", 1)[1].strip()
        raise RuntimeFailure(f"Public key not found in keypair output for {relative_path}",
                             stderr=result.stdout)

    def generate_peer_keypair(self, network_dir: Path, relative_path: str) -> str:
        container_path = f"{constants.CONTAINER_NETWORK_DIR}/{relative_path}"
        result = self._run(
            network_dir,
            f"MINA_LIBP2P_PASS={self.libp2p_pass}",
            ["libp2p", "generate-keypair", "-privkey-path", container_path],
        )
        # Output is "libp2p keypair:\n<private>,<public>,<peer id>"
        keypair = result.stdout.replace("libp2p keypair:", "").strip()
        peer_id = keypair.split(",")[-1].strip()
        if not peer_id:
            raise RuntimeFailure(f"Peer id not found in libp2p output for {relative_path}",
                                 stderr=result.stdout)
        # Not every daemon release writes the peer id file
        peer_id_path = network_dir / f"{relative_path}{PEER_ID_SUFFIX}"
        if not peer_id_path.exists():
            atomic_write(peer_id_path, peer_id + "\n", PUBLIC_FILE_MODE)
        return peer_id


class LocalKeyGenerator(KeyGenerator):
    """Software Ed25519 keys, encrypted with the configured passphrases."""

    def __init__(self, privkey_pass: str = constants.PRIVKEY_PASS,
                 libp2p_pass: str = constants.LIBP2P_PASS):
        self.privkey_pass = privkey_pass
        self.libp2p_pass = libp2p_pass

    def _write_private(self, path: Path, passphrase: str) -> bytes:
        private_key = Ed25519PrivateKey.generate()
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode()),
        )
        atomic_write(path, pem.decode(), PRIVATE_FILE_MODE)
        return private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def generate_keypair(self, network_dir: Path, relative_path: str) -> str:
        raw = self._write_private(network_dir / relative_path, self.privkey_pass)
        public_key = base64.urlsafe_b64encode(raw).decode().rstrip("=")
        atomic_write(network_dir / f"{relative_path}{PUBLIC_KEY_SUFFIX}",
                     public_key + "\n", PUBLIC_FILE_MODE)
        return public_key

    def generate_peer_keypair(self, network_dir: Path, relative_path: str) -> str:
        raw = self._write_private(network_dir / relative_path, self.libp2p_pass)
        digest = hashlib.sha256(raw).digest()
        peer_id = base64.b32encode(digest).decode().rstrip("=").lower()
        atomic_write(network_dir / f"{relative_path}{PEER_ID_SUFFIX}",
                     peer_id + "\n", PUBLIC_FILE_MODE)
        return peer_id


class KeyMaterialManager:
    """Manages the key directories of every network under a base directory."""

    KEY_DIRECTORIES = (constants.NETWORK_KEYPAIRS_DIR, constants.LIBP2P_KEYPAIRS_DIR)

    def __init__(self, home: Path, generator: KeyGenerator):
        self.home = Path(home)
        self.generator = generator

    def network_path(self, network_name: str) -> Path:
        return self.home / network_name

    def key_directories(self, network_name: str):
        network_path = self.network_path(network_name)
        return [network_path / subdirectory for subdirectory in self.KEY_DIRECTORIES]

    def clean(self, network_name: str) -> None:
        """Remove and recreate the key directories empty."""
        logger.info("cleaning_network_keys", network=network_name)
        for directory in self.key_directories(network_name):
            if directory.exists():
                shutil.rmtree(directory)
            directory.mkdir(parents=True)
            os.chmod(directory, PRIVATE_DIR_MODE)

    def provision(self, network_name: str, nodes: Iterable[NodeIdentity],
                  zkapp_account: bool = False) -> Dict[str, NodeKeys]:
        """Generate fresh keys for every node.

        Not idempotent: each call produces new keypairs. Callers must clean
        first when replacing an existing key set.

        Args:
            network_name: Network whose directory receives the keys
            nodes: Nodes to provision
            zkapp_account: Also provision the zkApp fee-payer signing key

        Returns:
            Dict[str, NodeKeys]: node_id (or auxiliary key name) -> key refs
        """
        network_path = self.network_path(network_name)
        for directory in self.key_directories(network_name):
            directory.mkdir(parents=True, exist_ok=True)
            os.chmod(directory, PRIVATE_DIR_MODE)

        provisioned: Dict[str, NodeKeys] = {}
        for node in nodes:
            signing = None
            if node.role.needs_signing_key:
                signing = self._signing_key(network_path, node.id)
            peer = self._peer_key(network_path, node.id)
            provisioned[node.id] = NodeKeys(signing=signing, peer=peer)
            logger.info("node_keys_provisioned", network=network_name, node=node.id,
                        signing=signing is not None)

        if zkapp_account:
            provisioned[constants.ZKAPP_ACCOUNT] = NodeKeys(
                signing=self._signing_key(network_path, constants.ZKAPP_ACCOUNT),
                peer=None,
            )

        self.enforce_permissions(network_name)
        return provisioned

    def _signing_key(self, network_path: Path, name: str) -> KeyRef:
        relative = f"{constants.NETWORK_KEYPAIRS_DIR}/{name}"
        public_key = self.generator.generate_keypair(network_path, relative)
        return KeyRef(
            private_path=relative,
            public_path=f"{relative}{PUBLIC_KEY_SUFFIX}",
            public_key=public_key,
        )

    def _peer_key(self, network_path: Path, name: str) -> KeyRef:
        relative = f"{constants.LIBP2P_KEYPAIRS_DIR}/{name}"
        peer_id = self.generator.generate_peer_keypair(network_path, relative)
        return KeyRef(
            private_path=relative,
            public_path=f"{relative}{PEER_ID_SUFFIX}",
            peer_id=peer_id,
        )

    def enforce_permissions(self, network_name: str) -> None:
        """Owner-only key directories and private files; public artifacts world-readable."""
        for directory in self.key_directories(network_name):
            os.chmod(directory, PRIVATE_DIR_MODE)
            for path in directory.iterdir():
                if not path.is_file():
                    continue
                if path.suffix in (PUBLIC_KEY_SUFFIX, PEER_ID_SUFFIX):
                    os.chmod(path, PUBLIC_FILE_MODE)
                else:
                    os.chmod(path, PRIVATE_FILE_MODE)
