"""
Tests for key material management
"""
import os
import shutil
import stat
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from localnet import constants
from localnet.core.exceptions import RuntimeFailure
from localnet.core.types import NodeIdentity, NodeRole
from localnet.keys import DockerKeyGenerator, KeyMaterialManager, LocalKeyGenerator


def completed(stdout: str) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["docker"], returncode=0, stdout=stdout, stderr="")


class TestKeyMaterialManager(unittest.TestCase):
    """Test cases for KeyMaterialManager with software keys."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.home = Path(self.temp_dir)
        self.manager = KeyMaterialManager(self.home, LocalKeyGenerator())
        self.nodes = [
            NodeIdentity(id="seed-0", role=NodeRole.SEED, base_port=3000),
            NodeIdentity(id="whale-0", role=NodeRole.WHALE, base_port=4000),
            NodeIdentity(id="snark-coordinator-0", role=NodeRole.SNARK_COORDINATOR, base_port=7000),
        ]

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def mode(self, path: Path) -> int:
        return stat.S_IMODE(path.stat().st_mode)

    def test_provision(self):
        keys = self.manager.provision("testnet", self.nodes)
        network_dir = self.home / "testnet"

        self.assertIsNone(keys["seed-0"].signing)
        self.assertIsNotNone(keys["whale-0"].signing.public_key)
        self.assertIsNotNone(keys["snark-coordinator-0"].signing.public_key)
        for node in self.nodes:
            self.assertTrue(keys[node.id].peer.peer_id)

        whale = keys["whale-0"].signing
        self.assertEqual(whale.private_path, f"{constants.NETWORK_KEYPAIRS_DIR}/whale-0")
        self.assertEqual((network_dir / whale.public_path).read_text().strip(), whale.public_key)
        self.assertTrue((network_dir / whale.private_path).read_text().startswith("-----BEGIN ENCRYPTED"))

    def test_permissions(self):
        keys = self.manager.provision("testnet", self.nodes)
        network_dir = self.home / "testnet"
        for directory in self.manager.key_directories("testnet"):
            self.assertEqual(self.mode(directory), 0o700)
        whale = keys["whale-0"].signing
        self.assertEqual(self.mode(network_dir / whale.private_path), 0o600)
        self.assertEqual(self.mode(network_dir / whale.public_path), 0o644)
        peer = keys["seed-0"].peer
        self.assertEqual(self.mode(network_dir / peer.private_path), 0o600)
        self.assertEqual(self.mode(network_dir / peer.public_path), 0o644)

    def test_provision_generates_fresh_keys(self):
        first = self.manager.provision("testnet", self.nodes)
        second = self.manager.provision("testnet", self.nodes)
        self.assertNotEqual(first["whale-0"].signing.public_key, second["whale-0"].signing.public_key)

    def test_clean(self):
        self.manager.provision("testnet", self.nodes)
        self.manager.clean("testnet")
        for directory in self.manager.key_directories("testnet"):
            self.assertTrue(directory.is_dir())
            self.assertEqual(os.listdir(directory), [])

    def test_zkapp_account(self):
        keys = self.manager.provision("testnet", self.nodes[:1], zkapp_account=True)
        zkapp = keys[constants.ZKAPP_ACCOUNT]
        self.assertIsNone(zkapp.peer)
        signing = zkapp.signing
        self.assertEqual(signing.private_path,
                         f"{constants.NETWORK_KEYPAIRS_DIR}/{constants.ZKAPP_ACCOUNT}")
        self.assertTrue(signing.public_key)
        private = self.home / "testnet" / signing.private_path
        self.assertTrue(private.is_file())
        self.assertEqual(self.mode(private), 0o600)
        self.assertEqual(self.mode(self.home / "testnet" / signing.public_path), 0o644)


class TestDockerKeyGenerator(unittest.TestCase):
    """Test cases for DockerKeyGenerator output parsing."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.network_dir = Path(self.temp_dir)
        self.generator = DockerKeyGenerator("mina-daemon:test")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    @patch("localnet.keys.run_command")
    def test_generate_keypair(self, run_command):
        run_command.return_value = completed(
            "Keypair generated\nPublic key: B62qexample\nRaw public key: 0x1234\n"
        )
        public_key = self.generator.generate_keypair(self.network_dir, "network-keypairs/whale-0")
        self.assertEqual(public_key, "B62qexample")

        args = run_command.call_args[0][0]
        self.assertEqual(args[:3], ["docker", "run", "--rm"])
        self.assertIn(f"{self.network_dir}:{constants.CONTAINER_NETWORK_DIR}", args)
        self.assertIn(f"MINA_PRIVKEY_PASS={constants.PRIVKEY_PASS}", args)
        self.assertEqual(args[-1], f"{constants.CONTAINER_NETWORK_DIR}/network-keypairs/whale-0")

    @patch("localnet.keys.run_command")
    def test_generate_peer_keypair(self, run_command):
        run_command.return_value = completed("libp2p keypair:\nCAESQ,CAESI,12D3KooWexample\n")
        peer_id = self.generator.generate_peer_keypair(self.network_dir, "seed-0")
        self.assertEqual(peer_id, "12D3KooWexample")
        self.assertEqual((self.network_dir / "seed-0.peerid").read_text().strip(), "12D3KooWexample")

    @patch("localnet.keys.run_command")
    def test_missing_public_key(self, run_command):
        run_command.return_value = completed("something unexpected\n")
        with self.assertRaises(RuntimeFailure):
            self.generator.generate_keypair(self.network_dir, "network-keypairs/whale-0")

    @patch("localnet.keys.run_command")
    def test_docker_failure_propagates(self, run_command):
        run_command.side_effect = RuntimeFailure("docker run failed", returncode=125)
        with self.assertRaises(RuntimeFailure):
            self.generator.generate_peer_keypair(self.network_dir, "seed-0")


if __name__ == '__main__':
    unittest.main()
