"""
Tests for the command line interface
"""
import json
from unittest.mock import ANY, patch

import pytest
from click.testing import CliRunner
from pydantic import ValidationError

from localnet.cli import cli
from localnet.config import LocalnetSettings
from localnet.keys import LocalKeyGenerator
from localnet.lifecycle import LifecycleController
from localnet.topology import TopologySpec
from tests.mock_runtime import FakeRuntime


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, controller, *args):
    return runner.invoke(cli, ["--log-level", "ERROR", *args], obj=controller)


def test_create_start_stop_delete(runner, controller, home):
    topology = home.parent / "topology.yaml"
    topology.write_text("seeds: 1\nwhales: 2\nfish: 1\nnodes: 1\n")

    result = invoke(runner, controller, "network", "create", "-n", "testnet", "-t", str(topology))
    assert result.exit_code == 0, result.output
    info = json.loads(result.output)
    assert info["name"] == "testnet"
    assert sorted(info["nodes"]) == ["fish-0", "node-0", "seed-0", "whale-0", "whale-1"]
    assert info["nodes"]["whale-0"]["graphql_uri"] == "http://localhost:4001/graphql"

    result = invoke(runner, controller, "network", "start", "-n", "testnet")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["state"] == "running"

    result = invoke(runner, controller, "network", "delete", "-n", "testnet")
    assert result.exit_code == 1
    assert "error_message" in result.output
    assert "stop it first" in result.output

    result = invoke(runner, controller, "network", "stop", "-n", "testnet")
    assert json.loads(result.output)["state"] == "stopped"

    result = invoke(runner, controller, "network", "delete", "-n", "testnet")
    assert result.exit_code == 0, result.output
    assert not (home / "testnet").exists()


def test_create_twice(runner, controller):
    assert invoke(runner, controller, "network", "create").exit_code == 0
    result = invoke(runner, controller, "network", "create")
    assert result.exit_code == 1
    assert "already exists" in result.output
    assert invoke(runner, controller, "network", "create", "--exist-ok").exit_code == 0


def test_invalid_topology(runner, controller, home):
    topology = home.parent / "topology.yaml"
    topology.write_text("whales: 1\nfish: 1\nzkapp_transactions: true\n")
    result = invoke(runner, controller, "network", "create", "-t", str(topology))
    assert result.exit_code == 1
    assert "zkApp" in result.output


def test_missing_topology_file(runner, controller, home):
    result = invoke(runner, controller, "network", "create", "-t", str(home.parent / "none.yaml"))
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_node_commands(runner, controller, runtime):
    invoke(runner, controller, "network", "create", "-n", "testnet")
    invoke(runner, controller, "network", "start", "-n", "testnet")

    result = invoke(runner, controller, "node", "stop", "-n", "testnet", "-i", "whale-1")
    assert result.exit_code == 0, result.output
    output = json.loads(result.output)
    assert output["state"] == "stopped"
    assert output["network_state"] == "degraded"

    result = invoke(runner, controller, "network", "status", "-n", "testnet")
    nodes = {node["id"]: node for node in json.loads(result.output)["nodes"]}
    assert nodes["whale-1"]["live"] is False
    assert nodes["whale-0"]["live"] is True

    result = invoke(runner, controller, "node", "start", "-n", "testnet", "-i", "whale-1")
    assert json.loads(result.output)["network_state"] == "running"

    runtime.log_output["seed-0"] = "hello\n"
    result = invoke(runner, controller, "node", "logs", "-n", "testnet", "-i", "seed-0")
    assert result.output == "hello\n"

    result = invoke(runner, controller, "node", "start", "-n", "testnet", "-i", "orca-0")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_reset_and_list(runner, controller):
    invoke(runner, controller, "network", "create", "-n", "testnet")
    result = invoke(runner, controller, "network", "reset", "-n", "testnet", "--keys")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["accounts"] == 3

    result = invoke(runner, controller, "network", "update-timestamp", "-n", "testnet")
    assert result.exit_code == 0, result.output

    result = invoke(runner, controller, "network", "list")
    assert [entry["network_id"] for entry in json.loads(result.output)] == ["testnet"]


def test_controller_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("LOCALNET_HOME", str(tmp_path))
    monkeypatch.setenv("LOCALNET_KEYGEN", "local")
    monkeypatch.setenv("LOCALNET_PROXY_IMAGE", "nginx:alpine")
    runtime = FakeRuntime()
    controller = LifecycleController.from_settings(LocalnetSettings(), runtime=runtime)
    assert isinstance(controller.resolver.key_manager.generator, LocalKeyGenerator)
    assert controller.store.home == tmp_path
    assert controller.resolver.defaults.proxy_image == "nginx:alpine"
    assert controller.runtime is runtime


def test_software_keys_are_flagged(monkeypatch, tmp_path):
    monkeypatch.setenv("LOCALNET_HOME", str(tmp_path))
    monkeypatch.setenv("LOCALNET_KEYGEN", "local")
    with patch("localnet.lifecycle.logger") as logger:
        LifecycleController.from_settings(LocalnetSettings(), runtime=FakeRuntime())
    logger.warning.assert_called_once_with("software_keys_in_use", reason=ANY)

    monkeypatch.setenv("LOCALNET_KEYGEN", "docker")
    with patch("localnet.lifecycle.logger") as logger:
        LifecycleController.from_settings(LocalnetSettings(), runtime=FakeRuntime())
    logger.warning.assert_not_called()


def test_unknown_key_generator_is_rejected(runner, monkeypatch, tmp_path):
    monkeypatch.setenv("LOCALNET_KEYGEN", "dockr")
    with pytest.raises(ValidationError):
        LocalnetSettings()

    monkeypatch.setenv("LOCALNET_HOME", str(tmp_path))
    result = runner.invoke(cli, ["--log-level", "ERROR", "network", "list"])
    assert result.exit_code == 1
    assert "error_message" in result.output
    assert "keygen" in result.output


def test_create_with_malformed_genesis(runner, controller, home):
    genesis = home.parent / "ledger.json"
    genesis.write_text('{"ledger": {"accounts": [{"pk": "B62x", "balance": ')
    result = invoke(runner, controller, "network", "create", "-n", "testnet", "-g", str(genesis))
    assert result.exit_code == 1
    assert "error_message" in result.output
    assert "Invalid genesis ledger" in result.output
    assert "Traceback" not in result.output
    assert not (home / "testnet").exists()

    genesis.write_text(json.dumps({"accounts": [{"pk": "B62x", "balance": "1000", "nonce": "1"}]}))
    result = invoke(runner, controller, "network", "create", "-n", "testnet", "-g", str(genesis))
    assert result.exit_code == 0, result.output


def test_node_start_flags(runner, controller, runtime):
    invoke(runner, controller, "network", "create", "-n", "testnet")
    result = invoke(runner, controller, "node", "start", "-n", "testnet", "-i", "whale-0", "-f", "-a")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["state"] == "running"
    assert [(service, entrypoint) for _, service, _, entrypoint in runtime.commands] == [
        ("whale-0", "sh"), ("whale-0", "mina"),
    ]

    result = invoke(runner, controller, "node", "start", "-n", "testnet", "-i", "whale-1",
                    "--import-accounts")
    assert result.exit_code == 0, result.output
    assert [(service, entrypoint) for _, service, _, entrypoint in runtime.commands][-1] == \
        ("whale-1", "mina")


def test_node_tooling_commands(runner, controller, runtime, home):
    controller.create("testnet", TopologySpec(seeds=1, whales=1, archive=True))

    result = invoke(runner, controller, "node", "dump-archive-data", "-n", "testnet", "-i", "archive-0")
    assert result.exit_code == 1
    assert "start it first" in result.output

    invoke(runner, controller, "network", "start", "-n", "testnet")
    runtime.exec_output = {
        "whale-0": "block\n",
        "postgres": "INSERT INTO blocks VALUES (1);\n",
        "archive-service": "replayed\n",
    }

    result = invoke(runner, controller, "node", "dump-precomputed-blocks", "-n", "testnet", "-i", "whale-0")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"blocks": "block\n", "network_id": "testnet", "node_id": "whale-0"}

    result = invoke(runner, controller, "node", "dump-archive-data", "-n", "testnet", "-i", "archive-0")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["data"] == "INSERT INTO blocks VALUES (1);\n"

    result = invoke(runner, controller, "node", "run-replayer", "-n", "testnet", "-i", "archive-0",
                    "-s", "12")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["logs"] == "replayed\n"
    replayer_input = json.loads((home / "testnet" / "replayer_input_config.json").read_text())
    assert replayer_input["start_slot_since_genesis"] == 12

    result = invoke(runner, controller, "node", "run-replayer", "-n", "testnet", "-i", "archive-0",
                    "--start-slot-since-genesis=-3")
    assert result.exit_code == 2

    result = invoke(runner, controller, "node", "dump-archive-data", "-n", "testnet", "-i", "whale-0")
    assert result.exit_code == 1
    assert "not an archive node" in result.output
