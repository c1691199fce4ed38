"""
Tests for the network state store
"""
import fcntl
import json
from datetime import timedelta

import pytest

from localnet.core.exceptions import InvalidNetworkName, NotFound
from localnet.core.types import NetworkState
from localnet.store import CorruptRecord, NetworkStateStore
from localnet.topology import TopologySpec


@pytest.fixture
def store(home):
    return NetworkStateStore(home)


@pytest.fixture
def record(resolver):
    return resolver.resolve("testnet", TopologySpec(seeds=1, whales=1))


def test_save_and_load(store, record):
    store.save(record)
    loaded = store.load("testnet")
    assert loaded.node_ids() == record.node_ids()
    assert loaded.genesis == record.genesis
    assert loaded.state == NetworkState.CREATED
    assert store.exists("testnet")


def test_timestamps_are_timezone_aware(store, record):
    store.save(record)
    loaded = store.load("testnet")
    assert loaded.created_at.utcoffset() == timedelta(0)
    assert loaded.updated_at.utcoffset() == timedelta(0)
    assert loaded.updated_at >= loaded.created_at


def test_save_replaces_atomically(store, record):
    store.save(record)
    record.state = NetworkState.STOPPED
    store.save(record)
    assert json.loads(store.record_path("testnet").read_text())["state"] == "stopped"
    leftovers = [path for path in store.network_path("testnet").iterdir() if path.name.endswith(".tmp")]
    assert leftovers == []


def test_load_missing(store):
    with pytest.raises(NotFound):
        store.load("nothing")


def test_load_corrupt(store, record):
    store.save(record)
    store.record_path("testnet").write_text('{"name": "testnet"}')
    with pytest.raises(CorruptRecord):
        store.load("testnet")


def test_invalid_name(store):
    with pytest.raises(InvalidNetworkName):
        store.network_path("../escape")
    with pytest.raises(InvalidNetworkName):
        store.network_path("Upper")


def test_write_files(store, record):
    store.write_genesis(record)
    store.write_deployment(record)
    genesis = json.loads(store.genesis_path("testnet").read_text())
    assert genesis["ledger"]["accounts"][0]["pk"] == record.genesis.accounts[0].public_key
    assert "seed-0" in store.compose_path("testnet").read_text()
    assert "/whale-0/graphql" in store.proxy_path("testnet").read_text()


def test_list_and_remove(store, record):
    assert store.list() == []
    store.save(record)
    assert store.list() == ["testnet"]
    with store.lock("testnet"):
        pass
    # The lock directory is not a network
    assert store.list() == ["testnet"]
    store.remove("testnet")
    assert not store.network_path("testnet").exists()
    assert store.list() == []


def test_lock_is_exclusive(store):
    with store.lock("testnet"):
        with open(store.lock_path("testnet"), "a") as other:
            with pytest.raises(BlockingIOError):
                fcntl.flock(other.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        # Other networks are not affected
        with store.lock("othernet"):
            pass

    with open(store.lock_path("testnet"), "a") as other:
        fcntl.flock(other.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        fcntl.flock(other.fileno(), fcntl.LOCK_UN)
