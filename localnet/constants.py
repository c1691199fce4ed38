"""Constants for localnet networks."""

# Port layout
PORTS_PER_NODE = 5  # client, rest, external/p2p, metrics, libp2p-metrics
MIN_PORT = 1024
MAX_PORT = 65535

# Default role base ports
SEED_START_PORT = 3000
WHALE_START_PORT = 4000
FISH_START_PORT = 5000
NODE_START_PORT = 6000
SNARK_COORDINATOR_START_PORT = 7000
SNARK_WORKER_START_PORT = 7500
ARCHIVE_START_PORT = 8000
ARCHIVE_SERVER_PORT = 3086
PROXY_PORT = 8080
POSTGRES_PORT = 5432

# Stake tiers (fixed-point, 9 decimals)
WHALE_BALANCE = "11550000.000000000"
FISH_BALANCE = "66000.000000000"
MINIMUM_STAKE = "1000.000000000"
BALANCE_DECIMALS = 9

# Docker images
DAEMON_IMAGE = "gcr.io/o1labs-192920/mina-daemon:2.0.0rampup7-4a0fff9-bullseye-berkeley"
ARCHIVE_IMAGE = "gcr.io/o1labs-192920/mina-archive:2.0.0rampup7-4a0fff9-bullseye"
POSTGRES_IMAGE = "postgres:15"
PROXY_IMAGE = "nginx:stable"

# Key passphrases handed to the daemon through the environment
PRIVKEY_PASS = "naughty blue worm"
LIBP2P_PASS = "naughty blue worm"
CLIENT_TRUSTLIST = "0.0.0.0/0"

# Network-scoped layout
DEFAULT_HOME = "~/.localnet"
DEFAULT_NETWORK = "default"
NETWORK_KEYPAIRS_DIR = "network-keypairs"
LIBP2P_KEYPAIRS_DIR = "libp2p-keypairs"
GENESIS_FILE = "genesis_ledger.json"
COMPOSE_FILE = "docker-compose.yaml"
PROXY_FILE = "nginx.conf"
RECORD_FILE = "network.json"
REPLAYER_INPUT_FILE = "replayer_input_config.json"
LOCKS_DIR = ".locks"

# Paths inside containers
CONTAINER_NETWORK_DIR = "/local-network"
CONTAINER_CONFIG_DIR = "/config-directory"
PRECOMPUTED_BLOCKS_FILE = "precomputed_blocks.log"

ZKAPP_ACCOUNT = "zkapp-account"
